from django.urls import path
from . import views

urlpatterns = [
    path('shipping/shipengine/rates/', views.shipengine_rates, name='shipengine-rates'),
    path('shipping/shipengine/validate-address/', views.shipengine_validate_address, name='shipengine-validate-address'),
    path('shipping/shipengine/carriers/', views.shipengine_carriers, name='shipengine-carriers'),
    path('shipping/shipengine/carriers/<str:carrier_id>/services/', views.shipengine_carrier_services,
         name='shipengine-carrier-services'),
    path('shipping/shipengine/track/', views.shipengine_track, name='shipengine-track'),
    path('shipping/shipengine/labels/', views.shipengine_labels, name='shipengine-labels'),
    path('shipping/shipengine/test/', views.shipengine_test, name='shipengine-test'),
    path('shipping/shipengine/status/', views.shipengine_status, name='shipengine-status'),
]
