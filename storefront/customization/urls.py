from django.urls import path
from . import views

urlpatterns = [
    # Embroidery options
    path('embroidery-options/', views.embroidery_option_list_create, name='embroidery-option-list-create'),
    path('embroidery-options/<int:pk>/', views.embroidery_option_detail, name='embroidery-option-detail'),
    path('embroidery-options/<int:pk>/toggle/', views.embroidery_option_toggle, name='embroidery-option-toggle'),

    # Material costs
    path('material-costs/', views.material_cost_list_create, name='material-cost-list-create'),
    path('material-costs/calculate/', views.material_cost_calculate, name='material-cost-calculate'),
    path('material-costs/<int:pk>/', views.material_cost_detail, name='material-cost-detail'),

    path('customization/quote/', views.customization_quote, name='customization-quote'),

    # Custom embroidery orders
    path('custom-embroidery/', views.custom_embroidery_list_create, name='custom-embroidery-list-create'),
    path('custom-embroidery/my-orders/', views.custom_embroidery_my_orders, name='custom-embroidery-my-orders'),
    path('custom-embroidery/<int:pk>/', views.custom_embroidery_detail, name='custom-embroidery-detail'),
    path('custom-embroidery/<int:pk>/status/', views.custom_embroidery_status, name='custom-embroidery-status'),
]
