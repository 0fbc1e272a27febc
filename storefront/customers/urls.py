from django.urls import path
from . import views

urlpatterns = [
    path('customers/', views.customer_list, name='customer-list'),
    path('customers/stats/', views.customer_stats, name='customer-stats'),
    path('customers/<int:pk>/', views.customer_detail, name='customer-detail'),
]
