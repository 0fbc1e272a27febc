from django.urls import path
from . import views

urlpatterns = [
    path('reports/dashboard/', views.dashboard, name='reports-dashboard'),
    path('reports/sales/', views.sales_report, name='reports-sales'),
    path('reports/top-products/', views.top_products_report, name='reports-top-products'),
]
