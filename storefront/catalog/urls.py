from django.urls import path
from . import views, review_views

urlpatterns = [
    # Category endpoints
    path('categories/', views.category_list_create, name='category-list-create'),
    path('categories/stats/', views.category_stats, name='category-stats'),
    path('categories/<int:pk>/', views.category_detail, name='category-detail'),

    # Product endpoints
    path('products/', views.product_list_create, name='product-list-create'),
    path('products/stats/', views.product_stats, name='product-stats'),
    path('products/inventory/status/', views.inventory_status, name='inventory-status'),
    path('products/inventory/bulk/', views.inventory_bulk_update, name='inventory-bulk-update'),
    path('products/slug/<slug:slug>/', views.product_by_slug, name='product-by-slug'),
    path('products/<int:pk>/', views.product_detail, name='product-detail'),
    path('products/<int:pk>/inventory/', views.product_inventory_update, name='product-inventory-update'),
    path('products/<int:product_pk>/variants/', views.variant_list_create, name='variant-list-create'),

    # Variant endpoints
    path('variants/<int:pk>/', views.variant_detail, name='variant-detail'),

    # Review endpoints
    path('reviews/', review_views.review_list_create, name='review-list-create'),
    path('reviews/my-reviews/', review_views.my_reviews, name='review-mine'),
    path('reviews/product/<int:product_id>/', review_views.product_reviews, name='review-product'),
    path('reviews/<int:pk>/', review_views.review_delete, name='review-delete'),
    path('reviews/<int:pk>/status/', review_views.review_status_update, name='review-status'),
    path('reviews/<int:pk>/helpful/', review_views.review_helpful, name='review-helpful'),
]
