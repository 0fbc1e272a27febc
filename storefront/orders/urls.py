from django.urls import path
from . import views, refund_views

urlpatterns = [
    # Cart endpoints
    path('cart/', views.cart_detail, name='cart-detail'),
    path('cart/items/', views.cart_item_add, name='cart-item-add'),
    path('cart/items/<int:pk>/', views.cart_item_detail, name='cart-item-detail'),
    path('cart/items/<int:pk>/review/', views.cart_item_review, name='cart-item-review'),
    path('cart/sync/', views.cart_sync, name='cart-sync'),
    path('cart/review-queue/', views.cart_review_queue, name='cart-review-queue'),

    # Order endpoints
    path('orders/', views.order_list, name='order-list'),
    path('orders/checkout/', views.order_checkout, name='order-checkout'),
    path('orders/my-orders/', views.my_orders, name='my-orders'),
    path('orders/<int:pk>/', views.order_detail, name='order-detail'),
    path('orders/<int:pk>/status/', views.order_status_update, name='order-status-update'),
    path('orders/<int:pk>/cancel/', views.order_cancel, name='order-cancel'),
    path('orders/<int:pk>/payments/', views.order_payments, name='order-payments'),
    path('orders/<int:pk>/refund/', views.order_refund, name='order-refund'),
    path('orders/<int:order_pk>/refund-eligibility/', refund_views.refund_eligibility_check,
         name='order-refund-eligibility'),

    # Refund request endpoints
    path('refunds/', refund_views.refund_list_create, name='refund-list-create'),
    path('refunds/my-refunds/', refund_views.my_refunds, name='refund-mine'),
    path('refunds/stats/', refund_views.refund_stats, name='refund-stats'),
    path('refunds/<int:pk>/', refund_views.refund_detail, name='refund-detail'),
    path('refunds/<int:pk>/cancel/', refund_views.refund_cancel, name='refund-cancel'),
    path('refunds/<int:pk>/review/', refund_views.refund_review, name='refund-review'),
    path('refunds/<int:pk>/approve/', refund_views.refund_approve, name='refund-approve'),
    path('refunds/<int:pk>/reject/', refund_views.refund_reject, name='refund-reject'),
]
