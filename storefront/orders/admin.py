from django.contrib import admin
from .models import CartItem, Order, OrderItem, Payment, RefundRequest


@admin.register(CartItem)
class CartItemAdmin(admin.ModelAdmin):
    list_display = ['user', 'product', 'variant', 'custom_embroidery', 'quantity', 'review_status', 'created_at']
    list_filter = ['review_status', 'created_at']
    search_fields = ['user__username', 'user__email', 'product__title']


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    fields = ['title', 'sku', 'quantity', 'unit_price', 'customization_price', 'line_total']
    readonly_fields = fields


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    fields = ['kind', 'provider', 'amount', 'status', 'transaction_id', 'created_at']
    readonly_fields = ['created_at']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'user', 'email', 'total', 'status', 'payment_status', 'created_at']
    list_filter = ['status', 'payment_status', 'payment_provider', 'created_at']
    search_fields = ['order_number', 'email', 'user__username', 'tracking_number']
    readonly_fields = ['order_number', 'subtotal', 'tax', 'total', 'stock_deducted', 'created_at', 'updated_at']
    inlines = [OrderItemInline, PaymentInline]


@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    list_display = ['order', 'user', 'refund_type', 'amount', 'reason', 'status', 'created_at']
    list_filter = ['status', 'reason', 'refund_type', 'created_at']
    search_fields = ['order__order_number', 'user__username', 'description']
    readonly_fields = ['refund', 'reviewed_by', 'reviewed_at', 'completed_at', 'created_at', 'updated_at']
