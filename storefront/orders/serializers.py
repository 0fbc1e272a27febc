import logging
from decimal import Decimal

from rest_framework import serializers
from storefront.customization.pricing import CustomizationError
from .models import CartItem, Order, OrderItem, Payment, RefundRequest, MAX_CART_QUANTITY
from .services import price_line

logger = logging.getLogger(__name__)


class CartItemSerializer(serializers.ModelSerializer):
    product_title = serializers.CharField(source='product.title', read_only=True, default=None)
    product_slug = serializers.CharField(source='product.slug', read_only=True, default=None)
    product_image = serializers.CharField(source='product.primary_image', read_only=True, default=None)
    variant_name = serializers.CharField(source='variant.name', read_only=True, default=None)
    custom_embroidery_name = serializers.CharField(source='custom_embroidery.design_name', read_only=True, default=None)
    unit_price = serializers.SerializerMethodField()
    line_total = serializers.SerializerMethodField()

    class Meta:
        model = CartItem
        fields = ['id', 'product', 'product_title', 'product_slug', 'product_image', 'variant', 'variant_name',
                  'custom_embroidery', 'custom_embroidery_name', 'quantity', 'customization', 'review_status',
                  'review_notes', 'unit_price', 'line_total', 'created_at', 'updated_at']
        read_only_fields = fields

    def _pricing(self, obj):
        cache = self.context.setdefault('_pricing', {})
        if obj.pk not in cache:
            try:
                cache[obj.pk] = price_line(obj.product, obj.variant, obj.quantity, obj.customization,
                                           custom_embroidery=obj.custom_embroidery)
            except CustomizationError as e:
                # An option used by the line may have been deactivated since it was added
                logger.warning(f"Cart item {obj.pk} customization no longer prices: {e}")
                cache[obj.pk] = price_line(obj.product, obj.variant, obj.quantity,
                                           custom_embroidery=obj.custom_embroidery)
        return cache[obj.pk]

    def get_unit_price(self, obj):
        return str(self._pricing(obj)[0])

    def get_line_total(self, obj):
        return str(self._pricing(obj)[2])


class CartItemWriteSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(required=False, allow_null=True)
    variant_id = serializers.IntegerField(required=False, allow_null=True)
    custom_embroidery_id = serializers.IntegerField(required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_CART_QUANTITY, default=1)
    customization = serializers.JSONField(required=False, allow_null=True)

    def validate(self, attrs):
        if not attrs.get('product_id') and not attrs.get('custom_embroidery_id'):
            raise serializers.ValidationError('product_id or custom_embroidery_id is required')
        return attrs


class CartItemReviewSerializer(serializers.Serializer):
    review_status = serializers.ChoiceField(choices=CartItem.REVIEW_STATUS_CHOICES)
    review_notes = serializers.CharField(required=False, allow_blank=True, default='')


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'variant', 'custom_embroidery', 'title', 'sku', 'quantity', 'unit_price',
                  'customization_price', 'customization', 'line_total']


class PaymentSerializer(serializers.ModelSerializer):
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = Payment
        fields = ['id', 'order', 'kind', 'provider', 'amount', 'transaction_id', 'status', 'reason',
                  'created_by', 'created_by_username', 'created_at']
        read_only_fields = ['order', 'kind', 'created_by', 'created_at']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    username = serializers.CharField(source='user.username', read_only=True, default=None)

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'user', 'username', 'email', 'items', 'subtotal', 'shipping', 'tax', 'total',
                  'shipping_address', 'billing_address', 'payment_method', 'payment_status', 'payment_provider',
                  'transaction_id', 'status', 'tracking_number', 'shipping_carrier', 'shipping_service',
                  'shipped_at', 'delivered_at', 'estimated_delivery_date', 'customer_notes', 'admin_notes',
                  'metadata', 'stock_deducted', 'payments', 'created_at', 'updated_at']
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'user', 'email', 'total', 'status', 'payment_status', 'item_count',
                  'tracking_number', 'created_at']

    def get_item_count(self, obj):
        if hasattr(obj, 'items_total'):
            return obj.items_total or 0
        return sum(item.quantity for item in obj.items.all())


class CheckoutSerializer(serializers.Serializer):
    items = CartItemWriteSerializer(many=True, required=False)
    shipping_address = serializers.DictField()
    billing_address = serializers.DictField(required=False, allow_null=True)
    shipping_amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'), required=False, default=Decimal('0'))
    shipping_carrier = serializers.CharField(required=False, allow_blank=True, default='')
    shipping_service = serializers.CharField(required=False, allow_blank=True, default='')
    payment_method = serializers.CharField(required=False, allow_blank=True, default='')
    payment_provider = serializers.ChoiceField(choices=Order.PAYMENT_PROVIDER_CHOICES, required=False, default='manual')
    customer_notes = serializers.CharField(required=False, allow_blank=True, default='')


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
    tracking_number = serializers.CharField(required=False, allow_blank=True)
    shipping_carrier = serializers.CharField(required=False, allow_blank=True)
    estimated_delivery_date = serializers.DateField(required=False, allow_null=True)
    admin_notes = serializers.CharField(required=False, allow_blank=True)


class PaymentCreateSerializer(serializers.Serializer):
    provider = serializers.ChoiceField(choices=Order.PAYMENT_PROVIDER_CHOICES, default='manual')
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    transaction_id = serializers.CharField(required=False, allow_blank=True, default='')
    status = serializers.ChoiceField(choices=Payment.STATUS_CHOICES, default='completed')


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class RefundRequestSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    username = serializers.CharField(source='user.username', read_only=True, default=None)
    reviewed_by_username = serializers.CharField(source='reviewed_by.username', read_only=True, default=None)
    refund = PaymentSerializer(read_only=True)

    class Meta:
        model = RefundRequest
        fields = ['id', 'order', 'order_number', 'user', 'username', 'refund_type', 'amount', 'reason',
                  'description', 'images', 'status', 'admin_notes', 'rejection_reason', 'refund',
                  'reviewed_by', 'reviewed_by_username', 'reviewed_at', 'completed_at', 'created_at', 'updated_at']
        read_only_fields = fields


class RefundRequestCreateSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    refund_type = serializers.ChoiceField(choices=RefundRequest.TYPE_CHOICES, default='full')
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'), required=False)
    reason = serializers.ChoiceField(choices=RefundRequest.REASON_CHOICES)
    description = serializers.CharField(min_length=10, max_length=2000)
    images = serializers.ListField(child=serializers.CharField(), required=False, default=list, max_length=5)

    def validate(self, attrs):
        if attrs['refund_type'] == 'partial' and attrs.get('amount') is None:
            raise serializers.ValidationError({'amount': 'Amount is required for a partial refund'})
        return attrs


class RefundDecisionSerializer(serializers.Serializer):
    admin_notes = serializers.CharField(required=False, allow_blank=True, default='')
    rejection_reason = serializers.CharField(required=False, allow_blank=True, default='')
