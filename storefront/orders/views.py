import logging
from decimal import Decimal

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q, Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_date

from storefront.core.pagination import paginate, apply_sorting
from storefront.core.roles import IsAdminRole, IsStaffRole, is_staff_user
from storefront.core.utils import create_audit_log
from storefront.customization.pricing import CustomizationError, money
from .models import CartItem, Order, MAX_CART_QUANTITY
from .serializers import (
    CartItemSerializer, CartItemWriteSerializer, CartItemReviewSerializer, OrderSerializer, OrderListSerializer,
    PaymentSerializer, CheckoutSerializer, OrderStatusSerializer, PaymentCreateSerializer, RefundSerializer,
)
from .services import (
    CheckoutError, resolve_line, available_stock, add_to_cart, price_line, create_order, record_payment,
    refund_order, restore_order_stock,
)

logger = logging.getLogger(__name__)

ORDER_SORT_FIELDS = {
    'createdAt': 'created_at',
    'updatedAt': 'updated_at',
    'total': 'total',
    'status': 'status',
    'orderNumber': 'order_number',
}

# Statuses from which staff can still cancel
CANCELLABLE_STATUSES = ('pending', 'preparing', 'processing')


def _cart_response(user):
    items = CartItem.objects.filter(user=user).select_related('product', 'variant', 'custom_embroidery')
    data = CartItemSerializer(items, many=True).data
    subtotal = sum((Decimal(item['line_total']) for item in data), Decimal('0.00'))
    return {
        'items': data,
        'summary': {
            'itemCount': sum(item['quantity'] for item in data),
            'lineCount': len(data),
            'subtotal': str(money(subtotal)),
        },
    }


def _can_view_order(user, order):
    return order.user_id == user.id or is_staff_user(user)


# Cart views
@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def cart_detail(request):
    """Get or clear the current user's cart"""
    if request.method == 'GET':
        return Response(_cart_response(request.user))
    deleted, _ = CartItem.objects.filter(user=request.user).delete()
    logger.info(f"Cart cleared for {request.user.username} ({deleted} items)")
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cart_item_add(request):
    """Add an item to the cart, merging identical lines"""
    serializer = CartItemWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        product, variant, custom = resolve_line(
            data.get('product_id'), data.get('variant_id'), data.get('custom_embroidery_id'), user=request.user
        )
        # Validates the embroidery selections before they are stored
        price_line(product, variant, data['quantity'], data.get('customization'), custom_embroidery=custom)
    except CheckoutError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
    except CustomizationError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    if product is not None:
        existing = sum(
            c.quantity for c in CartItem.objects.filter(user=request.user, product=product, variant=variant)
        )
        stock = available_stock(product, variant)
        if existing + data['quantity'] > stock:
            return Response({'error': f'Only {stock} items available in stock', 'code': 'INSUFFICIENT_STOCK'},
                            status=status.HTTP_400_BAD_REQUEST)

    item, created = add_to_cart(request.user, product, variant, data['quantity'],
                                customization=data.get('customization'), custom_embroidery=custom)
    return Response(CartItemSerializer(item).data,
                    status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


@api_view(['PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def cart_item_detail(request, pk):
    """Change the quantity of a cart line or remove it"""
    item = get_object_or_404(CartItem, pk=pk, user=request.user)

    if request.method == 'DELETE':
        item.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    try:
        quantity = int(request.data.get('quantity'))
    except (TypeError, ValueError):
        return Response({'error': 'quantity must be a number'}, status=status.HTTP_400_BAD_REQUEST)
    if quantity < 1 or quantity > MAX_CART_QUANTITY:
        return Response({'error': f'Quantity must be between 1 and {MAX_CART_QUANTITY}'},
                        status=status.HTTP_400_BAD_REQUEST)
    if item.product_id is not None and quantity > available_stock(item.product, item.variant):
        return Response({'error': f'Only {available_stock(item.product, item.variant)} items available in stock',
                         'code': 'INSUFFICIENT_STOCK'}, status=status.HTTP_400_BAD_REQUEST)

    item.quantity = quantity
    if 'customization' in request.data:
        item.customization = request.data.get('customization')
        # Changed designs need another review
        item.review_status = 'pending'
        try:
            price_line(item.product, item.variant, quantity, item.customization,
                       custom_embroidery=item.custom_embroidery)
        except CustomizationError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    item.save()
    return Response(CartItemSerializer(item).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cart_sync(request):
    """Replace the cart with the client's items. Unknown products are skipped."""
    items = request.data.get('items', [])
    if not isinstance(items, list):
        return Response({'error': 'items must be a list'}, status=status.HTTP_400_BAD_REQUEST)

    CartItem.objects.filter(user=request.user).delete()
    skipped = []
    for raw in items:
        serializer = CartItemWriteSerializer(data=raw)
        if not serializer.is_valid():
            skipped.append(raw.get('product_id') if isinstance(raw, dict) else None)
            continue
        data = serializer.validated_data
        try:
            product, variant, custom = resolve_line(
                data.get('product_id'), data.get('variant_id'), data.get('custom_embroidery_id'), user=request.user
            )
            price_line(product, variant, data['quantity'], data.get('customization'), custom_embroidery=custom)
        except (CheckoutError, CustomizationError) as e:
            logger.info(f"Cart sync for {request.user.username} skipped an item: {e}")
            skipped.append(data.get('product_id') or data.get('custom_embroidery_id'))
            continue
        add_to_cart(request.user, product, variant, data['quantity'],
                    customization=data.get('customization'), custom_embroidery=custom)

    response_data = _cart_response(request.user)
    response_data['skipped'] = skipped
    return Response(response_data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsStaffRole])
def cart_item_review(request, pk):
    """Staff approval of a customized cart line"""
    item = get_object_or_404(CartItem, pk=pk)
    serializer = CartItemReviewSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_status = item.review_status
    item.review_status = serializer.validated_data['review_status']
    item.review_notes = serializer.validated_data['review_notes']
    item.reviewed_by = request.user
    item.reviewed_at = timezone.now()
    item.save()
    create_audit_log(request=request, action='status_change', model_name='CartItem', object_id=item.id,
                     changes={'review_status': {'old': old_status, 'new': item.review_status}})
    return Response(CartItemSerializer(item).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def cart_review_queue(request):
    """Customized cart lines waiting for staff review"""
    queryset = CartItem.objects.filter(review_status__in=('pending', 'needs-changes')).filter(
        Q(customization__isnull=False) | Q(custom_embroidery__isnull=False)
    ).select_related('product', 'variant', 'custom_embroidery', 'user')
    items, pagination = paginate(queryset.order_by('created_at', 'id'), request)
    return Response({'results': CartItemSerializer(items, many=True).data, 'pagination': pagination})


# Order views
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def order_checkout(request):
    """Create an order from the cart (or explicit items)"""
    serializer = CheckoutSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    if data.get('items'):
        lines = [dict(item) for item in data['items']]
    else:
        lines = [
            {
                'product_id': item.product_id,
                'variant_id': item.variant_id,
                'custom_embroidery_id': item.custom_embroidery_id,
                'quantity': item.quantity,
                'customization': item.customization,
            }
            for item in CartItem.objects.filter(user=request.user)
        ]

    try:
        order = create_order(
            request.user, lines, data['shipping_address'],
            billing_address=data.get('billing_address'),
            shipping_amount=data['shipping_amount'],
            payment_method=data['payment_method'],
            payment_provider=data['payment_provider'],
            shipping_carrier=data['shipping_carrier'],
            shipping_service=data['shipping_service'],
            customer_notes=data['customer_notes'],
        )
    except CheckoutError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='cart_checkout', model_name='Order', object_id=order.id,
                     object_name=f"Order {order.order_number}", object_reference=order.order_number,
                     changes={'total': str(order.total), 'items': order.items.count()})
    return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_orders(request):
    queryset = Order.objects.filter(user=request.user).annotate(items_total=Sum('items__quantity'))
    status_filter = request.query_params.get('status')
    if status_filter:
        queryset = queryset.filter(status=status_filter)
    orders, pagination = paginate(apply_sorting(queryset, request, ORDER_SORT_FIELDS), request)
    return Response({'results': OrderListSerializer(orders, many=True).data, 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def order_list(request):
    """List all orders with filters"""
    queryset = Order.objects.select_related('user').annotate(items_total=Sum('items__quantity'))

    status_filter = request.query_params.get('status')
    if status_filter:
        queryset = queryset.filter(status=status_filter)
    payment_status = request.query_params.get('payment_status')
    if payment_status:
        queryset = queryset.filter(payment_status=payment_status)
    search = request.query_params.get('search', '').strip()
    if search:
        queryset = queryset.filter(
            Q(order_number__icontains=search) | Q(email__icontains=search) | Q(user__email__icontains=search)
        )
    date_from = parse_date(request.query_params.get('date_from', '') or '')
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    date_to = parse_date(request.query_params.get('date_to', '') or '')
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    orders, pagination = paginate(apply_sorting(queryset, request, ORDER_SORT_FIELDS), request)
    return Response({'results': OrderListSerializer(orders, many=True).data, 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk):
    order = get_object_or_404(Order.objects.prefetch_related('items', 'payments'), pk=pk)
    if not _can_view_order(request.user, order):
        return Response({'error': 'You do not have access to this order'}, status=status.HTTP_403_FORBIDDEN)
    return Response(OrderSerializer(order).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsStaffRole])
def order_status_update(request, pk):
    """Move an order through fulfilment"""
    order = get_object_or_404(Order, pk=pk)
    serializer = OrderStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    old_status = order.status
    new_status = data['status']
    order.status = new_status
    for field in ('tracking_number', 'shipping_carrier', 'estimated_delivery_date', 'admin_notes'):
        if field in data:
            setattr(order, field, data[field])

    now = timezone.now()
    if new_status == 'shipped' and order.shipped_at is None:
        order.shipped_at = now
    if new_status == 'delivered' and order.delivered_at is None:
        order.delivered_at = now
    order.save()

    if new_status == 'cancelled' and old_status != 'cancelled':
        restore_order_stock(order)
        order.refresh_from_db()

    create_audit_log(request=request, action='order_status', model_name='Order', object_id=order.id,
                     object_name=f"Order {order.order_number}", object_reference=order.order_number,
                     changes={'status': {'old': old_status, 'new': new_status}})
    return Response(OrderSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def order_cancel(request, pk):
    """Customers may cancel pending orders; staff may cancel anything not yet shipped"""
    order = get_object_or_404(Order, pk=pk)
    staff = is_staff_user(request.user)
    if not _can_view_order(request.user, order):
        return Response({'error': 'You do not have access to this order'}, status=status.HTTP_403_FORBIDDEN)

    allowed = CANCELLABLE_STATUSES if staff else ('pending',)
    if order.status not in allowed:
        return Response({'error': f'Order cannot be cancelled while {order.status}'},
                        status=status.HTTP_400_BAD_REQUEST)

    old_status = order.status
    order.status = 'cancelled'
    if order.payment_status in ('pending', 'processing'):
        order.payment_status = 'cancelled'
    reason = request.data.get('reason', '')
    if reason:
        order.metadata = {**order.metadata, 'cancel_reason': reason}
    order.save()
    restore_order_stock(order)
    order.refresh_from_db()

    create_audit_log(request=request, action='order_cancel', model_name='Order', object_id=order.id,
                     object_name=f"Order {order.order_number}", object_reference=order.order_number,
                     changes={'status': {'old': old_status, 'new': 'cancelled'}, 'reason': reason})
    return Response(OrderSerializer(order).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_payments(request, pk):
    """List or record payments for an order"""
    order = get_object_or_404(Order, pk=pk)
    if not _can_view_order(request.user, order):
        return Response({'error': 'You do not have access to this order'}, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'GET':
        return Response(PaymentSerializer(order.payments.all(), many=True).data)

    if not is_staff_user(request.user):
        return Response({'error': 'Only staff can record payments'}, status=status.HTTP_403_FORBIDDEN)
    if order.status in ('cancelled', 'refunded'):
        return Response({'error': f'Cannot add payments to a {order.status} order'},
                        status=status.HTTP_400_BAD_REQUEST)
    serializer = PaymentCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    old_payment_status = order.payment_status
    payment = record_payment(order, data['amount'], provider=data['provider'],
                             transaction_id=data['transaction_id'], payment_status=data['status'],
                             user=request.user)
    order.refresh_from_db()
    create_audit_log(request=request, action='payment_add', model_name='Payment', object_id=payment.id,
                     object_name=f"Payment for Order {order.order_number}", object_reference=order.order_number,
                     changes={
                         'amount': str(payment.amount),
                         'provider': payment.provider,
                         'payment_status': {'old': old_payment_status, 'new': order.payment_status},
                     })
    return Response({
        'payment': PaymentSerializer(payment).data,
        'order': OrderSerializer(order).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def order_refund(request, pk):
    order = get_object_or_404(Order, pk=pk)
    serializer = RefundSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        refund = refund_order(order, serializer.validated_data['amount'],
                              reason=serializer.validated_data['reason'], user=request.user)
    except CheckoutError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    order.refresh_from_db()
    create_audit_log(request=request, action='refund', model_name='Order', object_id=order.id,
                     object_name=f"Order {order.order_number}", object_reference=order.order_number,
                     changes={'amount': str(refund.amount), 'payment_status': order.payment_status})
    return Response({
        'refund': PaymentSerializer(refund).data,
        'order': OrderSerializer(order).data,
    }, status=status.HTTP_201_CREATED)
