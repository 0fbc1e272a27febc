"""
Order pricing, checkout and stock handling
"""
import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from storefront.catalog.models import Product, ProductVariant
from storefront.core.cache_signals import invalidate_products_cache, invalidate_dashboard_cache
from storefront.core.models import Setting
from storefront.customization.models import EmbroideryOption, CustomEmbroideryOrder
from storefront.customization.pricing import DesignCustomization, CustomizationError, money
from .models import CartItem, Order, OrderItem, Payment, RefundRequest, MAX_CART_QUANTITY

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = ('firstName', 'lastName', 'email', 'phone', 'street', 'city', 'state', 'zipCode', 'country')
REQUIRED_ADDRESS_FIELDS = ('firstName', 'lastName', 'email', 'street', 'city', 'state', 'zipCode', 'country')


class CheckoutError(Exception):
    """Raised when an order cannot be built from the submitted items"""


def get_tax_rate():
    value = Setting.get_value('TAX_RATE', '0')
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        logger.warning(f"Invalid TAX_RATE setting {value!r}, using 0")
        return Decimal('0')
    return rate if rate >= 0 else Decimal('0')


def customizations_match(a, b):
    return (a or None) == (b or None)


def price_line(product, variant, quantity, customization=None, custom_embroidery=None):
    """
    Price one cart/order line.

    Returns (unit_price, customization_price, line_total). Lines with per-design
    embroidery selections (customization['designs']) are priced per design;
    custom embroidery lines use the server-computed design total.
    """
    if custom_embroidery is not None:
        unit_price = money(custom_embroidery.total_price)
        return unit_price, Decimal('0.00'), money(unit_price * quantity)

    unit_price = money(variant.effective_price if variant else product.price)
    designs = (customization or {}).get('designs') if isinstance(customization, dict) else None
    if not designs:
        return unit_price, Decimal('0.00'), money(unit_price * quantity)

    if not isinstance(designs, dict):
        raise CustomizationError('Customization designs must be an object')
    state = DesignCustomization.from_queryset(
        EmbroideryOption.objects.filter(is_active=True), base_price=unit_price, quantity=quantity
    )
    for design_id, selections in designs.items():
        if not isinstance(selections, dict):
            raise CustomizationError(f'Design {design_id} must be an object')
        selections = dict(selections)
        design_quantity = selections.pop('quantity', None)
        state.add_design(design_id, quantity=design_quantity)
        state.apply(design_id, selections)
    customization_price = money(sum((state.options_price(d) for d in state.designs), Decimal('0')))
    return unit_price, customization_price, state.total_price()


def resolve_line(product_id=None, variant_id=None, custom_embroidery_id=None, user=None):
    """Look up the product/variant/custom design a line refers to"""
    if custom_embroidery_id:
        custom = CustomEmbroideryOrder.objects.filter(pk=custom_embroidery_id, user=user).first()
        if custom is None:
            raise CheckoutError(f'Custom embroidery order {custom_embroidery_id} not found')
        if custom.status == 'cancelled':
            raise CheckoutError(f'Custom embroidery order {custom_embroidery_id} was cancelled')
        return None, None, custom

    product = Product.objects.filter(pk=product_id, status='active').first() if product_id else None
    if product is None:
        raise CheckoutError(f'Product {product_id} not found or inactive')
    variant = None
    if variant_id:
        variant = ProductVariant.objects.filter(pk=variant_id, product=product, is_active=True).first()
        if variant is None:
            raise CheckoutError(f'Variant {variant_id} not found for product {product.title}')
    return product, variant, None


def available_stock(product, variant):
    return variant.stock if variant else product.stock


def add_to_cart(user, product, variant, quantity, customization=None, custom_embroidery=None):
    """
    Add a line to the cart, merging with an identical line.
    Returns (cart_item, created).
    """
    candidates = CartItem.objects.filter(user=user, product=product, variant=variant,
                                         custom_embroidery=custom_embroidery)
    existing = next((c for c in candidates if customizations_match(c.customization, customization)), None)
    if existing:
        existing.quantity = min(existing.quantity + quantity, MAX_CART_QUANTITY)
        existing.save(update_fields=['quantity', 'updated_at'])
        return existing, False
    item = CartItem.objects.create(
        user=user, product=product, variant=variant, custom_embroidery=custom_embroidery,
        quantity=min(quantity, MAX_CART_QUANTITY), customization=customization,
    )
    return item, True


def clean_address(address, required=True):
    if not isinstance(address, dict):
        raise CheckoutError('Address must be an object')
    cleaned = {field: str(address.get(field, '') or '').strip() for field in ADDRESS_FIELDS}
    if required:
        missing = [f for f in REQUIRED_ADDRESS_FIELDS if not cleaned[f]]
        if missing:
            raise CheckoutError(f"Missing address fields: {', '.join(missing)}")
    return cleaned


def _item_title(product, variant, custom):
    if custom is not None:
        return f"Custom Embroidery: {custom.design_name}"
    if variant is not None:
        return f"{product.title} - {variant.name}"
    return product.title


@transaction.atomic
def create_order(user, lines, shipping_address, billing_address=None, shipping_amount=Decimal('0.00'),
                 payment_method='', payment_provider='manual', shipping_carrier='', shipping_service='',
                 customer_notes='', metadata=None, clear_cart=True):
    """
    Build an order from line dicts {product_id, variant_id, custom_embroidery_id, quantity, customization}.
    Prices always come from the catalog.
    """
    if not lines:
        raise CheckoutError('Cart is empty')

    shipping_address = clean_address(shipping_address)
    billing_address = clean_address(billing_address, required=False) if billing_address else dict(shipping_address)
    shipping_amount = money(shipping_amount or 0)
    if shipping_amount < 0:
        raise CheckoutError('Shipping amount cannot be negative')

    priced = []
    for line in lines:
        try:
            quantity = int(line.get('quantity', 1))
        except (TypeError, ValueError):
            raise CheckoutError('Quantity must be a number')
        if quantity < 1 or quantity > MAX_CART_QUANTITY:
            raise CheckoutError(f'Quantity must be between 1 and {MAX_CART_QUANTITY}')
        product, variant, custom = resolve_line(
            line.get('product_id'), line.get('variant_id'), line.get('custom_embroidery_id'), user=user
        )
        customization = line.get('customization')
        try:
            unit_price, customization_price, line_total = price_line(
                product, variant, quantity, customization, custom_embroidery=custom
            )
        except CustomizationError as e:
            raise CheckoutError(str(e))
        priced.append((product, variant, custom, quantity, customization, unit_price, customization_price, line_total))

    subtotal = money(sum((p[-1] for p in priced), Decimal('0')))
    tax = money(subtotal * get_tax_rate())

    order = Order.objects.create(
        user=user,
        email=shipping_address['email'] or getattr(user, 'email', ''),
        subtotal=subtotal,
        shipping=shipping_amount,
        tax=tax,
        total=money(subtotal + shipping_amount + tax),
        shipping_address=shipping_address,
        billing_address=billing_address,
        payment_method=payment_method or '',
        payment_provider=payment_provider or 'manual',
        shipping_carrier=shipping_carrier or '',
        shipping_service=shipping_service or '',
        customer_notes=customer_notes or '',
        metadata=metadata or {},
    )
    OrderItem.objects.bulk_create([
        OrderItem(
            order=order,
            product=product,
            variant=variant,
            custom_embroidery=custom,
            title=_item_title(product, variant, custom),
            sku=(variant.sku if variant else (product.sku or '')) if product else '',
            quantity=quantity,
            unit_price=unit_price,
            customization_price=customization_price,
            customization=customization,
            line_total=line_total,
        )
        for product, variant, custom, quantity, customization, unit_price, customization_price, line_total in priced
    ])

    if clear_cart and user is not None:
        CartItem.objects.filter(user=user).delete()

    logger.info(f"Order {order.order_number} created for {getattr(user, 'username', 'guest')}: total {order.total}")
    return order


def payment_totals(order):
    completed = order.payments.filter(status='completed')
    paid = completed.filter(kind='payment').aggregate(total=Sum('amount'))['total'] or Decimal('0.00')
    refunded = completed.filter(kind='refund').aggregate(total=Sum('amount'))['total'] or Decimal('0.00')
    return paid, refunded


def _adjust_stock(model, pk, delta):
    """
    Apply a stock delta to a product or variant row, never going below zero.
    Returns the new stock value.
    """
    row = model.objects.select_for_update().get(pk=pk)
    if delta < 0 and row.stock < -delta:
        logger.warning(
            f"Insufficient stock for {model.__name__} {pk}: needed {-delta}, available {row.stock}. Clamping to 0"
        )
        model.objects.filter(pk=pk).update(stock=0)
        return 0
    model.objects.filter(pk=pk).update(stock=F('stock') + delta)
    return row.stock + delta


@transaction.atomic
def deduct_order_stock(order):
    """
    Deduct stock for every item of a paid order exactly once.
    Returns False when stock was already deducted.
    """
    order = Order.objects.select_for_update().get(pk=order.pk)
    if order.stock_deducted:
        logger.info(f"Stock already deducted for order {order.order_number}")
        return False

    for item in order.items.all():
        if item.custom_embroidery_id or item.product_id is None:
            logger.info(f"Skipping stock deduction for custom embroidery item {item.id}")
            continue
        if item.variant_id:
            _adjust_stock(ProductVariant, item.variant_id, -item.quantity)
        else:
            _adjust_stock(Product, item.product_id, -item.quantity)

    order.stock_deducted = True
    order.save(update_fields=['stock_deducted', 'updated_at'])
    # Queryset updates bypass the post_save cache signals
    invalidate_products_cache()
    invalidate_dashboard_cache()
    logger.info(f"Stock deducted for order {order.order_number}")
    return True


@transaction.atomic
def restore_order_stock(order):
    """Put stock back after a cancellation or full refund"""
    order = Order.objects.select_for_update().get(pk=order.pk)
    if not order.stock_deducted:
        return False
    for item in order.items.all():
        if item.custom_embroidery_id or item.product_id is None:
            continue
        if item.variant_id:
            _adjust_stock(ProductVariant, item.variant_id, item.quantity)
        else:
            _adjust_stock(Product, item.product_id, item.quantity)
    order.stock_deducted = False
    order.save(update_fields=['stock_deducted', 'updated_at'])
    invalidate_products_cache()
    logger.info(f"Stock restored for order {order.order_number}")
    return True


@transaction.atomic
def record_payment(order, amount, provider='manual', transaction_id='', payment_status='completed', user=None):
    """
    Record a payment and move the order forward once it is fully paid.
    Returns the Payment.
    """
    order = Order.objects.select_for_update().get(pk=order.pk)
    payment = Payment.objects.create(
        order=order, kind='payment', provider=provider, amount=money(amount),
        transaction_id=transaction_id or '', status=payment_status, created_by=user,
    )

    paid, _ = payment_totals(order)
    if payment_status == 'completed':
        if paid >= order.total:
            order.payment_status = 'completed'
            if order.status == 'pending':
                order.status = 'preparing'
        else:
            order.payment_status = 'processing'
        order.payment_provider = provider
        if transaction_id:
            order.transaction_id = transaction_id
    elif payment_status == 'failed' and paid <= 0:
        order.payment_status = 'failed'
    elif payment_status == 'pending' and order.payment_status == 'pending':
        order.payment_status = 'processing'
    order.save()

    if order.payment_status == 'completed':
        deduct_order_stock(order)
    return payment


@transaction.atomic
def refund_order(order, amount, reason='', user=None):
    """Refund part or all of what was paid"""
    order = Order.objects.select_for_update().get(pk=order.pk)
    paid, refunded = payment_totals(order)
    refundable = paid - refunded
    amount = money(amount)
    if amount <= 0:
        raise CheckoutError('Refund amount must be greater than zero')
    if amount > refundable:
        raise CheckoutError(f'Refund amount exceeds refundable balance of {refundable}')

    payment = Payment.objects.create(
        order=order, kind='refund', provider=order.payment_provider, amount=amount,
        status='completed', reason=reason or '', created_by=user,
    )
    if refunded + amount >= paid:
        order.payment_status = 'refunded'
        order.status = 'refunded'
    else:
        order.payment_status = 'partially_refunded'
    order.save()

    if order.status == 'refunded':
        restore_order_stock(order)
    logger.info(f"Refund of {amount} recorded for order {order.order_number} ({order.payment_status})")
    return payment


class RefundError(Exception):
    """Raised when a refund request cannot be opened or settled"""


REFUNDABLE_STATUSES = ('preparing', 'processing', 'shipped', 'delivered')
DEFAULT_REFUND_WINDOW_DAYS = 30


def get_refund_window_days():
    value = Setting.get_value('REFUND_TIME_LIMIT_DAYS', DEFAULT_REFUND_WINDOW_DAYS)
    try:
        days = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid REFUND_TIME_LIMIT_DAYS setting {value!r}, using {DEFAULT_REFUND_WINDOW_DAYS}")
        return DEFAULT_REFUND_WINDOW_DAYS
    return max(days, 0)


def refund_window_start(order):
    """Refund windows run from delivery, else shipment, else placement"""
    return order.delivered_at or order.shipped_at or order.created_at


def refund_eligibility(order):
    """
    Check whether a refund can be requested for an order.
    Returns (eligible, reason, refundable_amount).
    """
    paid, refunded = payment_totals(order)
    refundable = paid - refunded
    if order.status == 'refunded' or order.payment_status == 'refunded':
        return False, 'Order has already been refunded', refundable
    if order.status not in REFUNDABLE_STATUSES:
        return False, f'Orders with status {order.status} cannot be refunded', refundable
    if refundable <= 0:
        return False, 'Order has no payments to refund', refundable
    deadline = refund_window_start(order) + timedelta(days=get_refund_window_days())
    if timezone.now() > deadline:
        return False, 'The refund window for this order has closed', refundable
    if order.refund_requests.filter(status__in=RefundRequest.OPEN_STATUSES).exists():
        return False, 'A refund request is already open for this order', refundable
    return True, '', refundable


@transaction.atomic
def request_refund(order, user, reason, description, refund_type='full', amount=None, images=None):
    order = Order.objects.select_for_update().get(pk=order.pk)
    eligible, message, refundable = refund_eligibility(order)
    if not eligible:
        raise RefundError(message)
    if refund_type == 'partial':
        if amount is None:
            raise RefundError('Amount is required for a partial refund')
        amount = money(amount)
        if amount <= 0 or amount > refundable:
            raise RefundError(f'Refund amount must be between 0.01 and {refundable}')
    else:
        amount = refundable

    refund_request = RefundRequest.objects.create(
        order=order, user=user, refund_type=refund_type, amount=amount, reason=reason,
        description=description, images=images or [],
    )
    logger.info(f"Refund request {refund_request.id} opened for order {order.order_number} ({amount})")
    return refund_request


def _lock_open_request(refund_request):
    refund_request = RefundRequest.objects.select_for_update().get(pk=refund_request.pk)
    if refund_request.status not in RefundRequest.OPEN_STATUSES:
        raise RefundError(f'Refund request is already {refund_request.status}')
    return refund_request


@transaction.atomic
def start_refund_review(refund_request, user):
    refund_request = _lock_open_request(refund_request)
    if refund_request.status != 'pending':
        raise RefundError('Only pending refund requests can be put under review')
    refund_request.status = 'under_review'
    refund_request.reviewed_by = user
    refund_request.reviewed_at = timezone.now()
    refund_request.save(update_fields=['status', 'reviewed_by', 'reviewed_at', 'updated_at'])
    return refund_request


@transaction.atomic
def approve_refund_request(refund_request, user, admin_notes=''):
    """Pay out the refund and close the request"""
    refund_request = _lock_open_request(refund_request)
    order = refund_request.order
    amount = refund_request.amount
    if refund_request.refund_type == 'full':
        paid, refunded = payment_totals(order)
        amount = paid - refunded
    try:
        payment = refund_order(order, amount, reason=f"{refund_request.get_reason_display()}: "
                                                     f"{refund_request.description}", user=user)
    except CheckoutError as e:
        raise RefundError(str(e)) from e
    order.refresh_from_db()

    now = timezone.now()
    refund_request.amount = payment.amount
    refund_request.refund = payment
    refund_request.status = 'completed'
    refund_request.reviewed_by = user
    refund_request.reviewed_at = refund_request.reviewed_at or now
    refund_request.completed_at = now
    if admin_notes:
        refund_request.admin_notes = admin_notes
    refund_request.save()
    return refund_request


@transaction.atomic
def reject_refund_request(refund_request, user, rejection_reason, admin_notes=''):
    if not (rejection_reason or '').strip():
        raise RefundError('Rejection reason is required')
    refund_request = _lock_open_request(refund_request)
    refund_request.status = 'rejected'
    refund_request.rejection_reason = rejection_reason.strip()
    refund_request.reviewed_by = user
    refund_request.reviewed_at = timezone.now()
    if admin_notes:
        refund_request.admin_notes = admin_notes
    refund_request.save()
    logger.info(f"Refund request {refund_request.id} rejected by {user.username}")
    return refund_request


@transaction.atomic
def cancel_refund_request(refund_request):
    refund_request = _lock_open_request(refund_request)
    if refund_request.status != 'pending':
        raise RefundError('Only pending refund requests can be cancelled')
    refund_request.status = 'cancelled'
    refund_request.save(update_fields=['status', 'updated_at'])
    return refund_request
