"""Aggregations behind the report endpoints"""
from decimal import Decimal

from django.db.models import Sum, Count, Q, F
from django.db.models.functions import TruncDate

from storefront.core.cache_utils import cached_query, REPORTS
from storefront.orders.models import Order, OrderItem, Payment

# Orders that count as sales
SALE_EXCLUDED_STATUSES = ('cancelled', 'refunded')


def net_revenue(date_from=None, date_to=None):
    """Completed payments minus completed refunds"""
    payments = Payment.objects.filter(status='completed')
    if date_from:
        payments = payments.filter(created_at__date__gte=date_from)
    if date_to:
        payments = payments.filter(created_at__date__lte=date_to)
    totals = payments.aggregate(
        paid=Sum('amount', filter=Q(kind='payment')),
        refunded=Sum('amount', filter=Q(kind='refund')),
    )
    return (totals['paid'] or Decimal('0.00')) - (totals['refunded'] or Decimal('0.00'))


@cached_query(REPORTS)
def sales_by_day(date_from, date_to):
    rows = (
        Order.objects.filter(created_at__date__gte=date_from, created_at__date__lte=date_to)
        .exclude(status__in=SALE_EXCLUDED_STATUSES)
        .annotate(day=TruncDate('created_at'))
        .values('day')
        .annotate(revenue=Sum('total'), orders=Count('id'))
        .order_by('day')
    )
    return [
        {'date': row['day'].isoformat(), 'revenue': str(row['revenue'] or Decimal('0.00')), 'orders': row['orders']}
        for row in rows
    ]


@cached_query(REPORTS)
def top_products(date_from, date_to, limit=10):
    rows = (
        OrderItem.objects.filter(
            product__isnull=False,
            order__created_at__date__gte=date_from,
            order__created_at__date__lte=date_to,
        )
        .exclude(order__status__in=SALE_EXCLUDED_STATUSES)
        .values('product_id', product_title=F('product__title'), sku_code=F('product__sku'))
        .annotate(quantity=Sum('quantity'), revenue=Sum('line_total'), orders=Count('order', distinct=True))
        .order_by('-quantity', '-revenue')[:limit]
    )
    return [
        {
            'productId': row['product_id'],
            'title': row['product_title'],
            'sku': row['sku_code'],
            'quantity': row['quantity'],
            'revenue': str(row['revenue'] or Decimal('0.00')),
            'orders': row['orders'],
        }
        for row in rows
    ]
