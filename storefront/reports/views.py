import logging
from datetime import datetime, timedelta
from decimal import Decimal

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.contrib.auth import get_user_model
from django.db.models import Count, F
from django.utils import timezone

from storefront.catalog.models import Product
from storefront.core.cache_utils import DASHBOARD
from storefront.core.roles import IsStaffRole, role_q, ROLE_CUSTOMER
from storefront.orders.models import Order
from storefront.orders.serializers import OrderListSerializer
from .queries import net_revenue, sales_by_day, top_products

logger = logging.getLogger(__name__)

User = get_user_model()

DEFAULT_REPORT_DAYS = 30


def _parse_range(request, default_days=DEFAULT_REPORT_DAYS):
    """date_from/date_to (YYYY-MM-DD); raises ValueError on bad input"""
    date_from = request.query_params.get('date_from')
    date_to = request.query_params.get('date_to')
    today = timezone.localdate()
    date_to = datetime.strptime(date_to, '%Y-%m-%d').date() if date_to else today
    date_from = (datetime.strptime(date_from, '%Y-%m-%d').date() if date_from
                 else date_to - timedelta(days=default_days - 1))
    if date_from > date_to:
        raise ValueError('date_from must be before date_to')
    return date_from, date_to


def _bad_range(e):
    return Response({'error': f'Invalid date range: {e}'}, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def dashboard(request):
    """Headline numbers for the admin dashboard"""
    date_from = request.query_params.get('date_from')
    date_to = request.query_params.get('date_to')
    try:
        if date_from or date_to:
            date_from, date_to = _parse_range(request)
    except ValueError as e:
        return _bad_range(e)

    cached_data, cache_key = DASHBOARD.lookup(str(date_from), str(date_to))
    if cached_data is not None:
        logger.debug(f"Dashboard cache HIT (user: {request.user.username})")
        return Response(cached_data)

    orders = Order.objects.all()
    if date_from:
        orders = orders.filter(created_at__date__gte=date_from)
    if date_to:
        orders = orders.filter(created_at__date__lte=date_to)

    by_status = {row['status']: row['count'] for row in orders.values('status').annotate(count=Count('id'))}
    low_stock = Product.objects.filter(status='active', stock__lte=F('low_stock_threshold'))
    recent = Order.objects.select_related('user').order_by('-created_at')[:5]

    response_data = {
        'totalRevenue': str(net_revenue(date_from, date_to)),
        'totalOrders': orders.count(),
        'ordersByStatus': {code: by_status.get(code, 0) for code, _ in Order.STATUS_CHOICES},
        'pendingOrders': by_status.get('pending', 0),
        'totalCustomers': User.objects.filter(role_q(ROLE_CUSTOMER)).count(),
        'totalProducts': Product.objects.count(),
        'activeProducts': Product.objects.filter(status='active').count(),
        'lowStockProducts': low_stock.filter(stock__gt=0).count(),
        'outOfStockProducts': low_stock.filter(stock=0).count(),
        'recentOrders': OrderListSerializer(recent, many=True).data,
        'generatedAt': timezone.now().isoformat(),
    }
    DASHBOARD.store(cache_key, response_data)
    return Response(response_data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def sales_report(request):
    try:
        date_from, date_to = _parse_range(request)
    except ValueError as e:
        return _bad_range(e)
    days = sales_by_day(date_from, date_to)
    return Response({
        'dateFrom': date_from.isoformat(),
        'dateTo': date_to.isoformat(),
        'days': days,
        'totalOrders': sum(d['orders'] for d in days),
        'totalRevenue': str(sum((Decimal(d['revenue']) for d in days), Decimal('0.00'))),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def top_products_report(request):
    """Best sellers by quantity sold"""
    try:
        date_from, date_to = _parse_range(request)
        limit = min(max(int(request.query_params.get('limit', 10)), 1), 50)
    except ValueError as e:
        return _bad_range(e)
    return Response({
        'dateFrom': date_from.isoformat(),
        'dateTo': date_to.isoformat(),
        'products': top_products(date_from, date_to, limit=limit),
    })
