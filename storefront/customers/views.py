from datetime import timedelta
from decimal import Decimal

from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.contrib.auth import get_user_model
from django.db.models import Q, Count, Sum, Max, DecimalField, Value
from django.db.models.functions import Coalesce
from django.shortcuts import get_object_or_404
from django.utils import timezone

from storefront.core.pagination import paginate, apply_sorting
from storefront.core.roles import IsStaffRole, role_q, ROLE_CUSTOMER
from storefront.orders.models import Order
from storefront.orders.serializers import OrderListSerializer
from .serializers import CustomerSerializer

User = get_user_model()

CUSTOMER_SORT_FIELDS = {
    'createdAt': 'date_joined',
    'email': 'email',
    'name': 'first_name',
    'orderCount': 'order_count',
    'totalSpent': 'total_spent',
    'lastOrderAt': 'last_order_at',
}


def customer_queryset():
    """Customers annotated with order statistics"""
    return User.objects.filter(role_q(ROLE_CUSTOMER)).annotate(
        order_count=Count('orders', distinct=True),
        total_spent=Coalesce(
            Sum('orders__total', filter=Q(orders__payment_status='completed')),
            Value(Decimal('0.00')),
            output_field=DecimalField(max_digits=12, decimal_places=2),
        ),
        last_order_at=Max('orders__created_at'),
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def customer_list(request):
    queryset = customer_queryset()

    search = request.query_params.get('search', '').strip()
    if search:
        queryset = queryset.filter(
            Q(username__icontains=search) | Q(email__icontains=search) |
            Q(first_name__icontains=search) | Q(last_name__icontains=search) | Q(phone__icontains=search)
        )
    status_filter = request.query_params.get('status')
    if status_filter in ('active', 'inactive'):
        queryset = queryset.filter(is_active=status_filter == 'active')

    customers, pagination = paginate(apply_sorting(queryset, request, CUSTOMER_SORT_FIELDS), request)
    return Response({'results': CustomerSerializer(customers, many=True).data, 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def customer_stats(request):
    customers = User.objects.filter(role_q(ROLE_CUSTOMER))
    month_start = timezone.now().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return Response({
        'total': customers.count(),
        'active': customers.filter(is_active=True).count(),
        'inactive': customers.filter(is_active=False).count(),
        'newThisMonth': customers.filter(date_joined__gte=month_start).count(),
        'newLast30Days': customers.filter(date_joined__gte=timezone.now() - timedelta(days=30)).count(),
        'withOrders': customers.filter(orders__isnull=False).distinct().count(),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def customer_detail(request, pk):
    customer = get_object_or_404(customer_queryset(), pk=pk)
    recent_orders = Order.objects.filter(user=customer).annotate(items_total=Sum('items__quantity'))[:10]
    data = CustomerSerializer(customer).data
    data['recentOrders'] = OrderListSerializer(recent_orders, many=True).data
    return Response(data)
