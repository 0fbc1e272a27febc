"""
Refund request endpoints

Customers ask for a refund on a paid order; staff review the request and
an admin approves (paying the refund out) or rejects it.
"""
import logging
from decimal import Decimal

from django.db.models import Count, Sum
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from storefront.core.pagination import paginate, apply_sorting
from storefront.core.roles import IsAdminRole, IsStaffRole, is_staff_user
from storefront.core.utils import create_audit_log
from .models import Order, RefundRequest
from .serializers import RefundRequestSerializer, RefundRequestCreateSerializer, RefundDecisionSerializer
from .services import (
    RefundError, refund_eligibility, request_refund, start_refund_review, approve_refund_request,
    reject_refund_request, cancel_refund_request,
)

logger = logging.getLogger(__name__)

REFUND_SORT_FIELDS = {
    'createdAt': 'created_at',
    'amount': 'amount',
    'status': 'status',
}


def _refund_page(request, queryset):
    queryset = apply_sorting(queryset.select_related('order', 'user', 'reviewed_by', 'refund'),
                             request, REFUND_SORT_FIELDS)
    refunds, pagination = paginate(queryset, request, default_limit=20)
    return Response({'results': RefundRequestSerializer(refunds, many=True).data, 'pagination': pagination})


def _audit(request, refund_request, action, changes):
    create_audit_log(request=request, action=action, model_name='RefundRequest', object_id=refund_request.id,
                     object_name=f"Refund for Order {refund_request.order.order_number}",
                     object_reference=refund_request.order.order_number, changes=changes)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def refund_list_create(request):
    """All refund requests (staff) or open a request for one of your orders"""
    if request.method == 'GET':
        if not is_staff_user(request.user):
            return Response({'error': 'You do not have permission to view all refund requests'},
                            status=status.HTTP_403_FORBIDDEN)
        queryset = RefundRequest.objects.all()
        refund_status = request.query_params.get('status')
        if refund_status:
            queryset = queryset.filter(status=refund_status)
        reason = request.query_params.get('reason')
        if reason:
            queryset = queryset.filter(reason=reason)
        return _refund_page(request, queryset)

    serializer = RefundRequestCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    order = Order.objects.filter(pk=data['order_id'], user=request.user).first()
    if order is None:
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
    try:
        refund_request = request_refund(order, request.user, data['reason'], data['description'],
                                        refund_type=data['refund_type'], amount=data.get('amount'),
                                        images=data['images'])
    except RefundError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    _audit(request, refund_request, 'create', {'amount': str(refund_request.amount),
                                               'reason': refund_request.reason})
    return Response(RefundRequestSerializer(refund_request).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_refunds(request):
    return _refund_page(request, RefundRequest.objects.filter(user=request.user))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def refund_eligibility_check(request, order_pk):
    order = get_object_or_404(Order, pk=order_pk)
    if order.user_id != request.user.id and not is_staff_user(request.user):
        return Response({'error': 'You do not have access to this order'}, status=status.HTTP_403_FORBIDDEN)
    eligible, reason, refundable = refund_eligibility(order)
    return Response({'eligible': eligible, 'reason': reason or None, 'refundableAmount': str(refundable)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def refund_stats(request):
    by_status = dict(RefundRequest.objects.order_by().values_list('status').annotate(total=Count('id')))
    refunded = RefundRequest.objects.filter(status='completed').aggregate(total=Sum('amount'))['total']
    return Response({
        'total': sum(by_status.values()),
        'byStatus': {value: by_status.get(value, 0) for value, _ in RefundRequest.STATUS_CHOICES},
        'open': sum(by_status.get(s, 0) for s in RefundRequest.OPEN_STATUSES),
        'totalRefunded': str(refunded or Decimal('0.00')),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def refund_detail(request, pk):
    refund_request = get_object_or_404(RefundRequest.objects.select_related('order', 'user', 'refund'), pk=pk)
    if refund_request.user_id != request.user.id and not is_staff_user(request.user):
        return Response({'error': 'You do not have access to this refund request'},
                        status=status.HTTP_403_FORBIDDEN)
    return Response(RefundRequestSerializer(refund_request).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def refund_cancel(request, pk):
    refund_request = get_object_or_404(RefundRequest, pk=pk, user=request.user)
    try:
        refund_request = cancel_refund_request(refund_request)
    except RefundError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    _audit(request, refund_request, 'status_change', {'status': {'old': 'pending', 'new': 'cancelled'}})
    return Response(RefundRequestSerializer(refund_request).data)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsStaffRole])
def refund_review(request, pk):
    refund_request = get_object_or_404(RefundRequest, pk=pk)
    try:
        refund_request = start_refund_review(refund_request, request.user)
    except RefundError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    _audit(request, refund_request, 'status_change', {'status': {'old': 'pending', 'new': 'under_review'}})
    return Response(RefundRequestSerializer(refund_request).data)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsAdminRole])
def refund_approve(request, pk):
    """Approve a request and record the refund against its order"""
    refund_request = get_object_or_404(RefundRequest, pk=pk)
    serializer = RefundDecisionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    old_status = refund_request.status
    try:
        refund_request = approve_refund_request(refund_request, request.user,
                                                admin_notes=serializer.validated_data['admin_notes'])
    except RefundError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    logger.info(f"Refund request {refund_request.id} approved by {request.user.username} "
                f"({refund_request.amount} on {refund_request.order.order_number})")
    _audit(request, refund_request, 'refund', {
        'status': {'old': old_status, 'new': 'completed'},
        'amount': str(refund_request.amount),
        'payment_status': refund_request.order.payment_status,
    })
    return Response(RefundRequestSerializer(refund_request).data)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsAdminRole])
def refund_reject(request, pk):
    refund_request = get_object_or_404(RefundRequest, pk=pk)
    serializer = RefundDecisionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    old_status = refund_request.status
    try:
        refund_request = reject_refund_request(refund_request, request.user,
                                               serializer.validated_data['rejection_reason'],
                                               admin_notes=serializer.validated_data['admin_notes'])
    except RefundError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    _audit(request, refund_request, 'status_change', {
        'status': {'old': old_status, 'new': 'rejected'},
        'rejection_reason': refund_request.rejection_reason,
    })
    return Response(RefundRequestSerializer(refund_request).data)
