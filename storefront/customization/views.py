import logging
from decimal import Decimal, InvalidOperation

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from django.db.models import Q
from django.shortcuts import get_object_or_404

from storefront.core.pagination import paginate
from storefront.core.roles import IsAdminRole, IsStaffRole, has_role, is_staff_user, ROLE_ADMIN, ROLE_SELLER
from storefront.core.utils import create_audit_log, field_changes
from .models import EmbroideryOption, MaterialCost, CustomEmbroideryOrder
from .pricing import (
    DesignCustomization, CustomizationError, calculate_material_costs, rates_from_queryset, money,
    ALL_CATEGORIES,
)
from .serializers import (
    EmbroideryOptionSerializer, MaterialCostSerializer, MaterialCalculationSerializer,
    CustomEmbroideryOrderSerializer, CustomEmbroideryCreateSerializer, CustomEmbroideryStatusSerializer,
)

logger = logging.getLogger(__name__)


def can_manage_options(user):
    return has_role(user, ROLE_ADMIN, ROLE_SELLER)


def _forbidden():
    return Response({'error': 'You do not have permission to manage embroidery options'},
                    status=status.HTTP_403_FORBIDDEN)


def _breakdown_json(breakdown):
    return {k: (float(v) if isinstance(v, Decimal) else v) for k, v in breakdown.items()}


# Embroidery option views
@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def embroidery_option_list_create(request):
    """List embroidery options (optionally grouped by category) or create one"""
    if request.method == 'GET':
        queryset = EmbroideryOption.objects.all()

        is_active = request.query_params.get('is_active')
        if not is_staff_user(request.user):
            queryset = queryset.filter(is_active=True)
        elif is_active in ('true', 'false'):
            queryset = queryset.filter(is_active=is_active == 'true')

        category = request.query_params.get('category')
        if category:
            queryset = queryset.filter(category=category)
        level = request.query_params.get('level')
        if level:
            queryset = queryset.filter(level=level)
        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(description__icontains=search))

        data = EmbroideryOptionSerializer(queryset, many=True).data
        if request.query_params.get('grouped') == 'true':
            grouped = {c: [] for c in ALL_CATEGORIES}
            for option in data:
                grouped.setdefault(option['category'], []).append(option)
            return Response(grouped)
        return Response(data)
    else:
        if not can_manage_options(request.user):
            return _forbidden()
        serializer = EmbroideryOptionSerializer(data=request.data)
        if serializer.is_valid():
            option = serializer.save()
            create_audit_log(request=request, action='create', model_name='EmbroideryOption',
                             object_id=option.id, object_name=option.name, object_reference=option.key)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([AllowAny])
def embroidery_option_detail(request, pk):
    """Retrieve, update or delete an embroidery option"""
    option = get_object_or_404(EmbroideryOption, pk=pk)

    if request.method == 'GET':
        if not option.is_active and not is_staff_user(request.user):
            return Response({'error': 'Embroidery option not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(EmbroideryOptionSerializer(option).data)

    if not can_manage_options(request.user):
        return _forbidden()

    if request.method in ('PUT', 'PATCH'):
        serializer = EmbroideryOptionSerializer(option, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='EmbroideryOption',
                             object_id=option.id, object_name=option.name, object_reference=option.key)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:
        create_audit_log(request=request, action='delete', model_name='EmbroideryOption',
                         object_id=option.id, object_name=option.name, object_reference=option.key)
        option.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def embroidery_option_toggle(request, pk):
    """Flip is_active on an embroidery option"""
    if not can_manage_options(request.user):
        return _forbidden()
    option = get_object_or_404(EmbroideryOption, pk=pk)
    option.is_active = not option.is_active
    option.save(update_fields=['is_active', 'updated_at'])
    create_audit_log(request=request, action='status_change', model_name='EmbroideryOption',
                     object_id=option.id, object_name=option.name,
                     changes={'is_active': option.is_active})
    return Response(EmbroideryOptionSerializer(option).data)


# Material cost views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def material_cost_list_create(request):
    if request.method == 'GET':
        return Response(MaterialCostSerializer(MaterialCost.objects.all(), many=True).data)
    serializer = MaterialCostSerializer(data=request.data)
    if serializer.is_valid():
        material = serializer.save()
        create_audit_log(request=request, action='create', model_name='MaterialCost',
                         object_id=material.id, object_name=material.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def material_cost_detail(request, pk):
    material = get_object_or_404(MaterialCost, pk=pk)

    if request.method == 'GET':
        return Response(MaterialCostSerializer(material).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = MaterialCostSerializer(material, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            changes = field_changes(material, serializer.validated_data)
            serializer.save()
            create_audit_log(request=request, action='update', model_name='MaterialCost',
                             object_id=material.id, object_name=material.name, changes=changes)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:
        create_audit_log(request=request, action='delete', model_name='MaterialCost',
                         object_id=material.id, object_name=material.name)
        material.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([AllowAny])
def material_cost_calculate(request):
    """Price a design of the given size from the active material rates"""
    serializer = MaterialCalculationSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    rates = rates_from_queryset(MaterialCost.objects.all())
    try:
        breakdown = calculate_material_costs(data['width'], data['height'], rates, stitches=data.get('stitches'))
    except CustomizationError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(_breakdown_json(breakdown))


# Customization quote
@api_view(['POST'])
@permission_classes([AllowAny])
def customization_quote(request):
    """
    Price per-design embroidery selections.

    Body: {basePrice, quantity, designs: {id: {category: key | [keys], quantity?}},
    copy?: {from, to}}
    """
    try:
        base_price = Decimal(str(request.data.get('basePrice', 0)))
        quantity = int(request.data.get('quantity', 1))
    except (InvalidOperation, TypeError, ValueError):
        return Response({'error': 'basePrice and quantity must be numbers'}, status=status.HTTP_400_BAD_REQUEST)
    if base_price < 0 or quantity < 1:
        return Response({'error': 'basePrice must be >= 0 and quantity >= 1'}, status=status.HTTP_400_BAD_REQUEST)

    designs = request.data.get('designs') or {}
    if not isinstance(designs, dict) or not designs:
        return Response({'error': 'At least one design is required'}, status=status.HTTP_400_BAD_REQUEST)

    state = DesignCustomization.from_queryset(
        EmbroideryOption.objects.filter(is_active=True), base_price=base_price, quantity=quantity
    )
    try:
        for design_id, selections in designs.items():
            if not isinstance(selections, dict):
                raise CustomizationError(f'Design {design_id} must be an object')
            selections = dict(selections)
            design_quantity = selections.pop('quantity', None)
            state.add_design(design_id, quantity=design_quantity)
            state.apply(design_id, selections)

        copy_request = request.data.get('copy')
        if copy_request:
            if not isinstance(copy_request, dict) or not copy_request.get('from') or not copy_request.get('to'):
                raise CustomizationError('copy must be an object with from and to')
            state.copy(copy_request['from'], copy_request['to'])
    except CustomizationError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except (TypeError, ValueError) as e:
        return Response({'error': f'Invalid customization: {e}'}, status=status.HTTP_400_BAD_REQUEST)

    return Response({
        'designs': {
            design_id: {
                'selectedStyles': state.designs[design_id],
                'optionsPrice': state.options_price(design_id),
                'price': state.design_price(design_id),
            }
            for design_id in state.designs
        },
        'total': state.total_price(),
    })


# Custom embroidery orders
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def custom_embroidery_list_create(request):
    """Staff list of custom embroidery orders, or submit a new design"""
    if request.method == 'GET':
        if not is_staff_user(request.user):
            return Response({'error': 'Staff access required'}, status=status.HTTP_403_FORBIDDEN)
        queryset = CustomEmbroideryOrder.objects.select_related('user')
        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        orders, pagination = paginate(queryset, request)
        return Response({
            'results': CustomEmbroideryOrderSerializer(orders, many=True).data,
            'pagination': pagination,
        })

    payload = request.data.copy()
    dimensions = payload.get('dimensions')
    if isinstance(dimensions, dict):
        payload.setdefault('width', dimensions.get('width'))
        payload.setdefault('height', dimensions.get('height'))
    serializer = CustomEmbroideryCreateSerializer(data=payload)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    state = DesignCustomization.from_queryset(EmbroideryOption.objects.filter(is_active=True))
    try:
        state.apply('design', data['selected_styles'])
        breakdown = calculate_material_costs(
            data['width'], data['height'], rates_from_queryset(MaterialCost.objects.all()),
            stitches=data.get('stitches'),
        )
    except CustomizationError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    options_price = state.options_price('design')
    order = CustomEmbroideryOrder.objects.create(
        user=request.user,
        design_name=data['design_name'],
        design_file=data['design_file'],
        design_preview=data['design_preview'],
        dimensions={'width': float(data['width']), 'height': float(data['height'])},
        selected_styles=state.describe('design'),
        material_costs=_breakdown_json(breakdown),
        options_price=options_price,
        total_price=money(breakdown['totalCost'] + options_price),
        notes=data['notes'],
    )
    logger.info(f"Custom embroidery order {order.id} created by {request.user.username} (total {order.total_price})")
    create_audit_log(request=request, action='create', model_name='CustomEmbroideryOrder',
                     object_id=order.id, object_name=order.design_name)
    return Response(CustomEmbroideryOrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def custom_embroidery_my_orders(request):
    orders = CustomEmbroideryOrder.objects.filter(user=request.user)
    return Response(CustomEmbroideryOrderSerializer(orders, many=True).data)


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def custom_embroidery_detail(request, pk):
    order = get_object_or_404(CustomEmbroideryOrder, pk=pk)

    if request.method == 'GET':
        if order.user_id != request.user.id and not is_staff_user(request.user):
            return Response({'error': 'You do not have access to this order'}, status=status.HTTP_403_FORBIDDEN)
        return Response(CustomEmbroideryOrderSerializer(order).data)

    if not has_role(request.user, ROLE_ADMIN):
        return Response({'error': 'Only admins can delete custom embroidery orders'},
                        status=status.HTTP_403_FORBIDDEN)
    create_audit_log(request=request, action='delete', model_name='CustomEmbroideryOrder',
                     object_id=order.id, object_name=order.design_name)
    order.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsStaffRole])
def custom_embroidery_status(request, pk):
    order = get_object_or_404(CustomEmbroideryOrder, pk=pk)
    serializer = CustomEmbroideryStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_status = order.status
    for field, value in serializer.validated_data.items():
        setattr(order, field, value)
    order.save()
    create_audit_log(request=request, action='status_change', model_name='CustomEmbroideryOrder',
                     object_id=order.id, object_name=order.design_name,
                     changes={'status': {'old': old_status, 'new': order.status}})
    return Response(CustomEmbroideryOrderSerializer(order).data)
