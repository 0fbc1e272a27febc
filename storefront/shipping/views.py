import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny

from storefront.catalog.models import Product
from storefront.core.roles import IsStaffRole
from . import shipengine
from .shipengine import ShipEngineError, ShipEngineNotConfigured

logger = logging.getLogger(__name__)


def _not_configured():
    return Response({'error': 'ShipEngine API key not configured'}, status=status.HTTP_503_SERVICE_UNAVAILABLE)


def _upstream_error(e):
    return Response({'error': str(e)}, status=status.HTTP_502_BAD_GATEWAY)


def _with_catalog_weights(items):
    """Fill in missing item weights from the catalog"""
    product_ids = [i.get('product_id') or i.get('productId') for i in items if not i.get('weight')]
    product_ids = [int(pid) for pid in product_ids if str(pid).isdigit()]
    if not product_ids:
        return items
    products = {
        str(p.pk): p for p in Product.objects.filter(pk__in=product_ids, weight__isnull=False)
    }
    enriched = []
    for item in items:
        product = products.get(str(item.get('product_id') or item.get('productId')))
        if product is not None and not item.get('weight'):
            item = {**item, 'weight': {'value': str(product.weight), 'unit': product.weight_unit}}
        enriched.append(item)
    return enriched


@api_view(['POST'])
@permission_classes([AllowAny])
def shipengine_rates(request):
    """Shipping rates for an address and cart items (flat fallback rates on failure)"""
    address = request.data.get('address') or {}
    items = request.data.get('items') or []
    if not isinstance(address, dict) or not all(
        address.get(f) for f in ('city', 'state')
    ) or not (address.get('zipCode') or address.get('postalCode')):
        return Response({'error': 'Address with city, state and postal code is required', 'code': 'MISSING_ADDRESS'},
                        status=status.HTTP_400_BAD_REQUEST)
    if not isinstance(items, list) or not items:
        return Response({'error': 'At least one item is required', 'code': 'MISSING_ITEMS'},
                        status=status.HTTP_400_BAD_REQUEST)
    if not all(isinstance(item, dict) for item in items):
        return Response({'error': 'Each item must be an object', 'code': 'INVALID_ITEMS'},
                        status=status.HTTP_400_BAD_REQUEST)

    carrier_ids = request.data.get('carrierIds') or request.data.get('carrier_ids')
    result = shipengine.quote(address, _with_catalog_weights(items), carrier_ids=carrier_ids)
    return Response(result)


@api_view(['POST'])
@permission_classes([AllowAny])
def shipengine_validate_address(request):
    address = request.data.get('address') or request.data
    if not isinstance(address, dict) or not address.get('city'):
        return Response({'error': 'Address is required', 'code': 'MISSING_ADDRESS'},
                        status=status.HTTP_400_BAD_REQUEST)
    try:
        result = shipengine.validate_address(shipengine.convert_address(address))
    except ShipEngineNotConfigured:
        return _not_configured()
    except ShipEngineError as e:
        return _upstream_error(e)
    return Response(result)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def shipengine_carriers(request):
    try:
        return Response(shipengine.get_carriers())
    except ShipEngineNotConfigured:
        return _not_configured()
    except ShipEngineError as e:
        return _upstream_error(e)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def shipengine_carrier_services(request, carrier_id):
    try:
        return Response(shipengine.get_carrier_services(carrier_id))
    except ShipEngineNotConfigured:
        return _not_configured()
    except ShipEngineError as e:
        return _upstream_error(e)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def shipengine_track(request):
    carrier_code = request.query_params.get('carrier_code')
    tracking_number = request.query_params.get('tracking_number')
    if not carrier_code or not tracking_number:
        return Response({'error': 'carrier_code and tracking_number are required'},
                        status=status.HTTP_400_BAD_REQUEST)
    try:
        return Response(shipengine.track_shipment(carrier_code, tracking_number))
    except ShipEngineNotConfigured:
        return _not_configured()
    except ShipEngineError as e:
        return _upstream_error(e)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def shipengine_labels(request):
    rate_id = request.data.get('rateId') or request.data.get('rate_id')
    if not rate_id:
        return Response({'error': 'rateId is required'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        label = shipengine.create_label_from_rate(
            rate_id,
            label_format=request.data.get('labelFormat', 'pdf'),
            label_layout=request.data.get('labelLayout', '4x6'),
        )
    except ShipEngineNotConfigured:
        return _not_configured()
    except ShipEngineError as e:
        return _upstream_error(e)
    logger.info(f"Label {label.get('label_id')} created by {request.user.username} for rate {rate_id}")
    return Response(label, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def shipengine_test(request):
    result = shipengine.test_connection()
    return Response(result, status=status.HTTP_200_OK if result['success'] else status.HTTP_502_BAD_GATEWAY)


@api_view(['GET'])
@permission_classes([AllowAny])
def shipengine_status(request):
    return Response({
        'isConfigured': shipengine.is_configured(),
        'baseUrl': shipengine.get_base_url(),
        'origin': {k: v for k, v in shipengine.ORIGIN_ADDRESS.items() if k != 'phone'},
    })
