"""
ShipEngine client.
Rates, address validation, carriers, tracking and labels over the ShipEngine REST API.
"""
import logging
import os
from decimal import Decimal, ROUND_HALF_UP

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://api.shipengine.com/v1'
DEFAULT_TEST_CARRIER_ID = 'se-3697717'
DEFAULT_ITEM_WEIGHT_OZ = Decimal('8')

# Ounces per unit
WEIGHT_FACTORS = {
    'ounce': Decimal('1'),
    'pound': Decimal('16'),
    'gram': Decimal('1') / Decimal('28.35'),
    'kilogram': Decimal('35.274'),
}
WEIGHT_UNIT_ALIASES = {
    'ounces': 'ounce', 'oz': 'ounce',
    'pounds': 'pound', 'lb': 'pound', 'lbs': 'pound',
    'grams': 'gram', 'g': 'gram',
    'kilograms': 'kilogram', 'kg': 'kilogram',
}

PACKAGE_DIMENSIONS = {'length': 12, 'width': 12, 'height': 6, 'unit': 'inch'}

ORIGIN_ADDRESS = {
    'name': 'Mayhem Creations',
    'phone': os.getenv('ORIGIN_PHONE', '614-715-4742'),
    'company_name': 'Mayhem Creations',
    'address_line1': '128 Persimmon Dr',
    'city_locality': 'Newark',
    'state_province': 'OH',
    'postal_code': '43055',
    'country_code': 'US',
    'address_residential_indicator': 'no',
}

# Used by the connection test; a known deliverable address
TEST_ADDRESS = {
    'address_line1': '525 S Winchester Blvd',
    'city_locality': 'San Jose',
    'state_province': 'CA',
    'postal_code': '95128',
    'country_code': 'US',
}


class ShipEngineError(Exception):
    """An upstream ShipEngine call failed"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class ShipEngineNotConfigured(ShipEngineError):
    pass


def get_api_key():
    return getattr(settings, 'SHIPSTATION_API_KEY', os.getenv('SHIPSTATION_API_KEY', ''))


def get_base_url():
    return getattr(settings, 'SHIPENGINE_BASE_URL', os.getenv('SHIPENGINE_BASE_URL', DEFAULT_BASE_URL)).rstrip('/')


def get_test_carrier_id():
    return getattr(settings, 'SHIPENGINE_TEST_CARRIER_ID',
                   os.getenv('SHIPENGINE_TEST_CARRIER_ID', DEFAULT_TEST_CARRIER_ID))


def is_configured():
    return bool(get_api_key())


def _error_message(response):
    """Best-effort message from a ShipEngine error body"""
    try:
        data = response.json()
    except ValueError:
        return response.text or f'HTTP {response.status_code}'
    if isinstance(data, dict):
        errors = data.get('errors')
        if isinstance(errors, list) and errors:
            return ', '.join(
                f"{e.get('error_code', '')}: {e.get('message') or e.get('error_message') or e}".strip(': ')
                for e in errors if isinstance(e, dict)
            ) or str(errors)
        if data.get('message'):
            return data['message']
    return str(data)


def _request(method, path, **kwargs):
    api_key = get_api_key()
    if not api_key:
        raise ShipEngineNotConfigured('ShipEngine API key not configured')

    headers = {'API-Key': api_key, 'Content-Type': 'application/json'}
    url = f"{get_base_url()}{path}"
    timeout = getattr(settings, 'SHIPENGINE_TIMEOUT', 15)
    try:
        response = requests.request(method, url, headers=headers, timeout=timeout, **kwargs)
    except requests.exceptions.RequestException as e:
        logger.error(f"ShipEngine {method} {path} failed: {e}")
        raise ShipEngineError(f'ShipEngine request failed: {e}')

    if response.status_code >= 400:
        message = _error_message(response)
        logger.error(f"ShipEngine {method} {path} returned {response.status_code}: {message}")
        raise ShipEngineError(f'{message} (Status: {response.status_code})', status_code=response.status_code)
    try:
        return response.json()
    except ValueError as e:
        logger.error(f"ShipEngine {method} {path} returned a non-JSON body: {e}")
        raise ShipEngineError('ShipEngine returned an invalid response', status_code=response.status_code)


# Packages and addresses
def normalize_weight_unit(unit):
    unit = (unit or 'ounce').lower()
    return WEIGHT_UNIT_ALIASES.get(unit, unit)


def item_weight_ounces(item):
    """Weight in ounces of one unit of a cart item (8 oz when unknown)"""
    weight = item.get('weight')
    unit = 'ounce'
    if isinstance(weight, dict):
        value = weight.get('value')
        unit = weight.get('unit') or weight.get('units') or 'ounce'
    else:
        value = weight
        unit = item.get('weight_unit') or item.get('weightUnit') or 'ounce'
    try:
        value = Decimal(str(value)) if value not in (None, '') else DEFAULT_ITEM_WEIGHT_OZ
    except ArithmeticError:
        value = DEFAULT_ITEM_WEIGHT_OZ
    if value <= 0:
        value = DEFAULT_ITEM_WEIGHT_OZ
    factor = WEIGHT_FACTORS.get(normalize_weight_unit(unit), Decimal('1'))
    return value * factor


def calculate_package_weight(items):
    total = Decimal('0')
    for item in items:
        try:
            quantity = int(item.get('quantity') or 1)
        except (TypeError, ValueError):
            quantity = 1
        total += item_weight_ounces(item) * quantity
    total = max(total, Decimal('1'))
    return {'value': float(total.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)), 'unit': 'ounce'}


def build_package(items):
    return {
        'package_code': 'package',
        'weight': calculate_package_weight(items),
        'dimensions': dict(PACKAGE_DIMENSIONS),
    }


def convert_address(address):
    """Storefront address -> ShipEngine address"""
    name = address.get('name') or f"{address.get('firstName', '')} {address.get('lastName', '')}".strip()
    converted = {
        'name': name,
        'phone': address.get('phone') or '',
        'address_line1': address.get('street') or address.get('street1') or '',
        'city_locality': address.get('city') or '',
        'state_province': address.get('state') or '',
        'postal_code': address.get('zipCode') or address.get('postalCode') or '',
        'country_code': address.get('country') or 'US',
        'address_residential_indicator': 'yes',
    }
    line2 = address.get('apartment') or address.get('street2')
    if line2:
        converted['address_line2'] = line2
    return converted


# Rates
def _amount(value):
    if isinstance(value, dict):
        return float(value.get('amount') or 0)
    return 0.0


def simplify_rate(rate):
    shipment_cost = _amount(rate.get('shipping_amount'))
    other_cost = (_amount(rate.get('insurance_amount')) + _amount(rate.get('confirmation_amount'))
                  + _amount(rate.get('other_amount')))
    return {
        'rateId': rate.get('rate_id'),
        'serviceName': rate.get('service_type'),
        'serviceCode': rate.get('service_code'),
        'carrier': rate.get('carrier_friendly_name'),
        'carrierCode': rate.get('carrier_code'),
        'shipmentCost': round(shipment_cost, 2),
        'otherCost': round(other_cost, 2),
        'totalCost': round(shipment_cost + other_cost, 2),
        'estimatedDeliveryDays': rate.get('delivery_days'),
        'estimatedDeliveryDate': rate.get('estimated_delivery_date'),
        'guaranteed': bool(rate.get('guaranteed_service')),
        'trackable': rate.get('trackable') is not False,
    }


def simplify_rates(rates):
    """Drop errored rates, simplify, cheapest first"""
    valid = [r for r in rates if not r.get('error_messages')]
    return sorted((simplify_rate(r) for r in valid), key=lambda r: r['totalCost'])


def recommended_rate(rates):
    """First rate arriving in 2-5 days, else the cheapest"""
    if not rates:
        return None
    for rate in rates:
        days = rate.get('estimatedDeliveryDays')
        if days is not None and 2 <= days <= 5:
            return rate
    return rates[0]


def fallback_rates(destination_state):
    local = (destination_state or '').upper() == 'OH'
    priority = 7.99 if local else 9.99
    express = 22.99 if local else 24.99
    return [
        {
            'rateId': None,
            'serviceName': 'USPS Priority Mail',
            'serviceCode': 'usps_priority_mail',
            'carrier': 'USPS',
            'carrierCode': 'stamps_com',
            'shipmentCost': priority,
            'otherCost': 0,
            'totalCost': priority,
            'estimatedDeliveryDays': 2 if local else 3,
            'estimatedDeliveryDate': None,
            'guaranteed': False,
            'trackable': True,
        },
        {
            'rateId': None,
            'serviceName': 'USPS Priority Mail Express',
            'serviceCode': 'usps_priority_mail_express',
            'carrier': 'USPS',
            'carrierCode': 'stamps_com',
            'shipmentCost': express,
            'otherCost': 0,
            'totalCost': express,
            'estimatedDeliveryDays': 1 if local else 2,
            'estimatedDeliveryDate': None,
            'guaranteed': True,
            'trackable': True,
        },
    ]


def get_carriers():
    return _request('GET', '/carriers').get('carriers') or []


def get_carrier_ids():
    """Account carrier ids, or the test carrier when none can be listed"""
    try:
        carrier_ids = [c['carrier_id'] for c in get_carriers() if c.get('carrier_id')]
    except ShipEngineNotConfigured:
        raise
    except ShipEngineError as e:
        logger.warning(f"Failed to fetch carriers, using test carrier: {e}")
        return [get_test_carrier_id()]
    if not carrier_ids:
        logger.warning("No carriers returned from ShipEngine, using test carrier")
        return [get_test_carrier_id()]
    return carrier_ids


def get_rates(ship_to, packages, carrier_ids=None, service_codes=None, confirmation='none'):
    """Simplified rates from ShipEngine. Raises ShipEngineError when none are usable."""
    carrier_ids = carrier_ids or get_carrier_ids()
    payload = {
        'shipment': {
            'validate_address': 'validate_and_clean',
            'ship_from': ORIGIN_ADDRESS,
            'ship_to': ship_to,
            'packages': packages,
            'confirmation': confirmation,
        },
        'rate_options': {
            'carrier_ids': carrier_ids,
            'calculate_tax_amount': False,
        },
    }
    if service_codes:
        payload['rate_options']['service_codes'] = service_codes

    logger.info(f"Requesting ShipEngine rates to {ship_to.get('city_locality')}, {ship_to.get('state_province')} "
                f"{ship_to.get('postal_code')} ({len(packages)} packages)")
    data = _request('POST', '/rates', json=payload)
    rate_response = data.get('rate_response') or {}
    errors = rate_response.get('errors') or []
    if errors:
        raise ShipEngineError(errors[0].get('message') or 'Failed to get shipping rates')
    rates = simplify_rates(rate_response.get('rates') or [])
    if not rates:
        raise ShipEngineError('No shipping rates available for this destination')
    return rates


def quote(address, items, carrier_ids=None):
    """
    Rates for a storefront address and cart items.
    Falls back to flat USPS rates when ShipEngine cannot answer.
    """
    ship_to = convert_address(address)
    package = build_package(items)
    try:
        rates = get_rates(ship_to, [package], carrier_ids=carrier_ids)
        is_fallback = False
        warning = None
    except ShipEngineError as e:
        logger.warning(f"Using fallback shipping rates: {e}")
        rates = fallback_rates(ship_to['state_province'])
        is_fallback = True
        warning = str(e)
    result = {
        'rates': rates,
        'recommendedRate': recommended_rate(rates),
        'isFallback': is_fallback,
        'package': package,
    }
    if warning:
        result['warning'] = warning
    return result


# Other endpoints
def validate_address(address):
    data = _request('POST', '/addresses/validate', json=[address])
    return data[0] if isinstance(data, list) and data else data


def get_carrier_services(carrier_id):
    return _request('GET', f'/carriers/{carrier_id}/services').get('services') or []


def track_shipment(carrier_code, tracking_number):
    return _request('GET', '/tracking', params={'carrier_code': carrier_code, 'tracking_number': tracking_number})


def create_label_from_rate(rate_id, label_format='pdf', label_layout='4x6'):
    return _request('POST', f'/labels/rates/{rate_id}', json={
        'label_format': label_format,
        'label_layout': label_layout,
    })


def test_connection():
    """Validate a known address to check the API key"""
    if not is_configured():
        return {
            'success': False,
            'message': 'ShipEngine API key not configured. Please add SHIPSTATION_API_KEY to your .env file.',
        }
    try:
        result = validate_address(TEST_ADDRESS)
    except ShipEngineError as e:
        if e.status_code == 401:
            return {'success': False, 'message': 'Invalid API key. Please check your SHIPSTATION_API_KEY in .env file.'}
        return {'success': False, 'message': f'API test failed: {e}'}
    return {
        'success': True,
        'message': 'ShipEngine API connection successful!',
        'data': {
            'status': result.get('status'),
            'original': result.get('original_address'),
            'matched': result.get('matched_address'),
            'apiKeyValid': True,
        },
    }
