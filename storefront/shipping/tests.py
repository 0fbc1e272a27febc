"""
Test suite for the shipping module
Tests: Package weights, Rate quotes, Fallback rates, ShipEngine proxy endpoints
"""
from decimal import Decimal
from unittest import mock

import requests
from django.test import TestCase, override_settings
from rest_framework import status

from storefront.core.roles import ROLE_EMPLOYEE
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storefront.shipping import shipengine

ADDRESS = {'firstName': 'Jane', 'lastName': 'Doe', 'street': '1 Main St', 'city': 'Columbus',
           'state': 'OH', 'zipCode': '43215', 'country': 'US'}

RATES_RESPONSE = {
    'rate_response': {
        'errors': [],
        'rates': [
            {
                'rate_id': 'se-express', 'service_type': 'Priority Mail Express',
                'service_code': 'usps_priority_mail_express', 'carrier_friendly_name': 'USPS',
                'carrier_code': 'stamps_com', 'shipping_amount': {'amount': 30.5},
                'insurance_amount': {'amount': 0}, 'confirmation_amount': {'amount': 0},
                'other_amount': {'amount': 0}, 'delivery_days': 1,
            },
            {
                'rate_id': 'se-ground', 'service_type': 'Ground Advantage',
                'service_code': 'usps_ground_advantage', 'carrier_friendly_name': 'USPS',
                'carrier_code': 'stamps_com', 'shipping_amount': {'amount': 6.25},
                'insurance_amount': {'amount': 0}, 'confirmation_amount': {'amount': 1.0},
                'other_amount': {'amount': 0}, 'delivery_days': 4,
            },
            {
                'rate_id': 'se-broken', 'service_type': 'Broken', 'error_messages': ['unavailable'],
                'shipping_amount': {'amount': 1},
            },
        ],
    }
}


def fake_response(data, status_code=200):
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = data
    response.text = ''
    return response


def fake_shipengine(method, url, **kwargs):
    if url.endswith('/carriers'):
        return fake_response({'carriers': [{'carrier_id': 'se-1'}]})
    if url.endswith('/rates'):
        return fake_response(RATES_RESPONSE)
    return fake_response({'errors': [{'error_code': 'not_found', 'message': 'Unknown'}]}, 404)


class PackageTests(TestCase):
    """Test package weight helpers"""

    def test_unknown_weight_is_eight_ounces(self):
        self.assertEqual(shipengine.item_weight_ounces({}), Decimal('8'))
        self.assertEqual(shipengine.item_weight_ounces({'weight': 0}), Decimal('8'))

    def test_unit_conversion(self):
        items = [{'weight': {'value': '1', 'unit': 'lb'}, 'quantity': 2}, {'weight': 3, 'weight_unit': 'oz'}]
        self.assertEqual(shipengine.calculate_package_weight(items), {'value': 35.0, 'unit': 'ounce'})

    def test_minimum_one_ounce(self):
        items = [{'weight': {'value': '5', 'unit': 'grams'}}]
        self.assertEqual(shipengine.calculate_package_weight(items)['value'], 1.0)

    def test_convert_address(self):
        converted = shipengine.convert_address({**ADDRESS, 'apartment': 'Apt 2'})
        self.assertEqual(converted['name'], 'Jane Doe')
        self.assertEqual(converted['postal_code'], '43215')
        self.assertEqual(converted['address_line2'], 'Apt 2')


class RateTests(TestCase):
    """Test rate simplification and fallback"""

    def test_simplify_drops_errors_and_sorts(self):
        rates = shipengine.simplify_rates(RATES_RESPONSE['rate_response']['rates'])
        self.assertEqual([r['rateId'] for r in rates], ['se-ground', 'se-express'])
        self.assertEqual(rates[0]['totalCost'], 7.25)

    def test_recommended_prefers_two_to_five_days(self):
        rates = [{'estimatedDeliveryDays': 7}, {'estimatedDeliveryDays': 3}]
        self.assertEqual(shipengine.recommended_rate(rates), rates[1])
        self.assertEqual(shipengine.recommended_rate([{'estimatedDeliveryDays': None}]),
                         {'estimatedDeliveryDays': None})
        self.assertIsNone(shipengine.recommended_rate([]))

    def test_fallback_rates_by_state(self):
        local = shipengine.fallback_rates('oh')
        self.assertEqual([r['totalCost'] for r in local], [7.99, 22.99])
        remote = shipengine.fallback_rates('CA')
        self.assertEqual([r['totalCost'] for r in remote], [9.99, 24.99])


class RatesEndpointTests(TestCase):
    """Test the public rates endpoint"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.items = [{'productId': 1, 'quantity': 1, 'weight': 8}]

    def test_missing_address(self):
        response = self.client.post('/api/v1/shipping/shipengine/rates/',
                                    {'address': {'city': 'Columbus'}, 'items': self.items}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'MISSING_ADDRESS')

    def test_missing_items(self):
        response = self.client.post('/api/v1/shipping/shipengine/rates/',
                                    {'address': ADDRESS, 'items': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'MISSING_ITEMS')

    def test_items_must_be_objects(self):
        response = self.client.post('/api/v1/shipping/shipengine/rates/',
                                    {'address': ADDRESS, 'items': ['x', *self.items]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INVALID_ITEMS')

    @override_settings(SHIPSTATION_API_KEY='')
    def test_unconfigured_uses_fallback(self):
        response = self.client.post('/api/v1/shipping/shipengine/rates/',
                                    {'address': ADDRESS, 'items': self.items}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['isFallback'])
        self.assertEqual(response.data['rates'][0]['totalCost'], 7.99)
        self.assertIn('warning', response.data)

    @override_settings(SHIPSTATION_API_KEY='test-key')
    @mock.patch('storefront.shipping.shipengine.requests.request', side_effect=fake_shipengine)
    def test_live_rates(self, request_mock):
        response = self.client.post('/api/v1/shipping/shipengine/rates/',
                                    {'address': ADDRESS, 'items': self.items}, format='json')
        self.assertFalse(response.data['isFallback'])
        self.assertEqual(response.data['recommendedRate']['rateId'], 'se-ground')
        payload = request_mock.call_args.kwargs['json']
        self.assertEqual(payload['rate_options']['carrier_ids'], ['se-1'])
        self.assertEqual(request_mock.call_args.kwargs['headers']['API-Key'], 'test-key')

    @override_settings(SHIPSTATION_API_KEY='test-key')
    @mock.patch('storefront.shipping.shipengine.requests.request',
                side_effect=requests.exceptions.ConnectionError('down'))
    def test_upstream_failure_uses_fallback(self, request_mock):
        response = self.client.post('/api/v1/shipping/shipengine/rates/',
                                    {'address': {**ADDRESS, 'state': 'CA'}, 'items': self.items}, format='json')
        self.assertTrue(response.data['isFallback'])
        self.assertEqual(response.data['rates'][0]['totalCost'], 9.99)

    @override_settings(SHIPSTATION_API_KEY='test-key')
    @mock.patch('storefront.shipping.shipengine.requests.request', side_effect=fake_shipengine)
    def test_catalog_weight_used(self, request_mock):
        product = TestDataFactory.create_product(weight=Decimal('2'), weight_unit='pound')
        self.client.post('/api/v1/shipping/shipengine/rates/',
                         {'address': ADDRESS, 'items': [{'productId': product.id, 'quantity': 1}]}, format='json')
        payload = request_mock.call_args.kwargs['json']
        self.assertEqual(payload['shipment']['packages'][0]['weight'], {'value': 32.0, 'unit': 'ounce'})


class ProxyEndpointTests(TestCase):
    """Test the staff ShipEngine endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))

    @override_settings(SHIPSTATION_API_KEY='')
    def test_unconfigured_returns_503(self):
        response = self.client.get('/api/v1/shipping/shipengine/carriers/')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

    @override_settings(SHIPSTATION_API_KEY='test-key')
    @mock.patch('storefront.shipping.shipengine.requests.request', side_effect=fake_shipengine)
    def test_upstream_error_returns_502(self, request_mock):
        response = self.client.get('/api/v1/shipping/shipengine/carriers/se-1/services/')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertIn('not_found: Unknown', response.data['error'])

    @override_settings(SHIPSTATION_API_KEY='test-key')
    @mock.patch('storefront.shipping.shipengine.requests.request', side_effect=fake_shipengine)
    def test_carriers(self, request_mock):
        response = self.client.get('/api/v1/shipping/shipengine/carriers/')
        self.assertEqual(response.data, [{'carrier_id': 'se-1'}])

    @override_settings(SHIPSTATION_API_KEY='test-key')
    @mock.patch('storefront.shipping.shipengine.requests.request')
    def test_non_json_body_returns_502(self, request_mock):
        response = fake_response(None)
        response.json.side_effect = ValueError('Expecting value')
        request_mock.return_value = response
        response = self.client.get('/api/v1/shipping/shipengine/carriers/')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertIn('invalid response', response.data['error'])

    @override_settings(SHIPSTATION_API_KEY='test-key')
    @mock.patch('storefront.shipping.shipengine.requests.request',
                return_value=fake_response([{'status': 'verified', 'matched_address': {'city_locality': 'COLUMBUS'}}]))
    def test_validate_address(self, request_mock):
        response = self.client.post('/api/v1/shipping/shipengine/validate-address/', {'address': ADDRESS},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'verified')
        sent = request_mock.call_args.kwargs['json']
        self.assertEqual(sent[0]['postal_code'], '43215')

    def test_validate_address_requires_city(self):
        response = self.client.post('/api/v1/shipping/shipengine/validate-address/', {'address': {'state': 'OH'}},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'MISSING_ADDRESS')

    def test_track_requires_params(self):
        response = self.client.get('/api/v1/shipping/shipengine/track/?carrier_code=ups')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_labels_require_rate(self):
        response = self.client.post('/api/v1/shipping/shipengine/labels/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customers_cannot_list_carriers(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/shipping/shipengine/carriers/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    @override_settings(SHIPSTATION_API_KEY='test-key')
    @mock.patch('storefront.shipping.shipengine.requests.request',
                return_value=fake_response({'message': 'Unauthorized'}, 401))
    def test_connection_invalid_key(self, request_mock):
        response = self.client.get('/api/v1/shipping/shipengine/test/')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertFalse(response.data['success'])
        self.assertIn('Invalid API key', response.data['message'])

    @override_settings(SHIPSTATION_API_KEY='')
    def test_status(self):
        self.client.logout()
        response = self.client.get('/api/v1/shipping/shipengine/status/')
        self.assertFalse(response.data['isConfigured'])
        self.assertNotIn('phone', response.data['origin'])
