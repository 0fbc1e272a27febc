"""
Test suite for the customers module
Tests: Customer list, Order statistics, Stats, Detail
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from storefront.core.roles import ROLE_EMPLOYEE, ROLE_SELLER
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storefront.orders.services import record_payment


class CustomerTests(TestCase):
    """Test customer endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.staff = TestDataFactory.create_user(role=ROLE_EMPLOYEE)
        self.client.authenticate_user(self.staff)
        self.alice = TestDataFactory.create_user(username='alice', first_name='Alice')
        self.bob = TestDataFactory.create_user(username='bob', is_active=False)
        TestDataFactory.create_user(role=ROLE_SELLER)

        product = TestDataFactory.create_product(price='20.00', stock=50)
        paid = TestDataFactory.create_order(self.alice, product, quantity=2)
        record_payment(paid, paid.total)
        TestDataFactory.create_order(self.alice, product, quantity=1)

    def test_list_only_customers_with_stats(self):
        response = self.client.get('/api/v1/customers/?sortBy=orderCount&sortOrder=desc')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([c['username'] for c in response.data['results']], ['alice', 'bob'])
        alice = response.data['results'][0]
        self.assertEqual(alice['orderCount'], 2)
        # Only completed payments count towards spend
        self.assertEqual(Decimal(alice['totalSpent']), Decimal('40.00'))
        self.assertIsNotNone(alice['lastOrderAt'])

    def test_filters(self):
        response = self.client.get('/api/v1/customers/?status=inactive')
        self.assertEqual([c['username'] for c in response.data['results']], ['bob'])
        response = self.client.get('/api/v1/customers/?search=ali')
        self.assertEqual(response.data['pagination']['total'], 1)

    def test_stats(self):
        response = self.client.get('/api/v1/customers/stats/')
        self.assertEqual(response.data['total'], 2)
        self.assertEqual(response.data['active'], 1)
        self.assertEqual(response.data['withOrders'], 1)
        self.assertEqual(response.data['newLast30Days'], 2)

    def test_detail_includes_recent_orders(self):
        response = self.client.get(f'/api/v1/customers/{self.alice.id}/')
        self.assertEqual(len(response.data['recentOrders']), 2)

    def test_staff_is_not_a_customer(self):
        response = self.client.get(f'/api/v1/customers/{self.staff.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_customers_cannot_list(self):
        self.client.authenticate_user(self.alice)
        response = self.client.get('/api/v1/customers/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
