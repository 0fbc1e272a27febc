"""
Test suite for the reports module
Tests: Dashboard KPIs, Sales by day, Top products, Caching
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from storefront.catalog.models import Product
from storefront.core.roles import ROLE_EMPLOYEE
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storefront.orders.models import Order
from storefront.orders.services import record_payment, refund_order


class ReportTests(TestCase):

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        self.customer = TestDataFactory.create_user()
        self.hoodie = TestDataFactory.create_product(title='Hoodie', price='20.00', stock=50)
        self.cap = TestDataFactory.create_product(title='Cap', price='20.00', stock=10)

        self.paid = TestDataFactory.create_order(self.customer, self.hoodie, quantity=2)
        record_payment(self.paid, self.paid.total)
        refund_order(self.paid, '10.00')
        self.pending = TestDataFactory.create_order(self.customer, self.hoodie, quantity=1)

    def test_dashboard(self):
        TestDataFactory.create_product(stock=0)
        TestDataFactory.create_product(stock=3)
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        # Completed payments less refunds
        self.assertEqual(Decimal(response.data['totalRevenue']), Decimal('30.00'))
        self.assertEqual(response.data['totalOrders'], 2)
        self.assertEqual(response.data['pendingOrders'], 1)
        self.assertEqual(response.data['ordersByStatus']['preparing'], 1)
        self.assertEqual(response.data['totalCustomers'], 1)
        self.assertEqual(response.data['totalProducts'], 4)
        self.assertEqual(response.data['lowStockProducts'], 1)
        self.assertEqual(response.data['outOfStockProducts'], 1)
        self.assertEqual(len(response.data['recentOrders']), 2)

    def test_dashboard_cached_until_sales_change(self):
        first = self.client.get('/api/v1/reports/dashboard/')
        # Queryset updates do not fire the invalidation signals
        Product.objects.update(status='draft')
        second = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(second.data['activeProducts'], first.data['activeProducts'])
        self.assertEqual(second.data['generatedAt'], first.data['generatedAt'])

        record_payment(self.pending, self.pending.total)
        third = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(third.data['activeProducts'], 0)
        self.assertEqual(Decimal(third.data['totalRevenue']), Decimal('50.00'))

    def test_sales_by_day(self):
        response = self.client.get('/api/v1/reports/sales/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['dateTo'], timezone.localdate().isoformat())
        self.assertEqual(len(response.data['days']), 1)
        self.assertEqual(response.data['totalOrders'], 2)
        self.assertEqual(Decimal(response.data['totalRevenue']), Decimal('60.00'))

    def test_sales_refreshes_after_new_order(self):
        self.client.get('/api/v1/reports/sales/')
        TestDataFactory.create_order(self.customer, self.cap, quantity=1)
        response = self.client.get('/api/v1/reports/sales/')
        self.assertEqual(response.data['totalOrders'], 3)

    def test_sales_excludes_cancelled(self):
        Order.objects.filter(pk=self.pending.pk).update(status='cancelled')
        response = self.client.get('/api/v1/reports/sales/')
        self.assertEqual(response.data['totalOrders'], 1)

    def test_top_products(self):
        TestDataFactory.create_order(self.customer, self.cap, quantity=5)
        response = self.client.get('/api/v1/reports/top-products/')
        products = response.data['products']
        self.assertEqual([p['productId'] for p in products], [self.cap.id, self.hoodie.id])
        self.assertEqual(products[0]['quantity'], 5)
        self.assertEqual(Decimal(products[0]['revenue']), Decimal('100.00'))
        self.assertEqual(products[1]['orders'], 2)

        response = self.client.get('/api/v1/reports/top-products/?limit=1')
        self.assertEqual(len(response.data['products']), 1)

    def test_bad_date_range(self):
        response = self.client.get('/api/v1/reports/sales/?date_from=2024-02-01&date_to=2024-01-01')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/reports/top-products/?date_from=yesterday')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get('/api/v1/reports/dashboard/?date_to=2024-13-01')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customers_forbidden(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
