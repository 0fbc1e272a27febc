"""
Test suite for the orders module
Tests: Cart, Checkout, Payments, Stock deduction, Refunds, Refund requests, Status updates, Cancellation
"""
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from storefront.core.models import Setting
from storefront.core.roles import ROLE_ADMIN, ROLE_EMPLOYEE
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient, TEST_ADDRESS
from storefront.customization.models import CustomEmbroideryOrder
from storefront.orders.models import CartItem, Order, Payment, RefundRequest, MAX_CART_QUANTITY
from storefront.orders.services import (
    CheckoutError, RefundError, create_order, deduct_order_stock, record_payment, refund_order, price_line,
    request_refund, approve_refund_request,
)


class CartTests(TestCase):
    """Test cart endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(price='20.00', stock=5)
        TestDataFactory.create_option('coverage-50', price='5.00')

    def add(self, **body):
        return self.client.post('/api/v1/cart/items/', body, format='json')

    def test_add_and_merge_identical_lines(self):
        response = self.add(product_id=self.product.id, quantity=1)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.add(product_id=self.product.id, quantity=2)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quantity'], 3)
        self.assertEqual(CartItem.objects.filter(user=self.user).count(), 1)

    def test_different_customization_is_separate_line(self):
        self.add(product_id=self.product.id, quantity=1)
        response = self.add(product_id=self.product.id, quantity=1,
                            customization={'designs': {'front': {'coverage': 'coverage-50'}}})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['unit_price'], '20.00')
        self.assertEqual(response.data['line_total'], '25.00')
        self.assertEqual(CartItem.objects.filter(user=self.user).count(), 2)

    def test_merge_caps_quantity(self):
        big = TestDataFactory.create_product(stock=5000)
        self.add(product_id=big.id, quantity=600)
        response = self.add(product_id=big.id, quantity=600)
        self.assertEqual(response.data['quantity'], MAX_CART_QUANTITY)

    def test_insufficient_stock(self):
        response = self.add(product_id=self.product.id, quantity=6)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INSUFFICIENT_STOCK')

    def test_unknown_product(self):
        response = self.add(product_id=999999, quantity=1)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_invalid_customization(self):
        response = self.add(product_id=self.product.id, quantity=1,
                            customization={'designs': {'front': {'coverage': 'missing'}}})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cart_summary(self):
        self.add(product_id=self.product.id, quantity=2)
        response = self.client.get('/api/v1/cart/')
        self.assertEqual(response.data['summary'], {'itemCount': 2, 'lineCount': 1, 'subtotal': '40.00'})

    def test_update_quantity_and_delete(self):
        item_id = self.add(product_id=self.product.id, quantity=1).data['id']
        response = self.client.patch(f'/api/v1/cart/items/{item_id}/', {'quantity': 4}, format='json')
        self.assertEqual(response.data['quantity'], 4)
        response = self.client.patch(f'/api/v1/cart/items/{item_id}/', {'quantity': 0}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.delete(f'/api/v1/cart/items/{item_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_cannot_touch_other_users_item(self):
        other = TestDataFactory.create_user()
        item = TestDataFactory.create_cart_item(other, self.product)
        response = self.client.delete(f'/api/v1/cart/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_sync_skips_unknown_products(self):
        response = self.client.post('/api/v1/cart/sync/', {'items': [
            {'product_id': self.product.id, 'quantity': 2},
            {'product_id': 999999, 'quantity': 1},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['skipped'], [999999])
        self.assertEqual(response.data['summary']['lineCount'], 1)

    def test_review_queue_and_review(self):
        item_id = self.add(product_id=self.product.id, quantity=1,
                           customization={'designs': {'front': {'coverage': 'coverage-50'}}}).data['id']
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        response = self.client.get('/api/v1/cart/review-queue/')
        self.assertEqual([i['id'] for i in response.data['results']], [item_id])

        response = self.client.patch(f'/api/v1/cart/items/{item_id}/review/',
                                     {'review_status': 'approved'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(CartItem.objects.get(pk=item_id).review_status, 'approved')


class CheckoutTests(TestCase):
    """Test order creation"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(price='20.00', stock=10)

    def test_checkout_from_cart_with_tax(self):
        Setting.objects.create(key='TAX_RATE', value='0.10')
        TestDataFactory.create_cart_item(self.user, self.product, quantity=2)
        response = self.client.post('/api/v1/orders/checkout/', {
            'shipping_address': TEST_ADDRESS,
            'shipping_amount': '5.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['subtotal'], '40.00')
        self.assertEqual(response.data['tax'], '4.00')
        self.assertEqual(response.data['total'], '49.00')
        self.assertTrue(response.data['order_number'].startswith('ORD-'))
        self.assertFalse(CartItem.objects.filter(user=self.user).exists())

    def test_empty_cart(self):
        response = self.client.post('/api/v1/orders/checkout/', {'shipping_address': TEST_ADDRESS}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_missing_address_fields(self):
        TestDataFactory.create_cart_item(self.user, self.product)
        response = self.client.post('/api/v1/orders/checkout/', {
            'shipping_address': {'firstName': 'Jane'},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Missing address fields', response.data['error'])

    def test_prices_come_from_catalog(self):
        response = self.client.post('/api/v1/orders/checkout/', {
            'shipping_address': TEST_ADDRESS,
            'items': [{'product_id': self.product.id, 'quantity': 1}],
        }, format='json')
        self.assertEqual(response.data['items'][0]['unit_price'], '20.00')

    def test_per_design_customization_pricing(self):
        TestDataFactory.create_option('coverage-50', price='5.00')
        order = create_order(self.user, [{
            'product_id': self.product.id,
            'quantity': 2,
            'customization': {'designs': {'front': {'coverage': 'coverage-50'}}},
        }], shipping_address=TEST_ADDRESS)
        item = order.items.get()
        self.assertEqual(item.customization_price, Decimal('5.00'))
        self.assertEqual(item.line_total, Decimal('50.00'))

    def test_non_positive_design_quantity_rejected(self):
        TestDataFactory.create_option('coverage-50', price='5.00')
        for quantity in (0, -5):
            response = self.client.post('/api/v1/orders/checkout/', {
                'shipping_address': TEST_ADDRESS,
                'items': [{
                    'product_id': self.product.id,
                    'quantity': 1,
                    'customization': {'designs': {'front': {'coverage': 'coverage-50', 'quantity': quantity}}},
                }],
            }, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Order.objects.exists())

    def test_variant_price_overrides_product(self):
        variant = TestDataFactory.create_variant(self.product, price='25.00')
        self.assertEqual(price_line(self.product, variant, 2), (Decimal('25.00'), Decimal('0.00'), Decimal('50.00')))

    def test_inactive_product_rejected(self):
        draft = TestDataFactory.create_product(status='draft')
        with self.assertRaises(CheckoutError):
            create_order(self.user, [{'product_id': draft.id, 'quantity': 1}], shipping_address=TEST_ADDRESS)

    def test_my_orders(self):
        TestDataFactory.create_order(self.user, self.product, quantity=3)
        TestDataFactory.create_order(TestDataFactory.create_user(), self.product)
        response = self.client.get('/api/v1/orders/my-orders/')
        self.assertEqual(response.data['pagination']['total'], 1)
        self.assertEqual(response.data['results'][0]['item_count'], 3)

    def test_customer_cannot_view_other_order(self):
        order = TestDataFactory.create_order(TestDataFactory.create_user(), self.product)
        response = self.client.get(f'/api/v1/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PaymentTests(TestCase):
    """Test payments and stock deduction"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.client.authenticate_user(self.admin)
        self.customer = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(price='20.00', stock=10)
        self.order = TestDataFactory.create_order(self.customer, self.product, quantity=2)

    def pay(self, amount, **extra):
        return self.client.post(f'/api/v1/orders/{self.order.id}/payments/', {'amount': amount, **extra},
                                format='json')

    def test_partial_then_full_payment(self):
        response = self.pay('10.00')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['order']['payment_status'], 'processing')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

        response = self.pay('30.00')
        self.assertEqual(response.data['order']['payment_status'], 'completed')
        self.assertEqual(response.data['order']['status'], 'preparing')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 8)

    def test_stock_deducted_once(self):
        self.pay('40.00')
        self.pay('5.00')
        self.assertFalse(deduct_order_stock(self.order))
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 8)

    def test_failed_payment(self):
        response = self.pay('40.00', status='failed')
        self.assertEqual(response.data['order']['payment_status'], 'failed')
        self.assertFalse(response.data['order']['stock_deducted'])

    def test_stock_clamped_at_zero(self):
        scarce = TestDataFactory.create_product(price='10.00', stock=1)
        order = TestDataFactory.create_order(self.customer, scarce, quantity=3)
        record_payment(order, order.total)
        scarce.refresh_from_db()
        self.assertEqual(scarce.stock, 0)

    def test_variant_stock_is_deducted(self):
        variant = TestDataFactory.create_variant(self.product, stock=4)
        order = create_order(self.customer, [{'product_id': self.product.id, 'variant_id': variant.id, 'quantity': 3}],
                             shipping_address=TEST_ADDRESS)
        record_payment(order, order.total)
        variant.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(variant.stock, 1)
        self.assertEqual(self.product.stock, 10)

    def test_custom_embroidery_items_skip_stock(self):
        custom = CustomEmbroideryOrder.objects.create(
            user=self.customer, design_name='Logo', design_file='https://example.com/logo.png',
            total_price=Decimal('30.00'),
        )
        order = create_order(self.customer, [{'custom_embroidery_id': custom.id, 'quantity': 1}],
                             shipping_address=TEST_ADDRESS)
        self.assertEqual(order.total, Decimal('30.00'))
        record_payment(order, order.total)
        order.refresh_from_db()
        self.assertTrue(order.stock_deducted)
        self.assertEqual(order.items.get().title, 'Custom Embroidery: Logo')

    def test_no_payments_on_cancelled_order(self):
        self.order.status = 'cancelled'
        self.order.save()
        response = self.pay('40.00')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_owner_cannot_record_payment(self):
        self.client.authenticate_user(self.customer)
        response = self.pay('40.00', status='completed')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, 'pending')
        self.assertEqual(self.order.status, 'pending')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

        response = self.client.get(f'/api/v1/orders/{self.order.id}/payments/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_employee_records_payment(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        response = self.pay('40.00')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['order']['payment_status'], 'completed')


class RefundTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_ADMIN))
        self.product = TestDataFactory.create_product(price='20.00', stock=10)
        self.order = TestDataFactory.create_order(TestDataFactory.create_user(), self.product, quantity=2)
        record_payment(self.order, Decimal('40.00'))

    def refund(self, amount):
        return self.client.post(f'/api/v1/orders/{self.order.id}/refund/', {'amount': amount}, format='json')

    def test_partial_then_full_refund(self):
        response = self.refund('10.00')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['order']['payment_status'], 'partially_refunded')

        response = self.refund('40.00')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.refund('30.00')
        self.assertEqual(response.data['order']['payment_status'], 'refunded')
        self.assertEqual(response.data['order']['status'], 'refunded')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

    def test_refund_requires_admin(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        response = self.refund('10.00')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_refund_service_rejects_unpaid_order(self):
        unpaid = TestDataFactory.create_order(TestDataFactory.create_user(), self.product)
        with self.assertRaises(CheckoutError):
            refund_order(unpaid, Decimal('1.00'))
        self.assertFalse(Payment.objects.filter(order=unpaid).exists())


class RefundRequestTests(TestCase):
    """Test the customer refund request workflow"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.customer = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(price='20.00', stock=10)
        self.order = TestDataFactory.create_order(self.customer, self.product, quantity=2)
        record_payment(self.order, Decimal('40.00'))

    def open_request(self, **overrides):
        payload = {'order_id': self.order.id, 'reason': 'damaged_defective',
                   'description': 'Stitching came loose on the sleeve after one wash.'}
        payload.update(overrides)
        self.client.authenticate_user(self.customer)
        return self.client.post('/api/v1/refunds/', payload, format='json')

    def test_full_request_approved_refunds_order(self):
        response = self.open_request()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(response.data['amount'], '40.00')
        refund_id = response.data['id']

        self.client.authenticate_user(self.admin)
        response = self.client.put(f'/api/v1/refunds/{refund_id}/approve/', {'admin_notes': 'Photos checked'},
                                   format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'completed')
        self.assertEqual(response.data['refund']['amount'], '40.00')
        self.assertIsNotNone(response.data['completed_at'])

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, 'refunded')
        self.assertEqual(self.order.status, 'refunded')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

    def test_partial_request(self):
        response = self.open_request(refund_type='partial', amount='15.00')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        self.client.authenticate_user(self.admin)
        self.client.put(f"/api/v1/refunds/{response.data['id']}/approve/", {}, format='json')
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, 'partially_refunded')
        self.assertEqual(RefundRequest.objects.get().refund.amount, Decimal('15.00'))

    def test_partial_amount_over_balance_rejected(self):
        response = self.open_request(refund_type='partial', amount='40.01')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.open_request(refund_type='partial')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_one_open_request_per_order(self):
        self.assertEqual(self.open_request().status_code, status.HTTP_201_CREATED)
        response = self.open_request(reason='other')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(RefundRequest.objects.count(), 1)

    def test_unpaid_or_cancelled_order_not_eligible(self):
        unpaid = TestDataFactory.create_order(self.customer, self.product)
        response = self.open_request(order_id=unpaid.id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        Order.objects.filter(pk=self.order.pk).update(status='cancelled')
        response = self.open_request()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_refund_window_closes(self):
        Setting.objects.create(key='REFUND_TIME_LIMIT_DAYS', value='7')
        Order.objects.filter(pk=self.order.pk).update(
            status='delivered', delivered_at=timezone.now() - timedelta(days=8))
        response = self.open_request()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('window', response.data['error'])

        self.client.authenticate_user(self.customer)
        response = self.client.get(f'/api/v1/orders/{self.order.id}/refund-eligibility/')
        self.assertFalse(response.data['eligible'])
        self.assertEqual(response.data['refundableAmount'], '40.00')

    def test_cannot_request_for_someone_elses_order(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.post('/api/v1/refunds/', {
            'order_id': self.order.id, 'reason': 'other', 'description': 'Not my order but worth a try',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_reject_requires_reason(self):
        refund_id = self.open_request().data['id']
        self.client.authenticate_user(self.admin)
        response = self.client.put(f'/api/v1/refunds/{refund_id}/reject/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.put(f'/api/v1/refunds/{refund_id}/reject/',
                                   {'rejection_reason': 'Outside our damage policy'}, format='json')
        self.assertEqual(response.data['status'], 'rejected')
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, 'completed')

        # A closed request no longer blocks a new one
        self.assertEqual(self.open_request().status_code, status.HTTP_201_CREATED)

    def test_review_then_cancel_not_allowed(self):
        refund_id = self.open_request().data['id']
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        response = self.client.put(f'/api/v1/refunds/{refund_id}/review/')
        self.assertEqual(response.data['status'], 'under_review')

        self.client.authenticate_user(self.customer)
        response = self.client.post(f'/api/v1/refunds/{refund_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_cancels_pending_request(self):
        refund_id = self.open_request().data['id']
        response = self.client.post(f'/api/v1/refunds/{refund_id}/cancel/')
        self.assertEqual(response.data['status'], 'cancelled')

        self.client.authenticate_user(self.admin)
        response = self.client.put(f'/api/v1/refunds/{refund_id}/approve/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Payment.objects.filter(order=self.order, kind='refund').exists())

    def test_only_admin_approves(self):
        refund_id = self.open_request().data['id']
        response = self.client.put(f'/api/v1/refunds/{refund_id}/approve/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        response = self.client.put(f'/api/v1/refunds/{refund_id}/approve/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_visibility(self):
        refund_id = self.open_request().data['id']
        self.assertEqual(self.client.get(f'/api/v1/refunds/{refund_id}/').status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get('/api/v1/refunds/my-refunds/').data['pagination']['total'], 1)
        self.assertEqual(self.client.get('/api/v1/refunds/').status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(TestDataFactory.create_user())
        self.assertEqual(self.client.get(f'/api/v1/refunds/{refund_id}/').status_code,
                         status.HTTP_403_FORBIDDEN)

    def test_stats(self):
        self.open_request()
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/refunds/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['open'], 1)
        self.assertEqual(response.data['byStatus']['pending'], 1)
        self.assertEqual(response.data['totalRefunded'], '0.00')

    def test_approval_fails_when_balance_already_refunded(self):
        refund_request = request_refund(self.order, self.customer, 'wrong_item', 'Received the wrong colour',
                                        refund_type='partial', amount=Decimal('30.00'))
        refund_order(self.order, Decimal('20.00'))
        with self.assertRaises(RefundError):
            approve_refund_request(refund_request, self.admin)
        refund_request.refresh_from_db()
        self.assertEqual(refund_request.status, 'pending')


class OrderStatusTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.staff = TestDataFactory.create_user(role=ROLE_EMPLOYEE)
        self.customer = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(price='20.00', stock=10)
        self.order = TestDataFactory.create_order(self.customer, self.product, quantity=2)

    def test_shipped_at_set_once(self):
        self.client.authenticate_user(self.staff)
        response = self.client.patch(f'/api/v1/orders/{self.order.id}/status/',
                                     {'status': 'shipped', 'tracking_number': '1Z999'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        shipped_at = Order.objects.get(pk=self.order.id).shipped_at
        self.assertIsNotNone(shipped_at)

        self.client.patch(f'/api/v1/orders/{self.order.id}/status/', {'status': 'shipped'}, format='json')
        self.assertEqual(Order.objects.get(pk=self.order.id).shipped_at, shipped_at)

        response = self.client.patch(f'/api/v1/orders/{self.order.id}/status/', {'status': 'delivered'},
                                     format='json')
        self.assertIsNotNone(response.data['delivered_at'])
        self.assertEqual(response.data['tracking_number'], '1Z999')

    def test_customer_cannot_change_status(self):
        self.client.authenticate_user(self.customer)
        response = self.client.patch(f'/api/v1/orders/{self.order.id}/status/', {'status': 'shipped'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_customer_cancels_pending_order(self):
        self.client.authenticate_user(self.customer)
        response = self.client.post(f'/api/v1/orders/{self.order.id}/cancel/', {'reason': 'Changed my mind'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'cancelled')
        self.assertEqual(response.data['metadata']['cancel_reason'], 'Changed my mind')

    def test_customer_cannot_cancel_paid_order_but_staff_can(self):
        record_payment(self.order, self.order.total)
        self.client.authenticate_user(self.customer)
        response = self.client.post(f'/api/v1/orders/{self.order.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.client.authenticate_user(self.staff)
        response = self.client.post(f'/api/v1/orders/{self.order.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

    def test_staff_order_list_filters(self):
        TestDataFactory.create_order(self.customer, self.product)
        record_payment(self.order, self.order.total)
        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/orders/?payment_status=completed')
        self.assertEqual([o['id'] for o in response.data['results']], [self.order.id])
        response = self.client.get(f'/api/v1/orders/?search={self.order.order_number}')
        self.assertEqual(response.data['pagination']['total'], 1)
