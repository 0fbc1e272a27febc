"""
Test suite for the catalog module
Tests: Categories, Category tree, Products, Filters, Inventory, Variants, Reviews
"""
from decimal import Decimal
from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from rest_framework import status

from storefront.catalog.models import Category, Product, ProductReview
from storefront.orders.models import Order
from storefront.catalog.utils import generate_unique_slug, is_valid_image_value
from storefront.core.roles import ROLE_ADMIN, ROLE_SELLER, ROLE_EMPLOYEE
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class CategoryTests(TestCase):
    """Test category endpoints"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.seller = TestDataFactory.create_user(role=ROLE_SELLER)
        self.apparel = Category.objects.create(name='Apparel', slug='apparel', sort_order=1)
        self.hoodies = Category.objects.create(name='Hoodies', slug='hoodies', parent=self.apparel)
        self.hidden = Category.objects.create(name='Hidden', slug='hidden', status='inactive')

    def test_public_list_hides_inactive(self):
        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        slugs = [c['slug'] for c in response.data]
        self.assertIn('apparel', slugs)
        self.assertNotIn('hidden', slugs)

    def test_tree(self):
        response = self.client.get('/api/v1/categories/?tree=true')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        apparel = next(c for c in response.data if c['slug'] == 'apparel')
        self.assertEqual([c['slug'] for c in apparel['children']], ['hoodies'])

    def test_stats(self):
        self.client.authenticate_user(self.seller)
        response = self.client.get('/api/v1/categories/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 3)
        self.assertEqual(response.data['inactive'], 1)
        self.assertEqual(response.data['rootCategories'], 2)
        self.assertEqual(response.data['categoriesWithChildren'], 1)

    def test_customer_cannot_create(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.post('/api/v1/categories/', {'name': 'Caps'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_generates_slug(self):
        self.client.authenticate_user(self.seller)
        response = self.client.post('/api/v1/categories/', {'name': 'Tote Bags'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'tote-bags')

    def test_duplicate_slug_conflicts(self):
        self.client.authenticate_user(self.seller)
        response = self.client.post('/api/v1/categories/', {'name': 'Apparel Two', 'slug': 'apparel'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_cannot_parent_to_descendant(self):
        self.client.authenticate_user(self.seller)
        response = self.client.patch(f'/api/v1/categories/{self.apparel.id}/', {'parent': self.hoodies.id},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_with_children_requires_force(self):
        self.client.authenticate_user(self.seller)
        response = self.client.delete(f'/api/v1/categories/{self.apparel.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['childrenCount'], 1)

        response = self.client.delete(f'/api/v1/categories/{self.apparel.id}/?force=true')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Category.objects.filter(slug='hoodies').exists())

    def test_inactive_detail_hidden_from_public(self):
        response = self.client.get(f'/api/v1/categories/{self.hidden.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_seed_command_is_idempotent(self):
        call_command('seed_categories', stdout=StringIO())
        count = Category.objects.count()
        call_command('seed_categories', stdout=StringIO())
        self.assertEqual(Category.objects.count(), count)
        self.assertEqual(Category.objects.get(slug='caps').parent.slug, 'accessories')


class ProductTests(TestCase):
    """Test product endpoints and filters"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.apparel = Category.objects.create(name='Apparel', slug='apparel')
        self.hoodies = Category.objects.create(name='Hoodies', slug='hoodies', parent=self.apparel)
        self.hoodie = TestDataFactory.create_product(title='Embroidered Hoodie', price='45.00', stock=3,
                                                     category=self.hoodies)
        self.tee = TestDataFactory.create_product(title='Classic Tee', price='15.00', stock=0)
        self.draft = TestDataFactory.create_product(title='Draft Cap', status='draft')

    def test_public_list_only_active(self):
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        titles = [p['title'] for p in response.data['results']]
        self.assertNotIn('Draft Cap', titles)
        self.assertEqual(response.data['pagination']['total'], 2)

    def test_filter_by_parent_category_includes_descendants(self):
        response = self.client.get('/api/v1/products/?category=apparel')
        self.assertEqual([p['id'] for p in response.data['results']], [self.hoodie.id])

    def test_filter_search_and_price(self):
        response = self.client.get('/api/v1/products/?search=hoodie&min_price=40')
        self.assertEqual([p['id'] for p in response.data['results']], [self.hoodie.id])

    def test_sort_by_price_ascending(self):
        response = self.client.get('/api/v1/products/?sortBy=price&sortOrder=asc')
        prices = [p['price'] for p in response.data['results']]
        self.assertEqual(prices, sorted(prices))

    def test_create_product_generates_slug_and_sku(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/products/', {'title': 'Patch Cap', 'price': '22.50'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'patch-cap')
        self.assertTrue(response.data['sku'].startswith('PATC-'))

    def test_invalid_image_rejected(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/products/', {
            'title': 'Bad Image', 'price': '10.00', 'images': ['ftp://example.com/a.png'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_product_by_slug_hides_draft(self):
        response = self.client.get(f'/api/v1/products/slug/{self.draft.slug}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_employee_cannot_edit(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        response = self.client.patch(f'/api/v1/products/{self.hoodie.id}/', {'price': '1.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_stats(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/products/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 3)
        self.assertEqual(response.data['outOfStock'], 1)
        self.assertEqual(response.data['lowStock'], 1)


class InventoryTests(TestCase):
    """Test stock updates"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_SELLER))
        self.product = TestDataFactory.create_product(stock=10)

    def test_adjustment(self):
        response = self.client.put(f'/api/v1/products/{self.product.id}/inventory/', {'adjustment': -4},
                                   format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['stock'], 6)

    def test_negative_stock_rejected(self):
        response = self.client.put(f'/api/v1/products/{self.product.id}/inventory/', {'adjustment': -11},
                                   format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

    def test_bulk_update_is_all_or_nothing(self):
        response = self.client.put('/api/v1/products/inventory/bulk/', {
            'updates': [{'productId': self.product.id, 'stock': 3}, {'productId': 999999, 'stock': 1}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

    def test_bulk_update(self):
        response = self.client.put('/api/v1/products/inventory/bulk/', {
            'updates': [{'productId': self.product.id, 'stock': 3}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['updated'], 1)
        self.assertEqual(Product.objects.get(pk=self.product.id).stock_status, 'low_stock')

    def test_inventory_status_filter(self):
        sold_out = TestDataFactory.create_product(stock=0)
        response = self.client.get('/api/v1/products/inventory/status/', {'status': 'out_of_stock'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['id'] for p in response.data['results']], [sold_out.id])
        self.assertEqual(response.data['results'][0]['stock_status'], 'out_of_stock')

    def test_variants(self):
        response = self.client.post(f'/api/v1/products/{self.product.id}/variants/', {
            'name': 'Navy - XL', 'sku': 'HOOD-NAVY-XL', 'stock': 2,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['effective_price'], '20.00')


class ReviewTests(TestCase):
    """Test review submission, moderation and rating aggregates"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.customer = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product()
        self.order = TestDataFactory.create_order(self.customer, self.product)
        Order.objects.filter(pk=self.order.pk).update(status='delivered')

    def submit(self, **overrides):
        payload = {'product_id': self.product.id, 'order_id': self.order.id, 'rating': 5,
                   'title': 'Crisp stitching', 'comment': 'Thread colours match the proof.'}
        payload.update(overrides)
        return self.client.post('/api/v1/reviews/', payload, format='json')

    def approved_review(self, rating):
        buyer = TestDataFactory.create_user()
        order = TestDataFactory.create_order(buyer, self.product)
        return ProductReview.objects.create(product=self.product, user=buyer, order=order, rating=rating,
                                            title='Review', comment='Fine', status='approved')

    def test_submitted_review_waits_for_approval(self):
        self.client.authenticate_user(self.customer)
        response = self.submit()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        self.assertTrue(response.data['is_verified'])

        response = self.client.get(f'/api/v1/reviews/product/{self.product.id}/')
        self.assertEqual(response.data['results'], [])
        self.assertEqual(response.data['stats']['totalReviews'], 0)

    def test_approval_updates_product_rating(self):
        self.approved_review(4)
        self.product.update_review_stats()
        self.client.authenticate_user(self.customer)
        review_id = self.submit(rating=5).data['id']

        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/reviews/{review_id}/status/',
                                     {'status': 'approved', 'admin_response': 'Thanks!'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(response.data['admin_responded_at'])
        self.product.refresh_from_db()
        self.assertEqual(self.product.total_reviews, 2)
        self.assertEqual(self.product.average_rating, Decimal('4.50'))

        stats = self.client.get(f'/api/v1/reviews/product/{self.product.id}/').data['stats']
        self.assertEqual(stats['averageRating'], '4.50')
        self.assertEqual(stats['ratingDistribution'], {'5': 1, '4': 1, '3': 0, '2': 0, '1': 0})

    def test_delete_recomputes_rating(self):
        self.approved_review(5)
        low = self.approved_review(1)
        self.product.update_review_stats()
        self.assertEqual(self.product.average_rating, Decimal('3.00'))

        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/reviews/{low.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.product.refresh_from_db()
        self.assertEqual(self.product.total_reviews, 1)
        self.assertEqual(self.product.average_rating, Decimal('5.00'))

    def test_sort_by_rating(self):
        self.approved_review(2)
        self.approved_review(5)
        self.approved_review(3)
        response = self.client.get(f'/api/v1/reviews/product/{self.product.id}/',
                                   {'sortBy': 'rating', 'sortOrder': 'asc'})
        self.assertEqual([r['rating'] for r in response.data['results']], [2, 3, 5])

    def test_order_must_be_delivered(self):
        Order.objects.filter(pk=self.order.pk).update(status='shipped')
        self.client.authenticate_user(self.customer)
        response = self.submit()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(ProductReview.objects.exists())

    def test_product_must_be_in_order(self):
        other = TestDataFactory.create_product()
        self.client.authenticate_user(self.customer)
        response = self.submit(product_id=other.id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_review_someone_elses_order(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.submit()
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_duplicate_review_rejected(self):
        self.client.authenticate_user(self.customer)
        self.assertEqual(self.submit().status_code, status.HTTP_201_CREATED)
        response = self.submit(rating=1)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(ProductReview.objects.count(), 1)

    def test_rating_out_of_range(self):
        self.client.authenticate_user(self.customer)
        self.assertEqual(self.submit(rating=6).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.submit(rating=0).status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_cannot_moderate(self):
        review = self.approved_review(3)
        self.client.authenticate_user(self.customer)
        response = self.client.patch(f'/api/v1/reviews/{review.id}/status/', {'status': 'rejected'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.get('/api/v1/reviews/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_my_reviews(self):
        self.approved_review(4)
        self.client.authenticate_user(self.customer)
        self.submit()
        response = self.client.get('/api/v1/reviews/my-reviews/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['pagination']['total'], 1)

    def test_helpful_votes_on_approved_only(self):
        review = self.approved_review(4)
        response = self.client.post(f'/api/v1/reviews/{review.id}/helpful/')
        self.assertEqual(response.data['helpfulVotes'], 1)

        self.client.authenticate_user(self.customer)
        pending_id = self.submit().data['id']
        response = self.client.post(f'/api/v1/reviews/{pending_id}/helpful/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class CatalogUtilsTests(TestCase):

    def test_generate_unique_slug_appends_counter(self):
        Category.objects.create(name='Caps', slug='caps')
        self.assertEqual(generate_unique_slug(Category, 'Caps'), 'caps-2')

    def test_image_values(self):
        self.assertTrue(is_valid_image_value('https://example.com/a.png'))
        self.assertTrue(is_valid_image_value('data:image/png;base64,AAAA'))
        self.assertFalse(is_valid_image_value('javascript:alert(1)'))
