"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from storefront.core.roles import set_user_role, ROLE_CUSTOMER
from storefront.catalog.models import Category, Product, ProductVariant
from storefront.customization.models import EmbroideryOption, MaterialCost
from storefront.orders.models import CartItem
from storefront.orders.services import create_order
from decimal import Decimal
import random
import string

User = get_user_model()

TEST_PASSWORD = 'Stitch-Pass-2024'

TEST_ADDRESS = {
    'firstName': 'Jane',
    'lastName': 'Doe',
    'email': 'jane@example.com',
    'phone': '5555550100',
    'street': '123 Main St',
    'city': 'Columbus',
    'state': 'OH',
    'zipCode': '43215',
    'country': 'US',
}


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password=TEST_PASSWORD, role=ROLE_CUSTOMER, **extra):
        """Create a test user in the group for `role`"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(username=username, email=email, password=password, **extra)
        if role:
            set_user_role(user, role)
        return user

    @staticmethod
    def create_category(name=None, parent=None, status='active'):
        """Create a test category"""
        if not name:
            name = f'Category {TestDataFactory.random_string(6)}'
        return Category.objects.create(
            name=name,
            slug=f'cat-{TestDataFactory.random_string(8)}',
            parent=parent,
            status=status,
        )

    @staticmethod
    def create_product(title=None, price='20.00', stock=10, category=None, status='active', **extra):
        """Create a test product"""
        if not title:
            title = f'Product {TestDataFactory.random_string(6)}'
        suffix = TestDataFactory.random_string(8)
        return Product.objects.create(
            title=title,
            slug=f'product-{suffix}',
            sku=f'SKU-{suffix.upper()}',
            price=Decimal(price),
            stock=stock,
            category=category,
            status=status,
            **extra
        )

    @staticmethod
    def create_variant(product, name='Red - Large', price=None, stock=5):
        """Create a test variant"""
        return ProductVariant.objects.create(
            product=product,
            name=name,
            sku=f'VAR-{TestDataFactory.random_string(8).upper()}',
            price=Decimal(price) if price is not None else None,
            stock=stock,
        )

    @staticmethod
    def create_option(key, category='coverage', price='5.00', incompatible=None, **extra):
        """Create an embroidery option"""
        return EmbroideryOption.objects.create(
            key=key,
            name=extra.pop('name', key.replace('-', ' ').title()),
            price=Decimal(price),
            category=category,
            incompatible=incompatible or [],
            **extra
        )

    @staticmethod
    def create_material_costs():
        """Rates used by the custom embroidery calculator"""
        rows = [
            ('Fabric', '5.00', '36', '36', '1.00'),
            ('Patch Attach', '2.00', '12', '12', '1.00'),
            ('Thread', '3.00', '0', '0', '1.00'),
            ('Bobbin', '1.00', '0', '0', '1.00'),
            ('Cut-Away Stabilizer', '4.00', '36', '36', '1.00'),
            ('Wash-Away Stabilizer', '4.00', '36', '36', '1.00'),
        ]
        return [
            MaterialCost.objects.create(
                name=name, cost=Decimal(cost), width=Decimal(width), length=Decimal(length),
                waste_factor=Decimal(waste),
            )
            for name, cost, width, length, waste in rows
        ]

    @staticmethod
    def create_cart_item(user, product, quantity=1, variant=None, customization=None):
        return CartItem.objects.create(
            user=user, product=product, variant=variant, quantity=quantity, customization=customization,
        )

    @staticmethod
    def create_order(user, product=None, quantity=1, shipping='0.00'):
        """Place an order for one product through the checkout service"""
        if product is None:
            product = TestDataFactory.create_product()
        return create_order(
            user,
            [{'product_id': product.id, 'quantity': quantity}],
            shipping_address=dict(TEST_ADDRESS, email=user.email),
            shipping_amount=Decimal(shipping),
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
