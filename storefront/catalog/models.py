from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator, MinLengthValidator, RegexValidator
from django.db import models
from django.db.models import Avg, Count
from decimal import Decimal, ROUND_HALF_UP

slug_validator = RegexValidator(
    r'^[a-z0-9-]+$',
    'Slug can only contain lowercase letters, numbers, and hyphens'
)


class Category(models.Model):
    """Product categories (tree via parent)"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    ]

    name = models.CharField(max_length=100, validators=[MinLengthValidator(2)], db_index=True)
    slug = models.SlugField(max_length=120, unique=True, validators=[slug_validator])
    description = models.TextField(blank=True)
    # URL or data:image/...;base64 payload
    image = models.TextField(blank=True)
    parent = models.ForeignKey('self', on_delete=models.CASCADE, null=True, blank=True, related_name='children')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    sort_order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['sort_order', 'name']

    def get_descendant_ids(self):
        """All ids below this category (breadth first)"""
        descendant_ids = []
        frontier = [self.pk]
        while frontier:
            children = list(Category.objects.filter(parent_id__in=frontier).values_list('id', flat=True))
            descendant_ids.extend(children)
            frontier = children
        return descendant_ids


class Product(models.Model):
    """Storefront product"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('draft', 'Draft'),
    ]
    WEIGHT_UNIT_CHOICES = [
        ('ounce', 'Ounce'),
        ('pound', 'Pound'),
        ('gram', 'Gram'),
        ('kilogram', 'Kilogram'),
    ]

    title = models.CharField(max_length=255, db_index=True)
    slug = models.SlugField(max_length=280, unique=True, validators=[slug_validator])
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal('0.00'))])
    compare_at_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    images = models.JSONField(default=list, blank=True)
    primary_image_index = models.PositiveIntegerField(default=0)
    alt = models.CharField(max_length=255, blank=True)
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    subcategory = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='subcategory_products')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    featured = models.BooleanField(default=False)
    badges = models.JSONField(default=list, blank=True)
    available_colors = models.JSONField(default=list, blank=True)
    available_sizes = models.JSONField(default=list, blank=True)
    average_rating = models.DecimalField(max_digits=3, decimal_places=2, default=Decimal('0.00'))
    total_reviews = models.PositiveIntegerField(default=0)
    stock = models.PositiveIntegerField(default=0)
    low_stock_threshold = models.PositiveIntegerField(default=5)
    sku = models.CharField(max_length=100, unique=True, blank=True, null=True, db_index=True)
    weight = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    weight_unit = models.CharField(max_length=10, choices=WEIGHT_UNIT_CHOICES, default='ounce')
    dimensions = models.JSONField(default=dict, blank=True)
    materials = models.TextField(blank=True)
    care_instructions = models.TextField(blank=True)
    has_sizing = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.title} ({self.sku or 'NO-SKU'})"

    class Meta:
        db_table = 'products'

    @property
    def primary_image(self):
        if not self.images:
            return None
        index = self.primary_image_index if self.primary_image_index < len(self.images) else 0
        return self.images[index]

    @property
    def stock_status(self):
        if self.stock <= 0:
            return 'out_of_stock'
        if self.stock <= self.low_stock_threshold:
            return 'low_stock'
        return 'in_stock'

    def update_review_stats(self):
        """Recompute average_rating and total_reviews from approved reviews"""
        stats = self.reviews.filter(status='approved').aggregate(average=Avg('rating'), total=Count('id'))
        average = Decimal(str(stats['average'] or 0)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        self.average_rating = average
        self.total_reviews = stats['total']
        self.save(update_fields=['average_rating', 'total_reviews', 'updated_at'])


class ProductVariant(models.Model):
    """Product variants (size, color, etc.)"""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='variants')
    name = models.CharField(max_length=200)  # e.g., "Red - Large"
    sku = models.CharField(max_length=100, unique=True)
    attributes = models.JSONField(default=dict, blank=True)  # e.g., {"color": "red", "size": "L"}
    price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    stock = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product.title} - {self.name}"

    class Meta:
        db_table = 'product_variants'

    @property
    def effective_price(self):
        return self.price if self.price is not None else self.product.price


class ProductReview(models.Model):
    """A customer's rating of a product bought in a delivered order"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='reviews')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='product_reviews')
    order = models.ForeignKey('orders.Order', on_delete=models.SET_NULL, null=True, blank=True,
                              related_name='product_reviews')
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    title = models.CharField(max_length=255)
    comment = models.TextField()
    images = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    is_verified = models.BooleanField(default=True)
    helpful_votes = models.PositiveIntegerField(default=0)
    admin_response = models.TextField(blank=True)
    admin_responded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product.title} - {self.rating} stars"

    class Meta:
        db_table = 'product_reviews'
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(fields=['product', 'user', 'order'], name='uniq_product_review_per_order'),
        ]
