from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from decimal import Decimal


class EmbroideryOption(models.Model):
    """A selectable embroidery style (coverage level, thread, backing, ...)"""
    CATEGORY_CHOICES = [
        ('coverage', 'Coverage'),
        ('threads', 'Threads'),
        ('material', 'Material'),
        ('border', 'Border'),
        ('backing', 'Backing'),
        ('upgrades', 'Upgrades'),
        ('cutting', 'Cutting'),
    ]
    LEVEL_CHOICES = [
        ('basic', 'Basic'),
        ('standard', 'Standard'),
        ('premium', 'Premium'),
        ('luxury', 'Luxury'),
    ]

    key = models.SlugField(max_length=100, unique=True, help_text="Stable identifier, e.g. coverage-75")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'),
                                validators=[MinValueValidator(Decimal('0.00'))])
    image = models.TextField(blank=True)
    stitches = models.PositiveIntegerField(default=0)
    estimated_time = models.CharField(max_length=50, default='0 days')
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, db_index=True)
    level = models.CharField(max_length=20, choices=LEVEL_CHOICES, default='basic')
    is_popular = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True, db_index=True)
    # Keys of options that cannot be combined with this one
    incompatible = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.category})"

    class Meta:
        db_table = 'embroidery_options'
        ordering = ['category', 'price', 'name']


class MaterialCost(models.Model):
    """Raw material rates used to price custom embroidery"""
    name = models.CharField(max_length=100, unique=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2)
    width = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    length = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    waste_factor = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('1.00'))
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'material_costs'
        ordering = ['name']


class CustomEmbroideryOrder(models.Model):
    """Customer-uploaded design priced from material costs and selected options"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('in_production', 'In Production'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='custom_embroidery_orders')
    design_name = models.CharField(max_length=255)
    design_file = models.TextField()
    design_preview = models.TextField(blank=True)
    dimensions = models.JSONField(default=dict)  # {"width": 3.5, "height": 2}
    selected_styles = models.JSONField(default=dict)
    material_costs = models.JSONField(default=dict)
    options_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    total_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    notes = models.TextField(blank=True)
    estimated_completion_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.design_name} ({self.get_status_display()})"

    class Meta:
        db_table = 'custom_embroidery_orders'
        ordering = ['-created_at']
