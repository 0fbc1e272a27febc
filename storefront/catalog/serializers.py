from rest_framework import serializers
from .models import Category, Product, ProductReview, ProductVariant, slug_validator
from .utils import is_valid_image_value


class CategorySerializer(serializers.ModelSerializer):
    # Uniqueness is checked by the views (409 on conflict)
    slug = serializers.CharField(max_length=120, required=False, allow_blank=True, validators=[slug_validator])
    parent_name = serializers.CharField(source='parent.name', read_only=True, default=None)
    children_count = serializers.SerializerMethodField()
    products_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'slug', 'description', 'image', 'parent', 'parent_name', 'status',
                  'sort_order', 'children_count', 'products_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_children_count(self, obj):
        if hasattr(obj, 'children_total'):
            return obj.children_total
        return obj.children.count()

    def get_products_count(self, obj):
        if hasattr(obj, 'products_total'):
            return obj.products_total
        return obj.products.count()

    def validate_name(self, value):
        value = value.strip()
        if len(value) < 2:
            raise serializers.ValidationError('Name must be between 2 and 100 characters')
        return value

    def validate_image(self, value):
        if not is_valid_image_value(value):
            raise serializers.ValidationError('Image must be a valid URL or base64 data URL')
        return value


class CategoryTreeSerializer(serializers.ModelSerializer):
    children = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'slug', 'description', 'image', 'status', 'sort_order', 'children']

    def get_children(self, obj):
        children_map = self.context.get('children_map', {})
        children = children_map.get(obj.id, [])
        return CategoryTreeSerializer(children, many=True, context=self.context).data


class CategoryBriefSerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ['id', 'name', 'slug']


class ProductVariantSerializer(serializers.ModelSerializer):
    effective_price = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = ProductVariant
        fields = ['id', 'product', 'name', 'sku', 'attributes', 'price', 'effective_price', 'stock',
                  'is_active', 'created_at', 'updated_at']
        read_only_fields = ['product', 'created_at', 'updated_at']


class ProductSerializer(serializers.ModelSerializer):
    category = CategoryBriefSerializer(read_only=True)
    category_id = serializers.PrimaryKeyRelatedField(
        source='category', queryset=Category.objects.all(), write_only=True, required=False, allow_null=True
    )
    subcategory = CategoryBriefSerializer(read_only=True)
    subcategory_id = serializers.PrimaryKeyRelatedField(
        source='subcategory', queryset=Category.objects.all(), write_only=True, required=False, allow_null=True
    )
    slug = serializers.CharField(max_length=280, required=False, allow_blank=True, validators=[slug_validator])
    sku = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    primary_image = serializers.CharField(read_only=True)
    stock_status = serializers.CharField(read_only=True)
    variants = ProductVariantSerializer(many=True, read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'title', 'slug', 'description', 'price', 'compare_at_price', 'images',
                  'primary_image_index', 'primary_image', 'alt', 'category', 'category_id',
                  'subcategory', 'subcategory_id', 'status', 'featured', 'badges',
                  'available_colors', 'available_sizes', 'average_rating', 'total_reviews',
                  'stock', 'low_stock_threshold', 'stock_status', 'sku', 'weight', 'weight_unit',
                  'dimensions', 'materials', 'care_instructions', 'has_sizing', 'variants',
                  'created_at', 'updated_at']
        read_only_fields = ['average_rating', 'total_reviews', 'created_at', 'updated_at']

    def validate_title(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Title is required')
        return value

    def validate_images(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError('Images must be a list')
        for image in value:
            if not isinstance(image, str) or not is_valid_image_value(image):
                raise serializers.ValidationError('Each image must be a valid URL or base64 data URL')
        return value

    def validate_sku(self, value):
        if not value:
            return None
        qs = Product.objects.filter(sku=value)
        if self.instance:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError('A product with this SKU already exists.')
        return value

    def validate(self, attrs):
        images = attrs.get('images', self.instance.images if self.instance else [])
        index = attrs.get('primary_image_index', self.instance.primary_image_index if self.instance else 0)
        if images and index >= len(images):
            raise serializers.ValidationError({'primary_image_index': 'Primary image index is out of range'})
        return attrs


class ProductListSerializer(serializers.ModelSerializer):
    """Lightweight product representation for list endpoints"""
    category = CategoryBriefSerializer(read_only=True)
    primary_image = serializers.CharField(read_only=True)
    stock_status = serializers.CharField(read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'title', 'slug', 'price', 'compare_at_price', 'primary_image', 'alt',
                  'category', 'status', 'featured', 'badges', 'average_rating', 'total_reviews',
                  'stock', 'stock_status', 'sku', 'created_at', 'updated_at']


class InventoryStatusSerializer(serializers.ModelSerializer):
    stock_status = serializers.CharField(read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'title', 'sku', 'stock', 'low_stock_threshold', 'stock_status', 'status']


class ProductReviewSerializer(serializers.ModelSerializer):
    reviewer_name = serializers.SerializerMethodField()
    product_title = serializers.CharField(source='product.title', read_only=True)
    order_number = serializers.CharField(source='order.order_number', read_only=True, default=None)

    class Meta:
        model = ProductReview
        fields = ['id', 'product', 'product_title', 'user', 'reviewer_name', 'order', 'order_number',
                  'rating', 'title', 'comment', 'images', 'status', 'is_verified', 'helpful_votes',
                  'admin_response', 'admin_responded_at', 'created_at', 'updated_at']
        read_only_fields = fields

    def get_reviewer_name(self, obj):
        full_name = f"{obj.user.first_name} {obj.user.last_name}".strip()
        return full_name or obj.user.username


class ProductReviewCreateSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    order_id = serializers.IntegerField()
    rating = serializers.IntegerField(min_value=1, max_value=5)
    title = serializers.CharField(max_length=255)
    comment = serializers.CharField(max_length=5000)
    images = serializers.ListField(child=serializers.CharField(), required=False, default=list)

    def validate_title(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Title is required')
        return value

    def validate_images(self, value):
        for image in value:
            if not is_valid_image_value(image):
                raise serializers.ValidationError('Each image must be a valid URL or base64 data URL')
        return value


class ReviewStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ProductReview.STATUS_CHOICES)
    admin_response = serializers.CharField(required=False, allow_blank=True, max_length=2000)
