import django_filters
from django.db.models import Q
from .models import Product, Category


class ProductFilter(django_filters.FilterSet):
    """Storefront/dashboard product filter using django-filter"""

    # Basic search - title, description, SKU, materials
    search = django_filters.CharFilter(method='filter_search', label='Search')

    category = django_filters.CharFilter(method='filter_category', label='Category id or slug')
    status = django_filters.ChoiceFilter(choices=Product.STATUS_CHOICES)
    featured = django_filters.BooleanFilter(field_name='featured')
    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')
    in_stock = django_filters.BooleanFilter(method='filter_in_stock', label='In Stock')

    class Meta:
        model = Product
        fields = ['search', 'category', 'status', 'featured', 'min_price', 'max_price', 'in_stock']

    def filter_search(self, queryset, name, value):
        """Every word must appear in the title, description, SKU or materials"""
        value = (value or '').strip()
        if not value:
            return queryset
        for word in value.split():
            queryset = queryset.filter(
                Q(title__icontains=word) |
                Q(description__icontains=word) |
                Q(sku__icontains=word) |
                Q(materials__icontains=word)
            )
        return queryset

    def filter_category(self, queryset, name, value):
        """Match the category, its descendants, and products filed under it as subcategory"""
        if not value:
            return queryset
        lookup = Q(pk=value) if str(value).isdigit() else Q(slug=value)
        category = Category.objects.filter(lookup).first()
        if not category:
            return queryset.none()
        category_ids = [category.pk] + category.get_descendant_ids()
        return queryset.filter(Q(category_id__in=category_ids) | Q(subcategory_id__in=category_ids))

    def filter_in_stock(self, queryset, name, value):
        if value is None:
            return queryset
        return queryset.filter(stock__gt=0) if value else queryset.filter(stock=0)
