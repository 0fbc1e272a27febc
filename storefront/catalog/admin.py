from django.contrib import admin
from .models import Category, Product, ProductReview, ProductVariant


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'parent', 'status', 'sort_order', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['name', 'slug']
    prepopulated_fields = {'slug': ('name',)}
    ordering = ['sort_order', 'name']


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0
    fields = ['name', 'sku', 'attributes', 'price', 'stock', 'is_active']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['title', 'sku', 'category', 'price', 'stock', 'status', 'featured', 'created_at']
    list_filter = ['status', 'featured', 'category', 'created_at']
    search_fields = ['title', 'sku', 'description']
    prepopulated_fields = {'slug': ('title',)}
    ordering = ['title']
    readonly_fields = ['average_rating', 'total_reviews', 'created_at', 'updated_at']
    inlines = [ProductVariantInline]


@admin.register(ProductVariant)
class ProductVariantAdmin(admin.ModelAdmin):
    list_display = ['product', 'name', 'sku', 'price', 'stock', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'sku', 'product__title']


@admin.register(ProductReview)
class ProductReviewAdmin(admin.ModelAdmin):
    list_display = ['product', 'user', 'rating', 'status', 'is_verified', 'helpful_votes', 'created_at']
    list_filter = ['status', 'rating', 'created_at']
    search_fields = ['title', 'comment', 'product__title', 'user__username']
    readonly_fields = ['helpful_votes', 'created_at', 'updated_at']
