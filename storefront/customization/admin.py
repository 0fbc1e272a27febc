from django.contrib import admin
from .models import EmbroideryOption, MaterialCost, CustomEmbroideryOrder


@admin.register(EmbroideryOption)
class EmbroideryOptionAdmin(admin.ModelAdmin):
    list_display = ['name', 'key', 'category', 'level', 'price', 'is_popular', 'is_active']
    list_filter = ['category', 'level', 'is_active', 'is_popular']
    search_fields = ['name', 'key', 'description']
    ordering = ['category', 'price']


@admin.register(MaterialCost)
class MaterialCostAdmin(admin.ModelAdmin):
    list_display = ['name', 'cost', 'width', 'length', 'waste_factor', 'is_active']
    list_filter = ['is_active']


@admin.register(CustomEmbroideryOrder)
class CustomEmbroideryOrderAdmin(admin.ModelAdmin):
    list_display = ['design_name', 'user', 'status', 'total_price', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['design_name', 'user__username', 'user__email']
    readonly_fields = ['material_costs', 'options_price', 'total_price', 'created_at', 'updated_at']
