from django.contrib import admin
from .models import FAQ, Message, AutoReplyTemplate, AutoReplySettings


@admin.register(FAQ)
class FAQAdmin(admin.ModelAdmin):
    list_display = ['question', 'category', 'sort_order', 'status', 'updated_at']
    list_filter = ['status', 'category']
    search_fields = ['question', 'answer']
    ordering = ['category', 'sort_order']


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'customer', 'guest_id', 'sender', 'message_type', 'is_read', 'is_auto_reply', 'created_at']
    list_filter = ['sender', 'message_type', 'is_read', 'is_guest', 'created_at']
    search_fields = ['text', 'email', 'guest_id', 'customer__email']


@admin.register(AutoReplyTemplate)
class AutoReplyTemplateAdmin(admin.ModelAdmin):
    list_display = ['title', 'key', 'category', 'order', 'is_active']
    list_filter = ['is_active', 'category']
    search_fields = ['title', 'content', 'key']


@admin.register(AutoReplySettings)
class AutoReplySettingsAdmin(admin.ModelAdmin):
    list_display = ['enabled', 'delay_ms', 'updated_at']
