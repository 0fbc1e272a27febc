from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class CustomerSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()
    orderCount = serializers.SerializerMethodField()
    totalSpent = serializers.SerializerMethodField()
    lastOrderAt = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'full_name', 'phone', 'is_active',
                  'email_verified', 'date_joined', 'last_login', 'orderCount', 'totalSpent', 'lastOrderAt']

    def get_full_name(self, obj):
        return obj.get_full_name() or obj.username

    def get_orderCount(self, obj):
        return getattr(obj, 'order_count', 0) or 0

    def get_totalSpent(self, obj):
        return str(getattr(obj, 'total_spent', None) or Decimal('0.00'))

    def get_lastOrderAt(self, obj):
        value = getattr(obj, 'last_order_at', None)
        return value.isoformat() if value else None
