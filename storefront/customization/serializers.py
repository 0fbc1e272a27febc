from decimal import Decimal

from rest_framework import serializers
from .models import EmbroideryOption, MaterialCost, CustomEmbroideryOrder
from .pricing import ALL_CATEGORIES


class EmbroideryOptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = EmbroideryOption
        fields = ['id', 'key', 'name', 'description', 'price', 'image', 'stitches', 'estimated_time',
                  'category', 'level', 'is_popular', 'is_active', 'incompatible', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_incompatible(self, value):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise serializers.ValidationError('Incompatible must be a list of option keys')
        return value


class MaterialCostSerializer(serializers.ModelSerializer):
    class Meta:
        model = MaterialCost
        fields = ['id', 'name', 'cost', 'width', 'length', 'waste_factor', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate(self, attrs):
        for field in ('cost', 'width', 'length'):
            if field in attrs and attrs[field] < 0:
                raise serializers.ValidationError({field: 'Must not be negative'})
        if 'waste_factor' in attrs and attrs['waste_factor'] <= 0:
            raise serializers.ValidationError({'waste_factor': 'Must be greater than zero'})
        return attrs


class MaterialCalculationSerializer(serializers.Serializer):
    width = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=Decimal('0.01'))
    height = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=Decimal('0.01'))
    stitches = serializers.IntegerField(min_value=0, required=False, allow_null=True)


class CustomEmbroideryOrderSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = CustomEmbroideryOrder
        fields = ['id', 'user', 'username', 'design_name', 'design_file', 'design_preview', 'dimensions',
                  'selected_styles', 'material_costs', 'options_price', 'total_price', 'status', 'notes',
                  'estimated_completion_date', 'created_at', 'updated_at']
        read_only_fields = ['user', 'material_costs', 'options_price', 'total_price', 'status',
                            'estimated_completion_date', 'created_at', 'updated_at']


class CustomEmbroideryCreateSerializer(serializers.Serializer):
    design_name = serializers.CharField(max_length=255)
    design_file = serializers.CharField()
    design_preview = serializers.CharField(required=False, allow_blank=True, default='')
    width = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=Decimal('0.01'))
    height = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=Decimal('0.01'))
    stitches = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    selected_styles = serializers.DictField(required=False, default=dict)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_selected_styles(self, value):
        unknown = [c for c in value if c not in ALL_CATEGORIES]
        if unknown:
            raise serializers.ValidationError(f"Unknown categories: {', '.join(unknown)}")
        return value


class CustomEmbroideryStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=CustomEmbroideryOrder.STATUS_CHOICES)
    estimated_completion_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
