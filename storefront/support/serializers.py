from rest_framework import serializers
from .models import FAQ, Message, AutoReplyTemplate, AutoReplySettings


class FAQSerializer(serializers.ModelSerializer):
    category = serializers.CharField(max_length=100, required=False, allow_blank=True)

    class Meta:
        model = FAQ
        fields = ['id', 'question', 'answer', 'category', 'sort_order', 'status', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_question(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Question is required')
        return value

    def validate_answer(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Answer is required')
        if len(value) > 5000:
            raise serializers.ValidationError('Answer must be at most 5000 characters')
        return value

    def validate_category(self, value):
        return value.strip() or 'General'


class MessageSerializer(serializers.ModelSerializer):
    customer_name = serializers.SerializerMethodField()
    customer_email = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = ['id', 'customer', 'customer_name', 'customer_email', 'guest_id', 'email', 'is_guest', 'sender',
                  'sender_user', 'text', 'message_type', 'attachment', 'is_read', 'is_auto_reply', 'created_at']
        read_only_fields = fields

    def get_customer_name(self, obj):
        if obj.customer_id:
            return obj.customer.get_full_name() or obj.customer.username
        return None

    def get_customer_email(self, obj):
        if obj.customer_id:
            return obj.customer.email
        return obj.email


class MessageCreateSerializer(serializers.Serializer):
    text = serializers.CharField(required=False, allow_blank=True, default='')
    message_type = serializers.ChoiceField(choices=Message.TYPE_CHOICES, default='text')
    attachment = serializers.CharField(required=False, allow_blank=True, default='')
    guest_id = serializers.CharField(required=False, allow_blank=True, max_length=100)
    email = serializers.EmailField(required=False, allow_blank=True, allow_null=True)

    def validate_guest_id(self, value):
        if value and not value.startswith('guest_'):
            raise serializers.ValidationError("Guest id must start with 'guest_'")
        return value

    def validate(self, attrs):
        if not attrs.get('text', '').strip() and not attrs.get('attachment'):
            raise serializers.ValidationError('Message text or attachment is required')
        return attrs


class MessageReplySerializer(MessageCreateSerializer):
    customer_id = serializers.IntegerField(required=False, allow_null=True)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        if not attrs.get('customer_id') and not attrs.get('guest_id'):
            raise serializers.ValidationError('customer_id or guest_id is required')
        return attrs


class AutoReplyTemplateSerializer(serializers.ModelSerializer):
    class Meta:
        model = AutoReplyTemplate
        fields = ['id', 'key', 'title', 'content', 'is_active', 'category', 'order', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']
        extra_kwargs = {'order': {'required': False}}


class AutoReplySettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = AutoReplySettings
        fields = ['enabled', 'delay_ms', 'updated_at']
        read_only_fields = ['updated_at']
