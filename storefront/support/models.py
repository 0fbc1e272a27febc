from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class FAQ(models.Model):
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    ]

    question = models.CharField(max_length=1000)
    answer = models.TextField(max_length=5000)
    category = models.CharField(max_length=100, default='General', db_index=True)
    sort_order = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.question[:80]

    class Meta:
        db_table = 'faqs'
        ordering = ['sort_order', 'created_at']
        verbose_name = 'FAQ'
        verbose_name_plural = 'FAQs'


class Message(models.Model):
    """A chat message in a customer's (or guest's) conversation with the shop"""
    SENDER_CHOICES = [
        ('user', 'User'),
        ('admin', 'Admin'),
    ]
    TYPE_CHOICES = [
        ('text', 'Text'),
        ('image', 'Image'),
        ('file', 'File'),
    ]

    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, null=True, blank=True,
                                 related_name='chat_messages')
    guest_id = models.CharField(max_length=100, blank=True, db_index=True)
    email = models.EmailField(max_length=255, blank=True, null=True)
    is_guest = models.BooleanField(default=False)
    sender = models.CharField(max_length=10, choices=SENDER_CHOICES)
    sender_user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='sent_chat_messages')
    text = models.TextField(blank=True)
    message_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='text')
    attachment = models.TextField(blank=True)
    is_read = models.BooleanField(default=False)
    is_auto_reply = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def thread_key(self):
        if self.customer_id:
            return f"customer:{self.customer_id}"
        return f"guest:{self.guest_id}"

    class Meta:
        db_table = 'messages'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['customer', 'created_at'], name='idx_messages_customer'),
            models.Index(fields=['email'], name='idx_messages_email'),
        ]


class AutoReplyTemplate(models.Model):
    key = models.SlugField(max_length=100, unique=True)
    title = models.CharField(max_length=255)
    content = models.TextField()
    is_active = models.BooleanField(default=True)
    category = models.CharField(max_length=100, default='General')
    order = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    class Meta:
        db_table = 'auto_reply_templates'
        ordering = ['order', 'id']


class AutoReplySettings(models.Model):
    """Single-row settings for chat auto replies"""
    enabled = models.BooleanField(default=True)
    delay_ms = models.PositiveIntegerField(default=1000)
    updated_at = models.DateTimeField(auto_now=True)

    @classmethod
    def load(cls):
        obj, _ = cls.objects.get_or_create(pk=1)
        return obj

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'auto_reply_settings'
        verbose_name_plural = 'auto reply settings'
