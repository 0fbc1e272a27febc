import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Max, Q
from django.shortcuts import get_object_or_404

from storefront.core.roles import IsStaffRole, is_staff_user
from storefront.core.utils import create_audit_log
from .auto_reply import send_auto_reply
from .models import FAQ, Message, AutoReplyTemplate, AutoReplySettings
from .serializers import (
    FAQSerializer, MessageSerializer, MessageCreateSerializer, MessageReplySerializer,
    AutoReplyTemplateSerializer, AutoReplySettingsSerializer,
)

logger = logging.getLogger(__name__)

User = get_user_model()

THREAD_MESSAGE_LIMIT = 100
RECENT_MESSAGE_LIMIT = 50
QUICK_QUESTION_COUNT = 6


def _staff_required():
    return Response({'error': 'Staff access required'}, status=status.HTTP_403_FORBIDDEN)


def _reorder(model, ids, field):
    """Set `field` to the 1-based position of each id. Returns an error message or None."""
    if not isinstance(ids, list) or not ids:
        return 'order must be a non-empty list of ids'
    try:
        ids = [int(i) for i in ids]
    except (TypeError, ValueError):
        return 'order must contain numeric ids'
    existing = set(model.objects.filter(pk__in=ids).values_list('pk', flat=True))
    missing = [i for i in ids if i not in existing]
    if missing:
        return f"Unknown ids: {', '.join(str(i) for i in missing)}"
    with transaction.atomic():
        for position, pk in enumerate(ids, start=1):
            model.objects.filter(pk=pk).update(**{field: position})
    return None


# FAQ views
@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def faq_list_create(request):
    if request.method == 'GET':
        queryset = FAQ.objects.all()
        status_filter = request.query_params.get('status')
        if not is_staff_user(request.user):
            queryset = queryset.filter(status='active')
        elif status_filter in ('active', 'inactive'):
            queryset = queryset.filter(status=status_filter)

        category = request.query_params.get('category')
        if category:
            queryset = queryset.filter(category=category)
        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(Q(question__icontains=search) | Q(answer__icontains=search))
        return Response(FAQSerializer(queryset, many=True).data)

    if not is_staff_user(request.user):
        return _staff_required()
    serializer = FAQSerializer(data=request.data)
    if serializer.is_valid():
        faq = serializer.save()
        create_audit_log(request=request, action='create', model_name='FAQ', object_id=faq.id,
                         object_name=faq.question[:255])
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([AllowAny])
def faq_categories(request):
    queryset = FAQ.objects.all()
    if not is_staff_user(request.user):
        queryset = queryset.filter(status='active')
    categories = sorted(set(queryset.values_list('category', flat=True)))
    return Response(categories)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([AllowAny])
def faq_detail(request, pk):
    faq = get_object_or_404(FAQ, pk=pk)

    if request.method == 'GET':
        if faq.status != 'active' and not is_staff_user(request.user):
            return Response({'error': 'FAQ not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(FAQSerializer(faq).data)

    if not is_staff_user(request.user):
        return _staff_required()

    if request.method in ('PUT', 'PATCH'):
        serializer = FAQSerializer(faq, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='FAQ', object_id=faq.id,
                             object_name=faq.question[:255])
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:
        create_audit_log(request=request, action='delete', model_name='FAQ', object_id=faq.id,
                         object_name=faq.question[:255])
        faq.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsStaffRole])
def faq_toggle(request, pk):
    faq = get_object_or_404(FAQ, pk=pk)
    faq.status = 'inactive' if faq.status == 'active' else 'active'
    faq.save(update_fields=['status', 'updated_at'])
    create_audit_log(request=request, action='status_change', model_name='FAQ', object_id=faq.id,
                     changes={'status': faq.status})
    return Response(FAQSerializer(faq).data)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsStaffRole])
def faq_order(request):
    """Persist a new FAQ order: {order: [id, ...]}"""
    error = _reorder(FAQ, request.data.get('order'), 'sort_order')
    if error:
        return Response({'error': error}, status=status.HTTP_400_BAD_REQUEST)
    return Response(FAQSerializer(FAQ.objects.all(), many=True).data)


# Message views
def _thread_queryset(customer_id=None, guest_id=None):
    if customer_id:
        return Message.objects.filter(customer_id=customer_id)
    return Message.objects.filter(guest_id=guest_id, customer__isnull=True)


def _last_messages(queryset, limit=THREAD_MESSAGE_LIMIT):
    """The newest `limit` messages, oldest first"""
    latest = list(queryset.select_related('customer').order_by('-created_at', '-id')[:limit])
    latest.reverse()
    return latest


@api_view(['POST'])
@permission_classes([AllowAny])
def message_create(request):
    """A customer or guest sends a chat message"""
    serializer = MessageCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    if request.user.is_authenticated:
        message = Message.objects.create(
            customer=request.user, email=request.user.email, sender='user', sender_user=request.user,
            text=data['text'], message_type=data['message_type'], attachment=data['attachment'],
        )
    else:
        if not data.get('guest_id'):
            return Response({'error': 'guest_id is required for guest messages'}, status=status.HTTP_400_BAD_REQUEST)
        message = Message.objects.create(
            guest_id=data['guest_id'], email=data.get('email') or None, is_guest=True, sender='user',
            text=data['text'], message_type=data['message_type'], attachment=data['attachment'],
        )

    reply, delay_ms = send_auto_reply(message)
    return Response({
        'message': MessageSerializer(message).data,
        'autoReply': MessageSerializer(reply).data if reply else None,
        'delay_ms': delay_ms,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def message_reply(request):
    """Staff reply into a customer or guest conversation"""
    serializer = MessageReplySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    if data.get('customer_id'):
        customer = get_object_or_404(User, pk=data['customer_id'])
        message = Message.objects.create(
            customer=customer, email=customer.email, sender='admin', sender_user=request.user,
            text=data['text'], message_type=data['message_type'], attachment=data['attachment'],
        )
    else:
        if not _thread_queryset(guest_id=data['guest_id']).exists():
            return Response({'error': 'Guest conversation not found'}, status=status.HTTP_404_NOT_FOUND)
        first = _thread_queryset(guest_id=data['guest_id']).first()
        message = Message.objects.create(
            guest_id=data['guest_id'], email=first.email, is_guest=True, sender='admin', sender_user=request.user,
            text=data['text'], message_type=data['message_type'], attachment=data['attachment'],
        )
    logger.info(f"{request.user.username} replied to {message.thread_key}")
    return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def messages_by_customer(request, customer_id):
    if customer_id != request.user.id and not is_staff_user(request.user):
        return Response({'error': 'You do not have access to this conversation'}, status=status.HTTP_403_FORBIDDEN)
    messages = _last_messages(_thread_queryset(customer_id=customer_id))
    return Response(MessageSerializer(messages, many=True).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def messages_by_guest(request, guest_id):
    if not guest_id.startswith('guest_'):
        return Response({'error': "Guest id must start with 'guest_'"}, status=status.HTTP_400_BAD_REQUEST)
    messages = _last_messages(_thread_queryset(guest_id=guest_id))
    return Response(MessageSerializer(messages, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def message_threads(request):
    """Latest message of every conversation, newest first"""
    threads = Message.objects.order_by().values('customer_id', 'guest_id').annotate(
        latest_id=Max('id'),
        unread=Count('id', filter=Q(sender='user', is_read=False)),
    )
    unread = {row['latest_id']: row['unread'] for row in threads}
    latest = Message.objects.filter(pk__in=unread).select_related('customer').order_by('-created_at', '-id')

    results = []
    for message in latest:
        customer = message.customer
        results.append({
            'threadKey': message.thread_key,
            'customerId': message.customer_id,
            'guestId': message.guest_id or None,
            'isGuest': message.is_guest,
            'name': (customer.get_full_name() or customer.username) if customer else 'Guest',
            'email': customer.email if customer else message.email,
            'text': message.text,
            'type': message.message_type,
            'sender': message.sender,
            'timestamp': message.created_at,
            'unreadCount': unread[message.pk],
        })
    return Response(results)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def messages_recent(request):
    messages = Message.objects.select_related('customer').order_by('-created_at', '-id')[:RECENT_MESSAGE_LIMIT]
    return Response(MessageSerializer(messages, many=True).data)


@api_view(['PATCH'])
@permission_classes([AllowAny])
def messages_mark_read(request):
    """
    Mark a conversation read.
    Staff mark the customer's messages; customers and guests mark the shop's replies.
    """
    customer_id = request.data.get('customer_id')
    guest_id = request.data.get('guest_id')
    staff = is_staff_user(request.user)

    if customer_id:
        try:
            customer_id = int(customer_id)
        except (TypeError, ValueError):
            return Response({'error': 'customer_id must be a number'}, status=status.HTTP_400_BAD_REQUEST)
        if not staff and customer_id != getattr(request.user, 'id', None):
            return Response({'error': 'You do not have access to this conversation'},
                            status=status.HTTP_403_FORBIDDEN)
        queryset = _thread_queryset(customer_id=customer_id)
    elif guest_id and str(guest_id).startswith('guest_'):
        queryset = _thread_queryset(guest_id=guest_id)
    else:
        return Response({'error': 'customer_id or guest_id is required'}, status=status.HTTP_400_BAD_REQUEST)

    other_side = 'user' if staff else 'admin'
    updated = queryset.filter(sender=other_side, is_read=False).update(is_read=True)
    return Response({'updated': updated})


# Auto reply views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def auto_reply_list_create(request):
    if request.method == 'GET':
        return Response(AutoReplyTemplateSerializer(AutoReplyTemplate.objects.all(), many=True).data)

    serializer = AutoReplyTemplateSerializer(data=request.data)
    if serializer.is_valid():
        template = serializer.save(order=AutoReplyTemplate.objects.count() + 1)
        create_audit_log(request=request, action='create', model_name='AutoReplyTemplate',
                         object_id=template.id, object_name=template.title, object_reference=template.key)
        return Response(AutoReplyTemplateSerializer(template).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([AllowAny])
def auto_reply_active(request):
    templates = AutoReplyTemplate.objects.filter(is_active=True)
    return Response(AutoReplyTemplateSerializer(templates, many=True).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def auto_reply_quick_questions(request):
    titles = AutoReplyTemplate.objects.filter(is_active=True).values_list('title', flat=True)[:QUICK_QUESTION_COUNT]
    return Response(list(titles))


@api_view(['GET'])
@permission_classes([AllowAny])
def auto_reply_by_category(request, category):
    templates = AutoReplyTemplate.objects.filter(is_active=True, category__iexact=category)
    return Response(AutoReplyTemplateSerializer(templates, many=True).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def auto_reply_categories(request):
    categories = AutoReplyTemplate.objects.values_list('category', flat=True).distinct()
    return Response(sorted(set(categories)))


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsStaffRole])
def auto_reply_order(request):
    error = _reorder(AutoReplyTemplate, request.data.get('order'), 'order')
    if error:
        return Response({'error': error}, status=status.HTTP_400_BAD_REQUEST)
    return Response(AutoReplyTemplateSerializer(AutoReplyTemplate.objects.all(), many=True).data)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def auto_reply_detail(request, pk):
    template = get_object_or_404(AutoReplyTemplate, pk=pk)

    if request.method == 'GET':
        return Response(AutoReplyTemplateSerializer(template).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = AutoReplyTemplateSerializer(template, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:
        create_audit_log(request=request, action='delete', model_name='AutoReplyTemplate',
                         object_id=template.id, object_name=template.title, object_reference=template.key)
        template.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'PUT'])
@permission_classes([AllowAny])
def auto_reply_settings(request):
    reply_settings = AutoReplySettings.load()
    if request.method == 'GET':
        return Response(AutoReplySettingsSerializer(reply_settings).data)

    if not is_staff_user(request.user):
        return _staff_required()
    serializer = AutoReplySettingsSerializer(reply_settings, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        create_audit_log(request=request, action='update', model_name='AutoReplySettings', object_id=1,
                         changes=dict(serializer.validated_data))
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
