"""
Chat auto replies.

When a customer or guest writes in, one active template is picked at random
and posted back into the same conversation as an admin message. Clients
show it after `delay_ms`.
"""
import logging
import random

from django.conf import settings

from .defaults import DEFAULT_AUTO_REPLIES, GREETING_KEY
from .models import AutoReplySettings, AutoReplyTemplate, Message

logger = logging.getLogger(__name__)


def get_delay_ms(reply_settings=None):
    reply_settings = reply_settings or AutoReplySettings.load()
    if reply_settings.enabled:
        return reply_settings.delay_ms
    return getattr(settings, 'AUTO_REPLY_FALLBACK_DELAY_MS', 2000)


def choose_reply_text(rng=random):
    """Random active template content, or the greeting when none is active"""
    contents = list(AutoReplyTemplate.objects.filter(is_active=True).values_list('content', flat=True))
    if contents:
        return rng.choice(contents)
    greeting = AutoReplyTemplate.objects.filter(key=GREETING_KEY).values_list('content', flat=True).first()
    if greeting:
        return greeting
    return next(t['content'] for t in DEFAULT_AUTO_REPLIES if t['key'] == GREETING_KEY)


def send_auto_reply(message, rng=random):
    """
    Post an auto reply into the conversation of `message`.
    Returns (reply_message or None, delay_ms).
    """
    reply_settings = AutoReplySettings.load()
    delay_ms = get_delay_ms(reply_settings)
    if not reply_settings.enabled:
        return None, delay_ms

    reply = Message.objects.create(
        customer=message.customer,
        guest_id=message.guest_id,
        email=message.email,
        is_guest=message.is_guest,
        sender='admin',
        text=choose_reply_text(rng),
        is_auto_reply=True,
    )
    logger.info(f"Auto reply {reply.id} sent to {message.thread_key}")
    return reply, delay_ms
