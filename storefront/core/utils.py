"""Audit log helpers"""
import json
import logging

from django.core.serializers.json import DjangoJSONEncoder
from django.db import DatabaseError

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """First X-Forwarded-For hop, else REMOTE_ADDR"""
    meta = getattr(request, 'META', None)
    if not meta:
        return None
    forwarded = meta.get('HTTP_X_FORWARDED_FOR', '')
    ip = forwarded.split(',')[0].strip() if forwarded else meta.get('REMOTE_ADDR')
    return ip or None


def field_changes(instance, data):
    """
    {field: {'old': ..., 'new': ...}} for each value in `data` that differs
    from the instance. Call before saving. Related objects are compared by pk.
    """
    changes = {}
    for field, new in data.items():
        old = getattr(instance, field, None)
        old = getattr(old, 'pk', old)
        new = getattr(new, 'pk', new)
        if old != new:
            changes[field] = {'old': old, 'new': new}
    return changes


def _json_safe(changes):
    # Decimals, dates and UUIDs become strings
    return json.loads(json.dumps(changes or {}, cls=DjangoJSONEncoder))


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None):
    """
    Record an action against a model instance.

    The user and IP come from `request` unless `user` is given. Entries missing
    action, model_name or object_id are skipped. A failed insert is logged and
    never propagates to the caller.
    """
    if not action or not model_name or object_id is None:
        logger.warning(f"Audit log creation skipped: missing required fields "
                       f"(action={action}, model_name={model_name}, object_id={object_id})")
        return None

    audit_user = user if user is not None else getattr(request, 'user', None)
    if audit_user is not None and not audit_user.is_authenticated:
        audit_user = None

    try:
        return AuditLog.objects.create(
            user=audit_user,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name or '',
            object_reference=object_reference or '',
            changes=_json_safe(changes),
            ip_address=get_client_ip(request),
        )
    except (DatabaseError, TypeError, ValueError) as e:
        logger.error(f"Failed to create audit log for {model_name} {object_id}: {e}")
        return None
