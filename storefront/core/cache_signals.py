"""
Cache invalidation signals.
Saving or deleting catalog and sales rows drops the caches built from them.
"""
import threading
from contextlib import contextmanager

from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from .cache_utils import PRODUCTS_LIST, CATEGORY_TREE, DASHBOARD, REPORTS

_thread_locals = threading.local()

# Model name -> caches built from it. Stock feeds the dashboard low-stock figures.
DEPENDENT_CACHES = {
    'Product': (PRODUCTS_LIST, DASHBOARD),
    'ProductVariant': (PRODUCTS_LIST, DASHBOARD),
    'Category': (CATEGORY_TREE, PRODUCTS_LIST),
    'Order': (DASHBOARD, REPORTS),
    'OrderItem': (DASHBOARD, REPORTS),
    'Payment': (DASHBOARD, REPORTS),
}


@contextmanager
def suspend_cache_signals():
    """
    Skip signal-driven invalidation inside the block.
    Bulk writers invalidate once themselves afterwards.
    """
    _thread_locals.suspended = True
    try:
        yield
    finally:
        _thread_locals.suspended = False


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def invalidate_products_cache():
    PRODUCTS_LIST.invalidate()


def invalidate_category_cache():
    CATEGORY_TREE.invalidate()


def invalidate_dashboard_cache():
    DASHBOARD.invalidate()
    REPORTS.invalidate()


@receiver([post_save, post_delete])
def invalidate_on_change(sender, instance, **kwargs):
    if is_suspended():
        return
    for namespace in DEPENDENT_CACHES.get(sender.__name__, ()):
        namespace.invalidate()
