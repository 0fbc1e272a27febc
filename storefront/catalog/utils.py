"""
Utility functions for catalog operations
"""
import re
import uuid

from django.utils import timezone
from django.utils.text import slugify

IMAGE_DATA_URL_RE = re.compile(r'^data:image/[a-zA-Z0-9.+-]+;base64,')
IMAGE_URL_RE = re.compile(r'^https?://', re.IGNORECASE)


def generate_unique_sku(base_name=None):
    """Generate a unique SKU"""
    from .models import Product

    prefix = base_name[:4].upper().replace(' ', '') if base_name else 'PRD'
    timestamp = timezone.now().strftime('%Y%m%d')
    unique_id = str(uuid.uuid4())[:8].upper()
    sku = f"{prefix}-{timestamp}-{unique_id}"

    # Ensure uniqueness
    while Product.objects.filter(sku=sku).exists():
        unique_id = str(uuid.uuid4())[:8].upper()
        sku = f"{prefix}-{timestamp}-{unique_id}"

    return sku


def generate_unique_slug(model, value, exclude_pk=None):
    """Slugify `value` and append -2, -3... until no other row uses it"""
    base = slugify(value)[:100] or 'item'
    slug = base
    counter = 2
    qs = model.objects.all()
    if exclude_pk:
        qs = qs.exclude(pk=exclude_pk)
    while qs.filter(slug=slug).exists():
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def is_valid_image_value(value):
    """Images are stored either as an http(s) URL or a base64 data URL"""
    if not value:
        return True
    return bool(IMAGE_URL_RE.match(value) or IMAGE_DATA_URL_RE.match(value))
