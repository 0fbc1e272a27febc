"""
Shared page/limit/sortBy/sortOrder handling for list endpoints
"""
from django.core.paginator import Paginator

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _to_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def get_page_params(request, default_limit=DEFAULT_PAGE_SIZE, max_limit=MAX_PAGE_SIZE):
    """Parse and clamp page/limit query parameters"""
    page = max(_to_int(request.query_params.get('page'), 1), 1)
    limit = _to_int(request.query_params.get('limit'), default_limit)
    limit = min(max(limit, 1), max_limit)
    return page, limit


def apply_sorting(queryset, request, sort_fields, default_sort='createdAt', default_order='desc'):
    """
    Order a queryset by the whitelisted sortBy key.

    sort_fields maps API names (camelCase) to ORM field names. Unknown
    keys fall back to default_sort.
    """
    sort_by = request.query_params.get('sortBy', default_sort)
    if sort_by not in sort_fields:
        sort_by = default_sort
    sort_order = request.query_params.get('sortOrder', default_order).lower()
    if sort_order not in ('asc', 'desc'):
        sort_order = default_order
    field = sort_fields[sort_by]
    prefix = '-' if sort_order == 'desc' else ''
    # id as tie-breaker keeps pages stable
    return queryset.order_by(f'{prefix}{field}', f'{prefix}id')


def paginate(queryset, request, default_limit=DEFAULT_PAGE_SIZE, max_limit=MAX_PAGE_SIZE):
    """
    Slice a queryset into the requested page.
    Returns (page_items, pagination_dict).
    """
    page, limit = get_page_params(request, default_limit, max_limit)
    paginator = Paginator(queryset, limit)
    total = paginator.count
    total_pages = paginator.num_pages if total else 0
    if total and page > paginator.num_pages:
        items = []
    else:
        items = list(paginator.page(page).object_list) if total else []
    return items, {
        'page': page,
        'limit': limit,
        'total': total,
        'totalPages': total_pages,
    }
