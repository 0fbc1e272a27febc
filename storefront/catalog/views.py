import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from django.db import transaction
from django.db.models import Q, Count, Sum, F, DecimalField, ExpressionWrapper
from django.shortcuts import get_object_or_404
from decimal import Decimal

from storefront.core.cache_utils import PRODUCTS_LIST, CATEGORY_TREE
from storefront.core.pagination import paginate, apply_sorting
from storefront.core.roles import IsCatalogManager, IsStaffRole, is_staff_user, has_role, ROLE_ADMIN, ROLE_SELLER
from storefront.core.utils import create_audit_log
from .filters import ProductFilter
from .models import Category, Product, ProductVariant
from .serializers import (
    CategorySerializer, CategoryTreeSerializer, ProductSerializer, ProductListSerializer,
    ProductVariantSerializer, InventoryStatusSerializer,
)
from .utils import generate_unique_sku, generate_unique_slug

logger = logging.getLogger(__name__)

PRODUCT_SORT_FIELDS = {
    'createdAt': 'created_at',
    'updatedAt': 'updated_at',
    'price': 'price',
    'title': 'title',
    'rating': 'average_rating',
    'stock': 'stock',
}


def can_manage_catalog(user):
    return has_role(user, ROLE_ADMIN, ROLE_SELLER)


def _forbidden():
    return Response({'error': 'You do not have permission to modify the catalog'}, status=status.HTTP_403_FORBIDDEN)


def _check_category_slug(slug, exclude_pk=None):
    qs = Category.objects.filter(slug=slug)
    if exclude_pk:
        qs = qs.exclude(pk=exclude_pk)
    return not qs.exists()


def _check_category_parent(category, parent):
    """Return an error message when `parent` would create a cycle"""
    if parent is None or category is None:
        return None
    if parent.pk == category.pk:
        return 'Category cannot be its own parent'
    if parent.pk in category.get_descendant_ids():
        return 'Category cannot be a parent of its own descendant'
    return None


# Category views
@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def category_list_create(request):
    """List categories (flat or as a tree) or create a new category"""
    if request.method == 'GET':
        staff = is_staff_user(request.user)

        if request.query_params.get('tree') == 'true':
            cached_data, cache_key = CATEGORY_TREE.lookup(staff=staff)
            if cached_data is not None:
                return Response(cached_data)

            categories = Category.objects.all()
            if not staff:
                categories = categories.filter(status='active')
            children_map = {}
            roots = []
            for category in categories.order_by('sort_order', 'name'):
                if category.parent_id is None:
                    roots.append(category)
                else:
                    children_map.setdefault(category.parent_id, []).append(category)
            data = CategoryTreeSerializer(roots, many=True, context={'children_map': children_map}).data
            CATEGORY_TREE.store(cache_key, data)
            return Response(data)

        queryset = Category.objects.select_related('parent').annotate(
            children_total=Count('children', distinct=True),
            products_total=Count('products', distinct=True),
        )
        status_filter = request.query_params.get('status')
        if not staff:
            queryset = queryset.filter(status='active')
        elif status_filter in ('active', 'inactive'):
            queryset = queryset.filter(status=status_filter)

        parent = request.query_params.get('parent')
        if parent == 'null':
            queryset = queryset.filter(parent__isnull=True)
        elif parent:
            queryset = queryset.filter(parent_id=parent)

        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(description__icontains=search))

        serializer = CategorySerializer(queryset.order_by('sort_order', 'name'), many=True)
        return Response(serializer.data)
    else:
        if not can_manage_catalog(request.user):
            return _forbidden()
        serializer = CategorySerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        slug = serializer.validated_data.get('slug') or generate_unique_slug(Category, serializer.validated_data['name'])
        if not _check_category_slug(slug):
            return Response({'error': 'Category with this slug already exists'}, status=status.HTTP_409_CONFLICT)

        category = serializer.save(slug=slug)
        create_audit_log(request=request, action='create', model_name='Category',
                         object_id=category.id, object_name=category.name)
        return Response(CategorySerializer(category).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def category_stats(request):
    """Category counts for the dashboard"""
    return Response({
        'total': Category.objects.count(),
        'active': Category.objects.filter(status='active').count(),
        'inactive': Category.objects.filter(status='inactive').count(),
        'rootCategories': Category.objects.filter(parent__isnull=True).count(),
        'categoriesWithChildren': Category.objects.filter(children__isnull=False).distinct().count(),
    })


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([AllowAny])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category, pk=pk)

    if request.method == 'GET':
        if category.status != 'active' and not is_staff_user(request.user):
            return Response({'error': 'Category not found'}, status=status.HTTP_404_NOT_FOUND)
        data = CategorySerializer(category).data
        data['children'] = CategorySerializer(category.children.all(), many=True).data
        return Response(data)

    if not can_manage_catalog(request.user):
        return _forbidden()

    if request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        slug = serializer.validated_data.get('slug')
        if slug and not _check_category_slug(slug, exclude_pk=category.pk):
            return Response({'error': 'Category with this slug already exists'}, status=status.HTTP_409_CONFLICT)
        if 'slug' in serializer.validated_data and not slug:
            serializer.validated_data['slug'] = generate_unique_slug(
                Category, serializer.validated_data.get('name', category.name), exclude_pk=category.pk
            )

        if 'parent' in serializer.validated_data:
            error = _check_category_parent(category, serializer.validated_data['parent'])
            if error:
                return Response({'error': error}, status=status.HTTP_400_BAD_REQUEST)

        serializer.save()
        create_audit_log(request=request, action='update', model_name='Category',
                         object_id=category.id, object_name=category.name)
        return Response(CategorySerializer(category).data)
    else:  # DELETE
        children_count = category.children.count()
        force = request.query_params.get('force') == 'true'
        if children_count and not force:
            return Response({
                'error': 'Cannot delete category with subcategories. Use force=true to delete all subcategories.',
                'childrenCount': children_count,
            }, status=status.HTTP_400_BAD_REQUEST)

        create_audit_log(request=request, action='delete', model_name='Category',
                         object_id=category.id, object_name=category.name,
                         changes={'children_deleted': children_count})
        # Children cascade through the parent FK
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def product_list_create(request):
    """List products with filters/pagination or create a new product"""
    if request.method == 'GET':
        staff = is_staff_user(request.user)
        filters_dict = dict(request.query_params.items())
        filters_dict['_staff'] = staff

        cached_data, cache_key = PRODUCTS_LIST.lookup(sorted(filters_dict.items()))
        if cached_data is not None:
            response = Response(cached_data)
            response['Cache-Control'] = 'private, max-age=120, stale-while-revalidate=300'
            return response

        queryset = Product.objects.select_related('category')
        if not staff:
            queryset = queryset.filter(status='active')
        queryset = ProductFilter(request.query_params, queryset=queryset).qs
        queryset = apply_sorting(queryset, request, PRODUCT_SORT_FIELDS)

        products, pagination = paginate(queryset, request, default_limit=20)
        response_data = {
            'results': ProductListSerializer(products, many=True).data,
            'pagination': pagination,
        }
        PRODUCTS_LIST.store(cache_key, response_data)

        response = Response(response_data)
        response['Cache-Control'] = 'private, max-age=120, stale-while-revalidate=300'
        return response
    else:
        if not can_manage_catalog(request.user):
            return _forbidden()
        serializer = ProductSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        validated = serializer.validated_data
        slug = validated.get('slug') or generate_unique_slug(Product, validated['title'])
        if Product.objects.filter(slug=slug).exists():
            return Response({'error': 'Product with this slug already exists'}, status=status.HTTP_409_CONFLICT)
        sku = validated.get('sku') or generate_unique_sku(validated['title'])

        product = serializer.save(slug=slug, sku=sku)
        create_audit_log(request=request, action='create', model_name='Product',
                         object_id=product.id, object_name=product.title, object_reference=product.sku)
        return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def product_stats(request):
    """Product counts and inventory value"""
    value_expr = ExpressionWrapper(F('price') * F('stock'), output_field=DecimalField(max_digits=14, decimal_places=2))
    inventory_value = Product.objects.aggregate(total=Sum(value_expr))['total'] or Decimal('0.00')
    return Response({
        'total': Product.objects.count(),
        'active': Product.objects.filter(status='active').count(),
        'inactive': Product.objects.filter(status='inactive').count(),
        'draft': Product.objects.filter(status='draft').count(),
        'featured': Product.objects.filter(featured=True).count(),
        'lowStock': Product.objects.filter(stock__gt=0, stock__lte=F('low_stock_threshold')).count(),
        'outOfStock': Product.objects.filter(stock=0).count(),
        'inventoryValue': str(inventory_value),
    })


def _product_response(request, product):
    if product.status != 'active' and not is_staff_user(request.user):
        return Response({'error': 'Product not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(ProductSerializer(product).data)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([AllowAny])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product.objects.select_related('category', 'subcategory'), pk=pk)

    if request.method == 'GET':
        return _product_response(request, product)

    if not can_manage_catalog(request.user):
        return _forbidden()

    if request.method in ('PUT', 'PATCH'):
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        validated = serializer.validated_data
        if 'slug' in validated:
            slug = validated['slug'] or generate_unique_slug(Product, validated.get('title', product.title), exclude_pk=product.pk)
            if Product.objects.filter(slug=slug).exclude(pk=product.pk).exists():
                return Response({'error': 'Product with this slug already exists'}, status=status.HTTP_409_CONFLICT)
            validated['slug'] = slug
        if 'sku' in validated and not validated['sku']:
            validated['sku'] = product.sku or generate_unique_sku(validated.get('title', product.title))

        old_price = product.price
        serializer.save()
        changes = {'price': {'old': str(old_price), 'new': str(product.price)}} if old_price != product.price else {}
        create_audit_log(request=request, action='update', model_name='Product',
                         object_id=product.id, object_name=product.title,
                         object_reference=product.sku, changes=changes)
        return Response(ProductSerializer(product).data)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name='Product',
                         object_id=product.id, object_name=product.title, object_reference=product.sku)
        product.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([AllowAny])
def product_by_slug(request, slug):
    product = get_object_or_404(Product.objects.select_related('category', 'subcategory'), slug=slug)
    return _product_response(request, product)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsCatalogManager])
def product_inventory_update(request, pk):
    """Set stock to an absolute value or apply a relative adjustment"""
    with transaction.atomic():
        product = get_object_or_404(Product.objects.select_for_update(), pk=pk)
        old_stock = product.stock

        if 'stock' in request.data:
            try:
                new_stock = int(request.data['stock'])
            except (TypeError, ValueError):
                return Response({'error': 'stock must be an integer'}, status=status.HTTP_400_BAD_REQUEST)
        elif 'adjustment' in request.data:
            try:
                new_stock = old_stock + int(request.data['adjustment'])
            except (TypeError, ValueError):
                return Response({'error': 'adjustment must be an integer'}, status=status.HTTP_400_BAD_REQUEST)
        else:
            return Response({'error': 'Provide either stock or adjustment'}, status=status.HTTP_400_BAD_REQUEST)

        if new_stock < 0:
            return Response({'error': 'Stock cannot be negative'}, status=status.HTTP_400_BAD_REQUEST)

        product.stock = new_stock
        product.save(update_fields=['stock', 'updated_at'])

    create_audit_log(request=request, action='stock_adjust', model_name='Product',
                     object_id=product.id, object_name=product.title, object_reference=product.sku,
                     changes={'stock': {'old': old_stock, 'new': new_stock},
                              'reason': request.data.get('reason', '')})
    return Response(InventoryStatusSerializer(product).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def inventory_status(request):
    """Stock level of every product, optionally filtered by stock status"""
    queryset = Product.objects.all().order_by('stock', 'title')
    status_filter = request.query_params.get('status')
    if status_filter == 'out_of_stock':
        queryset = queryset.filter(stock=0)
    elif status_filter == 'low_stock':
        queryset = queryset.filter(stock__gt=0, stock__lte=F('low_stock_threshold'))
    elif status_filter == 'in_stock':
        queryset = queryset.filter(stock__gt=F('low_stock_threshold'))

    products, pagination = paginate(queryset, request, default_limit=50)
    return Response({
        'results': InventoryStatusSerializer(products, many=True).data,
        'pagination': pagination,
    })


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsCatalogManager])
def inventory_bulk_update(request):
    """Apply several absolute stock updates atomically"""
    updates = request.data.get('updates')
    if not isinstance(updates, list) or not updates:
        return Response({'error': 'updates must be a non-empty list'}, status=status.HTTP_400_BAD_REQUEST)

    parsed = []
    for entry in updates:
        try:
            product_id = int(entry['productId'])
            stock = int(entry['stock'])
        except (KeyError, TypeError, ValueError):
            return Response({'error': 'Each update needs integer productId and stock'}, status=status.HTTP_400_BAD_REQUEST)
        if stock < 0:
            return Response({'error': f'Stock cannot be negative (product {product_id})'}, status=status.HTTP_400_BAD_REQUEST)
        parsed.append((product_id, stock))

    with transaction.atomic():
        products = Product.objects.select_for_update().in_bulk([pid for pid, _ in parsed])
        missing = [pid for pid, _ in parsed if pid not in products]
        if missing:
            return Response({'error': f'Products not found: {missing}'}, status=status.HTTP_404_NOT_FOUND)

        for product_id, stock in parsed:
            product = products[product_id]
            product.stock = stock
            product.save(update_fields=['stock', 'updated_at'])

    logger.info(f"Bulk inventory update of {len(parsed)} products by user {request.user.pk}")
    create_audit_log(request=request, action='stock_adjust', model_name='Product', object_id='bulk',
                     changes={'updates': [{'productId': pid, 'stock': s} for pid, s in parsed]})
    return Response({
        'updated': len(parsed),
        'results': InventoryStatusSerializer([products[pid] for pid, _ in parsed], many=True).data,
    })


# Variant views
@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def variant_list_create(request, product_pk):
    """List a product's variants or add a variant"""
    product = get_object_or_404(Product, pk=product_pk)

    if request.method == 'GET':
        variants = product.variants.all().order_by('name')
        if not is_staff_user(request.user):
            variants = variants.filter(is_active=True)
        return Response(ProductVariantSerializer(variants, many=True).data)
    else:
        if not can_manage_catalog(request.user):
            return _forbidden()
        serializer = ProductVariantSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save(product=product)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsCatalogManager])
def variant_detail(request, pk):
    """Retrieve, update or delete a variant"""
    variant = get_object_or_404(ProductVariant, pk=pk)

    if request.method == 'GET':
        return Response(ProductVariantSerializer(variant).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ProductVariantSerializer(variant, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        variant.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
