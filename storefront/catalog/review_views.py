"""
Product review endpoints

Customers review products from their delivered orders; admins moderate.
Only approved reviews are public and count toward a product's rating.
"""
import logging

from django.db import IntegrityError, transaction
from django.db.models import Count, F
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response

from storefront.core.pagination import paginate, apply_sorting
from storefront.core.roles import IsAdminRole, is_staff_user
from storefront.core.utils import create_audit_log
from storefront.orders.models import Order
from .models import Product, ProductReview
from .serializers import ProductReviewSerializer, ProductReviewCreateSerializer, ReviewStatusSerializer

logger = logging.getLogger(__name__)

REVIEW_SORT_FIELDS = {
    'createdAt': 'created_at',
    'rating': 'rating',
    'helpful': 'helpful_votes',
}


def rating_summary(product):
    """Approved review count, average and per-star distribution"""
    counts = dict(
        product.reviews.filter(status='approved').order_by()
        .values_list('rating').annotate(total=Count('id'))
    )
    return {
        'totalReviews': product.total_reviews,
        'averageRating': str(product.average_rating),
        'ratingDistribution': {str(star): counts.get(star, 0) for star in range(5, 0, -1)},
    }


def _review_page(request, queryset, default_limit=10):
    queryset = apply_sorting(queryset.select_related('user', 'product', 'order'), request, REVIEW_SORT_FIELDS)
    reviews, pagination = paginate(queryset, request, default_limit=default_limit)
    return ProductReviewSerializer(reviews, many=True).data, pagination


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def review_list_create(request):
    """All reviews for moderation (staff) or submit a review for a delivered order"""
    if request.method == 'GET':
        if not is_staff_user(request.user):
            return Response({'error': 'You do not have permission to view all reviews'},
                            status=status.HTTP_403_FORBIDDEN)
        queryset = ProductReview.objects.all()
        review_status = request.query_params.get('status')
        if review_status:
            queryset = queryset.filter(status=review_status)
        product_id = request.query_params.get('product')
        if product_id and product_id.isdigit():
            queryset = queryset.filter(product_id=product_id)
        results, pagination = _review_page(request, queryset, default_limit=20)
        return Response({'results': results, 'pagination': pagination})

    serializer = ProductReviewCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    order = Order.objects.filter(pk=data['order_id'], user=request.user).first()
    if order is None:
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
    if order.status != 'delivered':
        return Response({'error': 'You can only review products from delivered orders'},
                        status=status.HTTP_400_BAD_REQUEST)
    product = Product.objects.filter(pk=data['product_id']).first()
    if product is None or not order.items.filter(product=product).exists():
        return Response({'error': 'This product is not part of the order'}, status=status.HTTP_400_BAD_REQUEST)

    try:
        with transaction.atomic():
            review = ProductReview.objects.create(
                product=product, user=request.user, order=order,
                rating=data['rating'], title=data['title'], comment=data['comment'], images=data['images'],
            )
    except IntegrityError:
        return Response({'error': 'You have already reviewed this product for this order'},
                        status=status.HTTP_400_BAD_REQUEST)

    logger.info(f"Review {review.id} submitted for product {product.id} by {request.user.username}")
    create_audit_log(request=request, action='create', model_name='ProductReview',
                     object_id=review.id, object_name=product.title, object_reference=order.order_number)
    return Response(ProductReviewSerializer(review).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([AllowAny])
def product_reviews(request, product_id):
    """Approved reviews of a product with its rating summary"""
    product = get_object_or_404(Product, pk=product_id, status='active')
    results, pagination = _review_page(request, product.reviews.filter(status='approved'))
    return Response({
        'results': results,
        'pagination': pagination,
        'stats': rating_summary(product),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_reviews(request):
    results, pagination = _review_page(request, ProductReview.objects.filter(user=request.user))
    return Response({'results': results, 'pagination': pagination})


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsAdminRole])
def review_status_update(request, pk):
    """Approve or reject a review, optionally replying to the customer"""
    review = get_object_or_404(ProductReview.objects.select_related('product'), pk=pk)
    serializer = ReviewStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_status = review.status
    with transaction.atomic():
        review.status = serializer.validated_data['status']
        update_fields = ['status', 'updated_at']
        if 'admin_response' in serializer.validated_data:
            review.admin_response = serializer.validated_data['admin_response']
            review.admin_responded_at = timezone.now() if review.admin_response else None
            update_fields += ['admin_response', 'admin_responded_at']
        review.save(update_fields=update_fields)
        review.product.update_review_stats()

    create_audit_log(request=request, action='update', model_name='ProductReview',
                     object_id=review.id, object_name=review.product.title,
                     changes={'status': {'old': old_status, 'new': review.status}})
    return Response(ProductReviewSerializer(review).data)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def review_delete(request, pk):
    review = get_object_or_404(ProductReview.objects.select_related('product'), pk=pk)
    product = review.product
    create_audit_log(request=request, action='delete', model_name='ProductReview',
                     object_id=review.id, object_name=product.title)
    with transaction.atomic():
        review.delete()
        product.update_review_stats()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([AllowAny])
def review_helpful(request, pk):
    review = get_object_or_404(ProductReview, pk=pk, status='approved')
    ProductReview.objects.filter(pk=review.pk).update(helpful_votes=F('helpful_votes') + 1)
    review.refresh_from_db(fields=['helpful_votes'])
    return Response({'helpfulVotes': review.helpful_votes})
