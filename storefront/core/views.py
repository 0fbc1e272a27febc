import logging

from rest_framework import status, serializers
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import APIException, AuthenticationFailed, PermissionDenied
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.shortcuts import get_object_or_404
from django.db.models import Q
from django.utils import timezone
from .models import Setting, AuditLog
from .pagination import paginate, apply_sorting
from .roles import (
    IsAdminRole, IsUserManager, LOGIN_AREAS, ROLE_GROUPS, ROLE_ADMIN, ROLE_MANAGER,
    ROLE_EMPLOYEE, ROLE_CUSTOMER, get_user_role, role_q,
)
from .serializers import (
    UserSerializer, UserCreateSerializer, UserUpdateSerializer,
    SettingSerializer, AuditLogSerializer
)
from .utils import create_audit_log, field_changes

logger = logging.getLogger(__name__)

User = get_user_model()

USER_SORT_FIELDS = {
    'createdAt': 'created_at',
    'updatedAt': 'updated_at',
    'firstName': 'first_name',
    'lastName': 'last_name',
    'email': 'email',
    'lastLoginAt': 'last_login',
}


class AccountLocked(APIException):
    status_code = 423
    default_detail = 'Account is temporarily locked due to too many failed login attempts'
    default_code = 'account_locked'


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Login with username or email, with lockout and login-area checks"""
    expected_role = serializers.CharField(required=False, allow_blank=True, write_only=True)

    def validate(self, attrs):
        identifier = attrs.get(self.username_field, '')
        account = User.objects.filter(
            Q(username=identifier) | Q(email__iexact=identifier)
        ).first()

        if account:
            if account.is_locked():
                raise AccountLocked()
            if not account.is_active:
                raise PermissionDenied('Account is deactivated. Please contact support.')
            attrs[self.username_field] = account.username

        try:
            data = super().validate(attrs)
        except AuthenticationFailed:
            if account:
                account.register_failed_login()
                logger.warning(f"Failed login for user {account.pk} ({account.failed_login_attempts} attempts)")
            raise AuthenticationFailed('Invalid username or password')

        expected_role = (attrs.get('expected_role') or '').lower()
        if expected_role in LOGIN_AREAS:
            role = get_user_role(self.user)
            if role not in LOGIN_AREAS[expected_role]:
                logger.warning(f"Login area mismatch for user {self.user.pk}: {role} -> {expected_role}")
                raise PermissionDenied(f'Access denied. This account ({role}) cannot access {expected_role} area.')

        self.user.reset_failed_logins()
        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        # Include groups in token
        token['groups'] = list(user.groups.values_list('name', flat=True))
        token['role'] = get_user_role(user)
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Custom token refresh serializer that handles deleted users gracefully"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except ObjectDoesNotExist:
            # User referenced in token doesn't exist anymore
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    """Custom token refresh view that handles deleted users gracefully"""
    serializer_class = CustomTokenRefreshSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """Customer registration endpoint"""
    serializer = UserCreateSerializer(data=request.data, context={'role': ROLE_CUSTOMER})
    if serializer.is_valid():
        user = serializer.save()
        token = CustomTokenObtainPairSerializer.get_token(user)
        create_audit_log(request=request, user=user, action='create', model_name='User',
                         object_id=user.id, object_name=user.username)
        return Response({
            'user': UserSerializer(user).data,
            'access': str(token.access_token),
            'refresh': str(token),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout(request):
    """Blacklist the refresh token so it cannot be used again"""
    refresh = request.data.get('refresh')
    if not refresh:
        return Response({'error': 'refresh token is required'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        RefreshToken(refresh).blacklist()
    except TokenError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response({'message': 'Logged out successfully'})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with role and dashboard access flags"""
    user = request.user
    user_data = UserSerializer(user).data
    user_data['groups'] = list(user.groups.values_list('name', flat=True))

    role = user_data['role']
    user_data['is_admin'] = role == ROLE_ADMIN
    user_data['can_access_admin'] = role in LOGIN_AREAS['admin']
    user_data['can_access_seller'] = role in LOGIN_AREAS['seller']
    user_data['can_access_employee'] = role in LOGIN_AREAS['employee']
    user_data['can_manage_users'] = role in (ROLE_ADMIN, ROLE_MANAGER)
    return Response(user_data)


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsUserManager])
def user_list_create(request):
    """List users (paginated, filtered) or create a new user with a role"""
    if request.method == 'GET':
        queryset = User.objects.all()

        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(
                Q(first_name__icontains=search) | Q(last_name__icontains=search) |
                Q(email__icontains=search) | Q(phone__icontains=search)
            )

        status_filter = request.query_params.get('status', 'all')
        if status_filter == 'active':
            queryset = queryset.filter(is_active=True)
        elif status_filter == 'inactive':
            queryset = queryset.filter(is_active=False)

        role = request.query_params.get('role')
        if role in ROLE_GROUPS:
            queryset = queryset.filter(role_q(role))
        elif role != 'all':
            # Staff listing by default
            queryset = queryset.exclude(role_q(ROLE_CUSTOMER))

        verified = request.query_params.get('verified', 'all')
        if verified == 'email':
            queryset = queryset.filter(email_verified=True)
        elif verified == 'phone':
            queryset = queryset.filter(phone_verified=True)
        elif verified == 'both':
            queryset = queryset.filter(email_verified=True, phone_verified=True)
        elif verified == 'none':
            queryset = queryset.filter(email_verified=False, phone_verified=False)

        queryset = apply_sorting(queryset, request, USER_SORT_FIELDS)
        users, pagination = paginate(queryset, request)
        return Response({
            'results': UserSerializer(users, many=True).data,
            'pagination': pagination,
        })
    else:
        role = request.data.get('role', ROLE_EMPLOYEE)
        if role not in ROLE_GROUPS:
            return Response({'error': f'Invalid role: {role}'}, status=status.HTTP_400_BAD_REQUEST)
        if role == ROLE_ADMIN and get_user_role(request.user) != ROLE_ADMIN:
            return Response({'error': 'Only admins can create admin users'}, status=status.HTTP_403_FORBIDDEN)
        serializer = UserCreateSerializer(data=request.data, context={'role': role})
        if serializer.is_valid():
            user = serializer.save()
            create_audit_log(request=request, action='create', model_name='User',
                             object_id=user.id, object_name=user.username, changes={'role': role})
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsUserManager])
def user_stats(request):
    """Headline user counts for the dashboard"""
    now = timezone.now()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    users_by_role = [
        {'roleName': role, 'count': User.objects.filter(role_q(role)).count()}
        for role in ROLE_GROUPS
    ]
    return Response({
        'totalUsers': User.objects.count(),
        'activeUsers': User.objects.filter(is_active=True).count(),
        'verifiedUsers': User.objects.filter(email_verified=True).count(),
        'newUsersThisMonth': User.objects.filter(created_at__gte=month_start).count(),
        'usersByRole': users_by_role,
    })


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsUserManager])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    user = get_object_or_404(User, pk=pk)
    acting_role = get_user_role(request.user)

    if request.method == 'GET':
        return Response(UserSerializer(user).data)

    if acting_role != ROLE_ADMIN and get_user_role(user) == ROLE_ADMIN:
        return Response({'error': 'Only admins can modify admin users'}, status=status.HTTP_403_FORBIDDEN)

    if request.method in ('PUT', 'PATCH'):
        if request.data.get('role') == ROLE_ADMIN and acting_role != ROLE_ADMIN:
            return Response({'error': 'Only admins can grant the admin role'}, status=status.HTTP_403_FORBIDDEN)
        serializer = UserUpdateSerializer(user, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            changes = field_changes(user, {k: v for k, v in serializer.validated_data.items() if k != 'role'})
            if 'role' in serializer.validated_data:
                changes['role'] = {'old': get_user_role(user), 'new': serializer.validated_data['role']}
            serializer.save()
            create_audit_log(request=request, action='update', model_name='User',
                             object_id=user.id, object_name=user.username, changes=changes)
            return Response(UserSerializer(user).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='User',
                         object_id=user.id, object_name=user.username)
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsUserManager])
def user_status(request, pk):
    """Activate or deactivate a user"""
    user = get_object_or_404(User, pk=pk)
    is_active = request.data.get('isActive')
    if not isinstance(is_active, bool):
        return Response({'error': 'isActive must be a boolean value'}, status=status.HTTP_400_BAD_REQUEST)
    if user.pk == request.user.pk and not is_active:
        return Response({'error': 'You cannot deactivate your own account'}, status=status.HTTP_400_BAD_REQUEST)
    if get_user_role(user) == ROLE_ADMIN and get_user_role(request.user) != ROLE_ADMIN:
        return Response({'error': 'Only admins can modify admin users'}, status=status.HTTP_403_FORBIDDEN)

    user.is_active = is_active
    user.save(update_fields=['is_active', 'updated_at'])
    create_audit_log(request=request, action='status_change', model_name='User',
                     object_id=user.id, object_name=user.username, changes={'is_active': is_active})
    return Response({
        'message': f"User {'activated' if is_active else 'deactivated'} successfully",
        'user': UserSerializer(user).data,
    })


# Setting views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def setting_list_create(request):
    """List all settings or create a new setting"""
    if request.method == 'GET':
        settings = Setting.objects.all().order_by('key')
        serializer = SettingSerializer(settings, many=True)
        return Response(serializer.data)
    else:
        serializer = SettingSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def setting_detail(request, pk):
    """Retrieve, update or delete a setting"""
    setting = get_object_or_404(Setting, pk=pk)

    if request.method == 'GET':
        serializer = SettingSerializer(setting)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = SettingSerializer(setting, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        setting.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model_name', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    user_filter = request.query_params.get('user', None)
    if user_filter:
        queryset = queryset.filter(user_id=user_filter)

    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = apply_sorting(queryset, request, {'createdAt': 'created_at'})
    logs, pagination = paginate(queryset, request, default_limit=50)
    return Response({
        'results': AuditLogSerializer(logs, many=True).data,
        'pagination': pagination,
    })
