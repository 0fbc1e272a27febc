"""
Role handling on top of Django auth groups.

Each account belongs to one application group. Superuser/staff accounts
without an application group fall back to the admin role.
"""
from rest_framework.permissions import BasePermission

ROLE_ADMIN = 'admin'
ROLE_MANAGER = 'manager'
ROLE_SELLER = 'seller'
ROLE_EMPLOYEE = 'employee'
ROLE_CUSTOMER = 'customer'

# Highest rank first
ROLE_GROUPS = {
    ROLE_ADMIN: 'Admin',
    ROLE_MANAGER: 'Manager',
    ROLE_SELLER: 'Seller',
    ROLE_EMPLOYEE: 'Employee',
    ROLE_CUSTOMER: 'Customer',
}

STAFF_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_SELLER, ROLE_EMPLOYEE)

# Which accounts may sign in to each area of the front end
LOGIN_AREAS = {
    'admin': (ROLE_ADMIN,),
    'employee': (ROLE_ADMIN, ROLE_MANAGER, ROLE_SELLER, ROLE_EMPLOYEE),
    'seller': (ROLE_ADMIN, ROLE_SELLER),
    'customer': (ROLE_CUSTOMER,),
}


def get_user_role(user):
    """Return the role name of a user (None for anonymous users)"""
    if not user or not user.is_authenticated:
        return None
    group_names = set(user.groups.values_list('name', flat=True))
    for role, group_name in ROLE_GROUPS.items():
        if group_name in group_names:
            return role
    if user.is_superuser or user.is_staff:
        return ROLE_ADMIN
    return ROLE_CUSTOMER


def set_user_role(user, role):
    """Move a user into the group for `role`, dropping other application groups"""
    from django.contrib.auth.models import Group

    if role not in ROLE_GROUPS:
        raise ValueError(f"Unknown role: {role}")
    app_groups = Group.objects.filter(name__in=ROLE_GROUPS.values())
    user.groups.remove(*app_groups)
    group, _ = Group.objects.get_or_create(name=ROLE_GROUPS[role])
    user.groups.add(group)


def has_role(user, *roles):
    return get_user_role(user) in roles


def is_staff_user(user):
    return has_role(user, *STAFF_ROLES)


class RolePermission(BasePermission):
    allowed_roles = ()

    def has_permission(self, request, view):
        return has_role(request.user, *self.allowed_roles)


class IsAdminRole(RolePermission):
    allowed_roles = (ROLE_ADMIN,)


class IsUserManager(RolePermission):
    allowed_roles = (ROLE_ADMIN, ROLE_MANAGER)


class IsCatalogManager(RolePermission):
    allowed_roles = (ROLE_ADMIN, ROLE_SELLER)


class IsStaffRole(RolePermission):
    allowed_roles = STAFF_ROLES


def role_q(role):
    """Q object selecting the users whose effective role is `role`"""
    from django.contrib.auth import get_user_model
    from django.db.models import Q

    User = get_user_model()
    grouped_ids = User.groups.through.objects.filter(
        group__name__in=ROLE_GROUPS.values()
    ).values('user_id')
    ungrouped = ~Q(pk__in=grouped_ids)
    by_group = Q(pk__in=User.groups.through.objects.filter(
        group__name=ROLE_GROUPS[role]
    ).values('user_id'))

    if role == ROLE_ADMIN:
        return by_group | (ungrouped & (Q(is_superuser=True) | Q(is_staff=True)))
    if role == ROLE_CUSTOMER:
        return by_group | (ungrouped & Q(is_superuser=False, is_staff=False))
    return by_group
