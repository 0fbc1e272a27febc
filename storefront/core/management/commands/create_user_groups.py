from django.core.management.base import BaseCommand
from django.contrib.auth.models import Group, Permission

from storefront.core.roles import ROLE_GROUPS


class Command(BaseCommand):
    help = 'Create Django user groups for role-based access: Admin, Manager, Seller, Employee, Customer'

    # Model permissions per group, as (app_label, codename prefix) pairs
    GROUP_PERMISSIONS = {
        'Manager': [('core', None), ('orders', None), ('support', None), ('catalog', 'view_')],
        'Seller': [('catalog', None), ('customization', None), ('orders', 'view_')],
        'Employee': [('orders', 'view_'), ('orders', 'change_'), ('support', None), ('catalog', 'view_')],
        'Customer': [],
    }

    def handle(self, *args, **options):
        created_count = 0
        existing_count = 0

        for group_name in ROLE_GROUPS.values():
            group, created = Group.objects.get_or_create(name=group_name)

            if created:
                self.stdout.write(self.style.SUCCESS(f'✓ Created group: {group_name}'))
                created_count += 1
            else:
                self.stdout.write(f'  Group already exists: {group_name}')
                existing_count += 1

            if group_name == 'Admin':
                group.permissions.set(Permission.objects.all())
                self.stdout.write('  Added all permissions to Admin group')
                continue

            permissions = Permission.objects.none()
            for app_label, prefix in self.GROUP_PERMISSIONS.get(group_name, []):
                qs = Permission.objects.filter(content_type__app_label=app_label)
                if prefix:
                    qs = qs.filter(codename__startswith=prefix)
                permissions = permissions | qs
            group.permissions.set(permissions.distinct())
            self.stdout.write(f'  Set {group.permissions.count()} permissions for {group_name} group')

        self.stdout.write(self.style.SUCCESS(
            f'\nCompleted: {created_count} groups created, {existing_count} groups already existed'
        ))
