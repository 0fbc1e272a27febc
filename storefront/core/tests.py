"""
Test suite for the core module
Tests: Login, Lockout, Registration, Users, Roles, Pagination, Settings, Schema patches, Caching
"""
from datetime import timedelta
from io import StringIO
from unittest import mock

from django.core.cache import cache
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from storefront.core.cache_signals import suspend_cache_signals
from storefront.core.cache_utils import PRODUCTS_LIST, REPORTS, cached_query, make_cache_key
from storefront.core.management.commands.apply_schema_changes import run_statements, split_statements
from storefront.core.models import AuditLog, Setting, MAX_FAILED_LOGIN_ATTEMPTS
from storefront.core.roles import (
    get_user_role, set_user_role, role_q, ROLE_ADMIN, ROLE_MANAGER, ROLE_SELLER,
    ROLE_EMPLOYEE, ROLE_CUSTOMER,
)
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient, TEST_PASSWORD


class RoleTests(TestCase):
    """Test role resolution on top of groups"""

    def test_ungrouped_superuser_is_admin(self):
        user = TestDataFactory.create_user(role=None, is_superuser=True, is_staff=True)
        self.assertEqual(get_user_role(user), ROLE_ADMIN)

    def test_ungrouped_regular_user_is_customer(self):
        user = TestDataFactory.create_user(role=None)
        self.assertEqual(get_user_role(user), ROLE_CUSTOMER)

    def test_set_user_role_replaces_previous_group(self):
        user = TestDataFactory.create_user(role=ROLE_EMPLOYEE)
        set_user_role(user, ROLE_SELLER)
        self.assertEqual(get_user_role(user), ROLE_SELLER)
        self.assertEqual(list(user.groups.values_list('name', flat=True)), ['Seller'])

    def test_set_unknown_role_raises(self):
        user = TestDataFactory.create_user()
        with self.assertRaises(ValueError):
            set_user_role(user, 'owner')

    def test_role_q_matches_get_user_role(self):
        from django.contrib.auth import get_user_model
        User = get_user_model()
        customer = TestDataFactory.create_user()
        ungrouped = TestDataFactory.create_user(role=None)
        admin = TestDataFactory.create_user(role=None, is_staff=True)
        manager = TestDataFactory.create_user(role=ROLE_MANAGER)

        customers = set(User.objects.filter(role_q(ROLE_CUSTOMER)).values_list('pk', flat=True))
        self.assertEqual(customers, {customer.pk, ungrouped.pk})
        self.assertEqual(list(User.objects.filter(role_q(ROLE_ADMIN)).values_list('pk', flat=True)), [admin.pk])
        self.assertEqual(list(User.objects.filter(role_q(ROLE_MANAGER)).values_list('pk', flat=True)), [manager.pk])


class AuthTests(TestCase):
    """Test registration, login and lockout"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.user = TestDataFactory.create_user(username='janedoe', email='jane@example.com')

    def login(self, identifier, password=TEST_PASSWORD, **extra):
        return self.client.post('/api/v1/auth/login/', {'username': identifier, 'password': password, **extra},
                                format='json')

    def test_register_creates_customer(self):
        response = self.client.post('/api/v1/auth/register/', {
            'email': 'New@Example.com',
            'password': TEST_PASSWORD,
            'password_confirm': TEST_PASSWORD,
            'first_name': 'New',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['user']['email'], 'new@example.com')
        self.assertEqual(response.data['user']['role'], ROLE_CUSTOMER)
        self.assertIn('access', response.data)

    def test_register_rejects_mismatched_passwords(self):
        response = self.client.post('/api/v1/auth/register/', {
            'email': 'other@example.com',
            'password': TEST_PASSWORD,
            'password_confirm': 'Different-Pass-99',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_register_rejects_duplicate_email(self):
        response = self.client.post('/api/v1/auth/register/', {
            'email': 'JANE@example.com',
            'password': TEST_PASSWORD,
            'password_confirm': TEST_PASSWORD,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

    def test_login_with_username_or_email(self):
        for identifier in ('janedoe', 'jane@example.com'):
            response = self.login(identifier)
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertEqual(response.data['user']['username'], 'janedoe')

    def test_wrong_password_counts_failed_attempts(self):
        response = self.login('janedoe', password='wrong-password')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.user.refresh_from_db()
        self.assertEqual(self.user.failed_login_attempts, 1)

    def test_account_locks_after_repeated_failures(self):
        for _ in range(MAX_FAILED_LOGIN_ATTEMPTS):
            self.login('janedoe', password='wrong-password')
        self.user.refresh_from_db()
        self.assertTrue(self.user.is_locked())

        response = self.login('janedoe')
        self.assertEqual(response.status_code, 423)

    def test_expired_lock_allows_login_and_resets_counter(self):
        self.user.failed_login_attempts = MAX_FAILED_LOGIN_ATTEMPTS
        self.user.locked_until = timezone.now() - timedelta(minutes=1)
        self.user.save()

        response = self.login('janedoe')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.failed_login_attempts, 0)
        self.assertIsNone(self.user.locked_until)

    def test_inactive_account_is_rejected(self):
        self.user.is_active = False
        self.user.save()
        response = self.login('janedoe')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_login_area_mismatch(self):
        response = self.login('janedoe', expected_role='admin')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_me_reports_access_flags(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['role'], ROLE_CUSTOMER)
        self.assertFalse(response.data['can_access_admin'])
        self.assertEqual(response.data['groups'], ['Customer'])

    def test_refresh_issues_new_access_token(self):
        refresh = self.login('janedoe').data['refresh']
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': refresh}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_logout_blacklists_refresh_token(self):
        refresh = self.login('janedoe').data['refresh']
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/v1/auth/logout/', {'refresh': refresh}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.post('/api/v1/auth/refresh/', {'refresh': refresh}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_requires_refresh_token(self):
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/v1/auth/logout/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class UserManagementTests(TestCase):
    """Test user administration endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=ROLE_ADMIN)
        self.manager = TestDataFactory.create_user(role=ROLE_MANAGER)
        self.customer = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_customer_cannot_list_users(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_excludes_customers_by_default(self):
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [u['id'] for u in response.data['results']]
        self.assertIn(self.manager.id, ids)
        self.assertNotIn(self.customer.id, ids)
        self.assertEqual(response.data['pagination']['total'], 2)

    def test_create_staff_user_with_role(self):
        response = self.client.post('/api/v1/users/', {
            'email': 'seller@example.com',
            'password': TEST_PASSWORD,
            'password_confirm': TEST_PASSWORD,
            'role': ROLE_SELLER,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['role'], ROLE_SELLER)
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='User').exists())

    def test_manager_cannot_create_admin(self):
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/users/', {
            'email': 'boss@example.com',
            'password': TEST_PASSWORD,
            'password_confirm': TEST_PASSWORD,
            'role': ROLE_ADMIN,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_cannot_modify_admin(self):
        self.client.authenticate_user(self.manager)
        response = self.client.patch(f'/api/v1/users/{self.admin.id}/', {'first_name': 'X'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_update_audits_changed_fields(self):
        response = self.client.patch(f'/api/v1/users/{self.customer.id}/', {
            'first_name': 'Renamed', 'last_name': self.customer.last_name, 'role': ROLE_SELLER,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        log = AuditLog.objects.filter(action='update', model_name='User').latest('created_at')
        self.assertEqual(log.changes['first_name']['new'], 'Renamed')
        self.assertNotIn('last_name', log.changes)
        self.assertEqual(log.changes['role'], {'old': ROLE_CUSTOMER, 'new': ROLE_SELLER})
        self.assertEqual(log.user, self.admin)

    def test_status_requires_boolean(self):
        response = self.client.patch(f'/api/v1/users/{self.customer.id}/status/', {'isActive': 'no'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_deactivate_user(self):
        response = self.client.patch(f'/api/v1/users/{self.customer.id}/status/', {'isActive': False},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.customer.refresh_from_db()
        self.assertFalse(self.customer.is_active)

    def test_cannot_deactivate_self(self):
        response = self.client.patch(f'/api/v1/users/{self.admin.id}/status/', {'isActive': False},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_delete_self(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_user_stats(self):
        response = self.client.get('/api/v1/users/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['totalUsers'], 3)
        by_role = {row['roleName']: row['count'] for row in response.data['usersByRole']}
        self.assertEqual(by_role[ROLE_CUSTOMER], 1)
        self.assertEqual(by_role[ROLE_ADMIN], 1)

    def test_audit_logs_filter_by_model(self):
        self.client.patch(f'/api/v1/users/{self.customer.id}/status/', {'isActive': False}, format='json')
        self.client.post('/api/v1/settings/', {'key': 'TAX_RATE', 'value': '0.07'}, format='json')

        response = self.client.get('/api/v1/audit-logs/', {'model_name': 'User'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertGreaterEqual(response.data['pagination']['total'], 1)
        self.assertTrue(all(log['model_name'] == 'User' for log in response.data['results']))

    def test_audit_logs_require_admin(self):
        self.client.authenticate_user(self.manager)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PaginationTests(TestCase):
    """Test page/limit/sort handling on list endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_ADMIN))
        for _ in range(4):
            TestDataFactory.create_user(role=ROLE_EMPLOYEE)

    def list_users(self, **params):
        response = self.client.get('/api/v1/users/', params)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return response.data

    def test_limit_is_clamped(self):
        data = self.list_users(limit=0)
        self.assertEqual(data['pagination']['limit'], 1)
        self.assertEqual(len(data['results']), 1)
        self.assertEqual(data['pagination']['totalPages'], 5)

        data = self.list_users(limit=500)
        self.assertEqual(data['pagination']['limit'], 100)
        self.assertEqual(len(data['results']), 5)

    def test_non_numeric_params_use_defaults(self):
        data = self.list_users(page='abc', limit='many')
        self.assertEqual(data['pagination'], {'page': 1, 'limit': 10, 'total': 5, 'totalPages': 1})

    def test_page_past_end_is_empty(self):
        data = self.list_users(page=5, limit=2)
        self.assertEqual(data['results'], [])
        self.assertEqual(data['pagination']['page'], 5)
        self.assertEqual(data['pagination']['totalPages'], 3)

    def test_unknown_sort_falls_back_to_created_at(self):
        expected = [u['id'] for u in self.list_users(sortBy='createdAt', sortOrder='asc')['results']]
        data = self.list_users(sortBy='password', sortOrder='asc')
        self.assertEqual([u['id'] for u in data['results']], expected)
        self.assertEqual(expected, sorted(expected))

        data = self.list_users(sortBy='email', sortOrder='sideways')
        emails = [u['email'] for u in data['results']]
        self.assertEqual(emails, sorted(emails, reverse=True))


class SettingTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_ADMIN))

    def test_create_and_read_setting(self):
        response = self.client.post('/api/v1/settings/', {'key': 'TAX_RATE', 'value': '0.07'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Setting.get_value('TAX_RATE'), '0.07')
        self.assertIsNone(Setting.get_value('MISSING'))


class SchemaChangesTests(TestCase):
    """Test the schema patch runner with a stubbed cursor"""

    def test_split_statements(self):
        self.assertEqual(split_statements("ALTER TABLE a ADD b INT;\n\n CREATE INDEX i ON a(b);"),
                         ['ALTER TABLE a ADD b INT', 'CREATE INDEX i ON a(b)'])

    def test_already_applied_statements_are_skipped(self):
        cursor = mock.Mock()
        cursor.execute.side_effect = [None, DatabaseError(1061, "Duplicate key name 'idx_messages_email'")]
        applied, skipped = run_statements(['ALTER 1', 'CREATE INDEX 2'], cursor)
        self.assertEqual((applied, skipped), (1, 1))

    def test_other_errors_propagate(self):
        cursor = mock.Mock()
        cursor.execute.side_effect = DatabaseError(1146, "Table 'messages' doesn't exist")
        with self.assertRaises(DatabaseError):
            run_statements(['ALTER 1', 'ALTER 2'], cursor)
        self.assertEqual(cursor.execute.call_count, 1)

    def test_dry_run_prints_statements(self):
        out = StringIO()
        call_command('apply_schema_changes', '--dry-run', stdout=out)
        self.assertIn('idx_messages_email', out.getvalue())


class CacheTests(TestCase):
    """Test cached queries and signal invalidation"""

    def setUp(self):
        cache.clear()
        self.calls = 0

    def test_cached_query_reuses_result_per_arguments(self):
        @cached_query(REPORTS)
        def count_calls(value):
            self.calls += 1
            return value * 2

        self.assertEqual(count_calls(2), 4)
        self.assertEqual(count_calls(2), 4)
        self.assertEqual(count_calls(3), 6)
        self.assertEqual(self.calls, 2)

        REPORTS.invalidate()
        count_calls(2)
        self.assertEqual(self.calls, 3)

    def test_product_save_invalidates_list(self):
        cached, key = PRODUCTS_LIST.lookup('anything')
        self.assertIsNone(cached)
        PRODUCTS_LIST.store(key, {'results': []})
        TestDataFactory.create_product()
        self.assertIsNone(PRODUCTS_LIST.lookup('anything')[0])

    def test_suspended_signals_leave_cache(self):
        _, key = PRODUCTS_LIST.lookup('anything')
        PRODUCTS_LIST.store(key, {'results': []})
        with suspend_cache_signals():
            TestDataFactory.create_product()
        self.assertEqual(PRODUCTS_LIST.lookup('anything')[0], {'results': []})

    def test_make_cache_key_is_stable(self):
        self.assertEqual(make_cache_key('p', 1, b=2, a=1), make_cache_key('p', 1, a=1, b=2))
        self.assertTrue(make_cache_key('p', 1).startswith('p:'))
