"""
Test suite for the support module
Tests: FAQs, Chat messages, Threads, Auto replies, Auto reply settings
"""
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import TestCase, override_settings
from rest_framework import status

from storefront.core.roles import ROLE_EMPLOYEE
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storefront.support.auto_reply import choose_reply_text, get_delay_ms, send_auto_reply
from storefront.support.defaults import DEFAULT_AUTO_REPLIES, DEFAULT_FAQS, GREETING_KEY
from storefront.support.models import FAQ, Message, AutoReplyTemplate, AutoReplySettings


def first_choice():
    rng = mock.Mock()
    rng.choice.side_effect = lambda seq: seq[0]
    return rng


class FAQTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.staff = TestDataFactory.create_user(role=ROLE_EMPLOYEE)
        self.shipping = FAQ.objects.create(question='How fast do you ship?', answer='2-3 days.',
                                           category='Shipping', sort_order=1)
        self.pricing = FAQ.objects.create(question='How much?', answer='It depends.', category='Pricing',
                                          sort_order=2)
        self.hidden = FAQ.objects.create(question='Old question', answer='Old answer', status='inactive',
                                         sort_order=3)

    def test_public_list_hides_inactive(self):
        response = self.client.get('/api/v1/faqs/')
        self.assertEqual([f['id'] for f in response.data], [self.shipping.id, self.pricing.id])

    def test_categories(self):
        response = self.client.get('/api/v1/faqs/categories/')
        self.assertEqual(response.data, ['Pricing', 'Shipping'])

    def test_customer_cannot_create(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.post('/api/v1/faqs/', {'question': 'Q?', 'answer': 'A'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_blank_answer_rejected(self):
        self.client.authenticate_user(self.staff)
        response = self.client.post('/api/v1/faqs/', {'question': 'Q?', 'answer': '   '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_blank_category_defaults_to_general(self):
        self.client.authenticate_user(self.staff)
        response = self.client.post('/api/v1/faqs/', {'question': 'Q?', 'answer': 'A', 'category': ' '},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['category'], 'General')

    def test_reorder(self):
        self.client.authenticate_user(self.staff)
        response = self.client.put('/api/v1/faqs/order/',
                                   {'order': [self.pricing.id, self.shipping.id, self.hidden.id]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([f['id'] for f in response.data], [self.pricing.id, self.shipping.id, self.hidden.id])

    def test_reorder_unknown_id(self):
        self.client.authenticate_user(self.staff)
        response = self.client.put('/api/v1/faqs/order/', {'order': [self.pricing.id, 999999]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.pricing.refresh_from_db()
        self.assertEqual(self.pricing.sort_order, 2)

    def test_toggle(self):
        self.client.authenticate_user(self.staff)
        response = self.client.patch(f'/api/v1/faqs/{self.hidden.id}/toggle/')
        self.assertEqual(response.data['status'], 'active')


class AutoReplyTests(TestCase):
    """Test auto reply selection"""

    def setUp(self):
        call_command('seed_support', '--skip-faqs', stdout=StringIO())

    def test_seed(self):
        self.assertEqual(AutoReplyTemplate.objects.count(), len(DEFAULT_AUTO_REPLIES))
        self.assertFalse(FAQ.objects.exists())
        call_command('seed_support', stdout=StringIO())
        self.assertEqual(FAQ.objects.count(), len(DEFAULT_FAQS))

    def test_choose_uses_active_templates(self):
        AutoReplyTemplate.objects.exclude(key='pricing').update(is_active=False)
        expected = AutoReplyTemplate.objects.get(key='pricing').content
        self.assertEqual(choose_reply_text(first_choice()), expected)

    def test_falls_back_to_greeting(self):
        AutoReplyTemplate.objects.update(is_active=False)
        expected = AutoReplyTemplate.objects.get(key=GREETING_KEY).content
        self.assertEqual(choose_reply_text(first_choice()), expected)

    def test_falls_back_to_built_in_greeting(self):
        AutoReplyTemplate.objects.all().delete()
        self.assertTrue(choose_reply_text(first_choice()))

    def test_send_auto_reply_joins_conversation(self):
        message = Message.objects.create(guest_id='guest_abc', is_guest=True, sender='user', text='Hi',
                                         email='guest@example.com')
        reply, delay_ms = send_auto_reply(message, rng=first_choice())
        self.assertEqual(reply.guest_id, 'guest_abc')
        self.assertEqual(reply.sender, 'admin')
        self.assertTrue(reply.is_auto_reply)
        self.assertEqual(delay_ms, AutoReplySettings.load().delay_ms)

    @override_settings(AUTO_REPLY_FALLBACK_DELAY_MS=2500)
    def test_disabled_sends_nothing(self):
        reply_settings = AutoReplySettings.load()
        reply_settings.enabled = False
        reply_settings.save()
        message = Message.objects.create(guest_id='guest_abc', is_guest=True, sender='user', text='Hi')
        reply, delay_ms = send_auto_reply(message)
        self.assertIsNone(reply)
        self.assertEqual(delay_ms, 2500)
        self.assertEqual(get_delay_ms(), 2500)

    def test_settings_singleton(self):
        first = AutoReplySettings.load()
        second = AutoReplySettings.load()
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(AutoReplySettings.objects.count(), 1)

    def test_staff_updates_settings(self):
        client = AuthenticatedAPIClient()
        response = client.put('/api/v1/auto-replies/settings/', {'delay_ms': 500}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        response = client.put('/api/v1/auto-replies/settings/', {'delay_ms': 500}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(AutoReplySettings.load().delay_ms, 500)

    def test_quick_questions_and_categories(self):
        client = AuthenticatedAPIClient()
        response = client.get('/api/v1/auto-replies/quick-questions/')
        self.assertEqual(len(response.data), len(DEFAULT_AUTO_REPLIES))
        response = client.get('/api/v1/auto-replies/categories/')
        self.assertEqual(response.data, sorted(set(t['category'] for t in DEFAULT_AUTO_REPLIES)))

    def test_new_template_goes_last(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        response = client.post('/api/v1/auto-replies/', {
            'key': 'returns', 'title': 'Returns?', 'content': 'We accept returns within 30 days.',
            'category': 'General',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['order'], len(DEFAULT_AUTO_REPLIES) + 1)

    def test_active_and_by_category(self):
        AutoReplyTemplate.objects.filter(key='bulk_orders').update(is_active=False)
        client = AuthenticatedAPIClient()
        response = client.get('/api/v1/auto-replies/active/')
        self.assertEqual(len(response.data), len(DEFAULT_AUTO_REPLIES) - 1)
        response = client.get('/api/v1/auto-replies/category/pricing/')
        self.assertEqual([t['key'] for t in response.data], ['pricing'])

    def test_reorder_templates(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        ids = list(AutoReplyTemplate.objects.values_list('id', flat=True))[::-1]
        response = client.put('/api/v1/auto-replies/order/', {'order': ids}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([t['id'] for t in response.data], ids)

        response = client.put('/api/v1/auto-replies/order/', {'order': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class MessageTests(TestCase):
    """Test chat messages"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.staff = TestDataFactory.create_user(role=ROLE_EMPLOYEE)
        self.customer = TestDataFactory.create_user(first_name='Jane')
        AutoReplyTemplate.objects.create(key='greeting', title='Hello', content='Thanks for reaching out!')

    def test_guest_message_gets_auto_reply(self):
        response = self.client.post('/api/v1/messages/', {
            'guest_id': 'guest_123', 'email': 'guest@example.com', 'text': 'Do you ship to Canada?',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['message']['is_guest'])
        self.assertEqual(response.data['autoReply']['text'], 'Thanks for reaching out!')
        self.assertEqual(response.data['delay_ms'], AutoReplySettings.load().delay_ms)

    def test_guest_requires_guest_id(self):
        response = self.client.post('/api/v1/messages/', {'text': 'Hello'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_guest_id_prefix(self):
        response = self.client.post('/api/v1/messages/', {'guest_id': 'abc', 'text': 'Hello'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_empty_message_rejected(self):
        self.client.authenticate_user(self.customer)
        response = self.client.post('/api/v1/messages/', {'text': '  '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_conversation(self):
        self.client.authenticate_user(self.customer)
        self.client.post('/api/v1/messages/', {'text': 'Where is my order?'}, format='json')
        response = self.client.get(f'/api/v1/messages/customer/{self.customer.id}/')
        self.assertEqual([m['sender'] for m in response.data], ['user', 'admin'])

        other = TestDataFactory.create_user()
        response = self.client.get(f'/api/v1/messages/customer/{other.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_staff_reply_to_guest(self):
        Message.objects.create(guest_id='guest_9', is_guest=True, sender='user', text='Hi', email='g@example.com')
        self.client.authenticate_user(self.staff)
        response = self.client.post('/api/v1/messages/reply/', {'guest_id': 'guest_9', 'text': 'Hello!'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['email'], 'g@example.com')

        response = self.client.post('/api/v1/messages/reply/', {'guest_id': 'guest_none', 'text': 'Hello!'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_threads_and_mark_read(self):
        Message.objects.create(customer=self.customer, sender='user', text='One')
        Message.objects.create(customer=self.customer, sender='user', text='Two')
        Message.objects.create(guest_id='guest_1', is_guest=True, sender='user', text='Guest')

        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/messages/threads/')
        threads = {t['threadKey']: t for t in response.data}
        self.assertEqual(len(threads), 2)
        customer_thread = next(t for t in response.data if t['customerId'] == self.customer.id)
        self.assertEqual(customer_thread['unreadCount'], 2)
        self.assertEqual(customer_thread['text'], 'Two')
        self.assertEqual(customer_thread['name'], 'Jane')

        response = self.client.patch('/api/v1/messages/read/', {'customer_id': self.customer.id}, format='json')
        self.assertEqual(response.data, {'updated': 2})

    def test_threads_newest_first_with_latest_reply(self):
        Message.objects.create(guest_id='guest_4', is_guest=True, sender='user', text='Question')
        Message.objects.create(customer=self.customer, sender='user', text='Hi')
        Message.objects.create(guest_id='guest_4', is_guest=True, sender='admin', text='Answer')

        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/messages/threads/')
        self.assertEqual([t['threadKey'] for t in response.data], ['guest:guest_4', f'customer:{self.customer.id}'])
        guest_thread = response.data[0]
        self.assertEqual(guest_thread['text'], 'Answer')
        self.assertEqual(guest_thread['sender'], 'admin')
        self.assertEqual(guest_thread['unreadCount'], 1)

    def test_guest_thread_last_messages(self):
        for i in range(3):
            Message.objects.create(guest_id='guest_7', is_guest=True, sender='user', text=f'msg {i}')
        response = self.client.get('/api/v1/messages/guest/guest_7/')
        self.assertEqual([m['text'] for m in response.data], ['msg 0', 'msg 1', 'msg 2'])

    def test_recent_messages_staff_only(self):
        Message.objects.create(guest_id='guest_2', is_guest=True, sender='user', text='First')
        Message.objects.create(guest_id='guest_3', is_guest=True, sender='user', text='Second')
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/messages/recent/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.staff)
        response = self.client.get('/api/v1/messages/recent/')
        self.assertEqual([m['text'] for m in response.data], ['Second', 'First'])
