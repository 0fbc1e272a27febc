"""
Test suite for the customization module
Tests: Material calculator, Design customization state, Options, Quotes, Custom embroidery orders
"""
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase, SimpleTestCase
from rest_framework import status

from storefront.core.roles import ROLE_ADMIN, ROLE_SELLER, ROLE_EMPLOYEE
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storefront.customization.defaults import DEFAULT_EMBROIDERY_OPTIONS, DEFAULT_MATERIAL_COSTS
from storefront.customization.models import EmbroideryOption, MaterialCost, CustomEmbroideryOrder
from storefront.customization.pricing import (
    DesignCustomization, StyleOption, MaterialRate, CustomizationError, IncompatibleOptionError,
    calculate_material_costs, estimate_stitches, MAX_DESIGN_QUANTITY,
)


def build_state(base_price='20.00', quantity=2):
    options = {
        'coverage-50': StyleOption('coverage-50', '50% Coverage', 'coverage', Decimal('5.00'), []),
        'coverage-100': StyleOption('coverage-100', '100% Coverage', 'coverage', Decimal('10.00'), ['metallic']),
        'metallic': StyleOption('metallic', 'Metallic Thread', 'threads', Decimal('3.00'), []),
        'glow': StyleOption('glow', 'Glow Thread', 'threads', Decimal('4.00'), []),
        '3d-puff': StyleOption('3d-puff', '3D Puff', 'upgrades', Decimal('6.00'), []),
    }
    return DesignCustomization(options, base_price=base_price, quantity=quantity)


class MaterialCalculatorTests(SimpleTestCase):

    def setUp(self):
        self.rates = {
            'Fabric': MaterialRate(Decimal('10.00'), Decimal('10'), Decimal('10'), Decimal('1.00')),
            'Thread': MaterialRate(Decimal('5.00'), Decimal('0'), Decimal('0'), Decimal('1.00')),
            'Bobbin': MaterialRate(Decimal('1.44'), Decimal('0'), Decimal('1000'), Decimal('1.00')),
        }

    def test_breakdown(self):
        breakdown = calculate_material_costs(4, 5, self.rates)
        self.assertEqual(breakdown['stitches'], 20000)
        self.assertEqual(breakdown['fabricCost'], Decimal('2.00'))
        self.assertEqual(breakdown['threadCost'], Decimal('0.10'))
        self.assertEqual(breakdown['bobbinCost'], Decimal('0.20'))
        self.assertEqual(breakdown['patchAttachCost'], Decimal('0.00'))
        self.assertEqual(breakdown['totalCost'], Decimal('2.30'))

    def test_waste_factor_scales_cost(self):
        self.rates['Fabric'] = MaterialRate(Decimal('10.00'), Decimal('10'), Decimal('10'), Decimal('1.50'))
        self.assertEqual(calculate_material_costs(4, 5, self.rates)['fabricCost'], Decimal('3.00'))

    def test_explicit_stitches(self):
        breakdown = calculate_material_costs(4, 5, self.rates, stitches=100000)
        self.assertEqual(breakdown['threadCost'], Decimal('0.50'))

    def test_non_positive_dimensions_rejected(self):
        with self.assertRaises(CustomizationError):
            calculate_material_costs(0, 5, self.rates)

    def test_estimate_stitches(self):
        self.assertEqual(estimate_stitches('2.5', '2'), 5000)


class DesignCustomizationTests(SimpleTestCase):

    def setUp(self):
        self.state = build_state()
        self.state.add_design('front')

    def test_single_select_replaces(self):
        self.state.select('front', 'coverage', 'coverage-50')
        self.state.select('front', 'coverage', 'coverage-100')
        self.assertEqual(self.state.selected_keys('front'), ['coverage-100'])

    def test_toggle_adds_and_removes(self):
        self.assertTrue(self.state.toggle('front', 'threads', 'glow'))
        self.assertTrue(self.state.toggle('front', 'threads', 'metallic'))
        self.assertFalse(self.state.toggle('front', 'threads', 'glow'))
        self.assertEqual(self.state.designs['front']['threads'], ['metallic'])

    def test_incompatibility_is_symmetric(self):
        self.state.select('front', 'coverage', 'coverage-100')
        with self.assertRaises(IncompatibleOptionError):
            self.state.toggle('front', 'threads', 'metallic')

        self.state.add_design('back')
        self.state.toggle('back', 'threads', 'metallic')
        with self.assertRaises(IncompatibleOptionError):
            self.state.select('back', 'coverage', 'coverage-100')

    def test_option_must_match_category(self):
        with self.assertRaises(CustomizationError):
            self.state.select('front', 'coverage', 'glow')
        with self.assertRaises(CustomizationError):
            self.state.select('front', 'threads', 'glow')

    def test_unknown_option(self):
        with self.assertRaises(CustomizationError):
            self.state.select('front', 'coverage', 'coverage-999')

    def test_apply_rejects_list_for_single_select(self):
        with self.assertRaises(CustomizationError):
            self.state.apply('front', {'coverage': ['coverage-50', 'coverage-100']})

    def test_pricing_per_design(self):
        self.state.apply('front', {'coverage': 'coverage-50', 'threads': ['glow']})
        self.state.add_design('back', quantity=1)
        self.assertEqual(self.state.options_price('front'), Decimal('9.00'))
        self.assertEqual(self.state.design_price('front'), Decimal('58.00'))
        self.assertEqual(self.state.design_price('back'), Decimal('20.00'))
        self.assertEqual(self.state.total_price(), Decimal('78.00'))

    def test_copy_is_independent(self):
        self.state.apply('front', {'threads': ['glow']})
        self.state.copy('front', 'back')
        self.state.toggle('back', 'threads', 'metallic')
        self.assertEqual(self.state.designs['front']['threads'], ['glow'])
        self.assertEqual(self.state.designs['back']['threads'], ['glow', 'metallic'])

    def test_copy_onto_same_design_rejected(self):
        with self.assertRaises(CustomizationError):
            self.state.copy('front', 'front')

    def test_design_quantity_must_be_positive_whole_number(self):
        for quantity in (0, -5, 2.5, 'two', MAX_DESIGN_QUANTITY + 1):
            with self.assertRaises(CustomizationError):
                self.state.add_design('back', quantity=quantity)
        self.state.add_design('back', quantity='3')
        self.assertEqual(self.state.design_quantities['back'], 3)

    def test_clear_and_reset(self):
        self.state.apply('front', {'coverage': 'coverage-50', 'upgrades': ['3d-puff']})
        self.state.clear('front', 'upgrades')
        self.assertEqual(self.state.selected_keys('front'), ['coverage-50'])
        self.state.reset('front')
        self.assertEqual(self.state.options_price('front'), Decimal('0.00'))

    def test_describe_snapshots_names_and_prices(self):
        self.state.apply('front', {'coverage': 'coverage-50', 'threads': ['glow']})
        described = self.state.describe('front')
        self.assertEqual(described['coverage'], {'key': 'coverage-50', 'name': '50% Coverage', 'price': '5.00'})
        self.assertEqual(described['threads'][0]['key'], 'glow')


class EmbroideryOptionTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.option = TestDataFactory.create_option('coverage-50', price='5.00')
        self.inactive = TestDataFactory.create_option('coverage-100', price='10.00', is_active=False)

    def test_public_list_hides_inactive(self):
        response = self.client.get('/api/v1/embroidery-options/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([o['key'] for o in response.data], ['coverage-50'])

    def test_grouped_list(self):
        response = self.client.get('/api/v1/embroidery-options/?grouped=true')
        self.assertEqual(set(response.data.keys()),
                         {'coverage', 'threads', 'material', 'border', 'backing', 'upgrades', 'cutting'})
        self.assertEqual(len(response.data['coverage']), 1)

    def test_customer_cannot_create(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.post('/api/v1/embroidery-options/', {
            'key': 'glow', 'name': 'Glow', 'price': '4.00', 'category': 'threads',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_seller_creates_option(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_SELLER))
        response = self.client.post('/api/v1/embroidery-options/', {
            'key': 'glow', 'name': 'Glow', 'price': '4.00', 'category': 'threads', 'incompatible': ['metallic'],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(EmbroideryOption.objects.get(key='glow').incompatible, ['metallic'])

    def test_toggle(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_ADMIN))
        response = self.client.patch(f'/api/v1/embroidery-options/{self.option.id}/toggle/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_active'])

    def test_seed_command(self):
        call_command('seed_customization', stdout=StringIO())
        self.assertEqual(EmbroideryOption.objects.count(), len(DEFAULT_EMBROIDERY_OPTIONS))
        self.assertEqual(MaterialCost.objects.count(), len(DEFAULT_MATERIAL_COSTS))
        call_command('seed_customization', stdout=StringIO())
        self.assertEqual(MaterialCost.objects.count(), len(DEFAULT_MATERIAL_COSTS))


class MaterialCostTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        TestDataFactory.create_material_costs()

    def test_requires_admin(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        response = self.client.get('/api/v1/material-costs/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_negative_cost_rejected(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_ADMIN))
        response = self.client.post('/api/v1/material-costs/', {'name': 'Glitter', 'cost': '-1.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_calculate_is_public(self):
        response = self.client.post('/api/v1/material-costs/calculate/', {'width': '2', 'height': '3'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['stitches'], 6000)
        self.assertIn('totalCost', response.data)

    def test_calculate_rejects_zero_width(self):
        response = self.client.post('/api/v1/material-costs/calculate/', {'width': '0', 'height': '3'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class QuoteTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        TestDataFactory.create_option('coverage-50', price='5.00')
        TestDataFactory.create_option('coverage-100', price='10.00', incompatible=['metallic'])
        TestDataFactory.create_option('metallic', category='threads', price='3.00')
        TestDataFactory.create_option('glow', category='threads', price='4.00')

    def quote(self, body):
        return self.client.post('/api/v1/customization/quote/', body, format='json')

    def test_quote_per_design(self):
        response = self.quote({
            'basePrice': '20.00',
            'quantity': 2,
            'designs': {
                'front': {'coverage': 'coverage-50', 'threads': ['glow']},
                'back': {'quantity': 1},
            },
        })
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['designs']['front']['price'], Decimal('58.00'))
        self.assertEqual(response.data['total'], Decimal('78.00'))

    def test_quote_with_copy(self):
        response = self.quote({
            'basePrice': '20.00',
            'quantity': 2,
            'designs': {'front': {'coverage': 'coverage-50', 'threads': ['glow']}, 'back': {'quantity': 1}},
            'copy': {'from': 'front', 'to': 'back'},
        })
        self.assertEqual(response.data['designs']['back']['selectedStyles'],
                         {'coverage': 'coverage-50', 'threads': ['glow']})
        self.assertEqual(response.data['total'], Decimal('87.00'))

    def test_incompatible_selection(self):
        response = self.quote({'designs': {'front': {'coverage': 'coverage-100', 'threads': ['metallic']}}})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_requires_a_design(self):
        response = self.quote({'basePrice': '10.00'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_positive_design_quantity_rejected(self):
        for quantity in (0, -3):
            response = self.quote({'basePrice': '20.00', 'designs': {'front': {'quantity': quantity}}})
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_copy_needs_source_and_target(self):
        designs = {'front': {'coverage': 'coverage-50'}}
        for copy_request in ('front', {'from': 'front'}, ['front', 'back']):
            response = self.quote({'designs': designs, 'copy': copy_request})
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class CustomEmbroideryTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.customer = TestDataFactory.create_user()
        self.client.authenticate_user(self.customer)
        TestDataFactory.create_material_costs()
        TestDataFactory.create_option('coverage-50', price='5.00')

    def submit(self, **overrides):
        body = {
            'design_name': 'Team Logo',
            'design_file': 'https://example.com/logo.png',
            'dimensions': {'width': 2, 'height': 3},
            'selected_styles': {'coverage': 'coverage-50'},
        }
        body.update(overrides)
        return self.client.post('/api/v1/custom-embroidery/', body, format='json')

    def test_submit_prices_from_materials_and_options(self):
        response = self.submit()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data
        self.assertEqual(Decimal(data['options_price']), Decimal('5.00'))
        material_total = Decimal(str(data['material_costs']['totalCost']))
        self.assertEqual(Decimal(data['total_price']), material_total + Decimal('5.00'))
        self.assertEqual(data['selected_styles']['coverage']['name'], 'Coverage 50')
        self.assertEqual(data['status'], 'pending')

    def test_unknown_category_rejected(self):
        response = self.submit(selected_styles={'glitter': 'x'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_cannot_list_all(self):
        response = self.client.get('/api/v1/custom-embroidery/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_my_orders_and_access(self):
        order_id = self.submit().data['id']
        response = self.client.get('/api/v1/custom-embroidery/my-orders/')
        self.assertEqual([o['id'] for o in response.data], [order_id])

        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get(f'/api/v1/custom-embroidery/{order_id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_staff_updates_status(self):
        order_id = self.submit().data['id']
        self.client.authenticate_user(TestDataFactory.create_user(role=ROLE_EMPLOYEE))
        response = self.client.patch(f'/api/v1/custom-embroidery/{order_id}/status/',
                                     {'status': 'approved'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(CustomEmbroideryOrder.objects.get(pk=order_id).status, 'approved')

    def test_only_admin_deletes(self):
        order_id = self.submit().data['id']
        response = self.client.delete(f'/api/v1/custom-embroidery/{order_id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
