"""
Unit tests for drafting purchase orders from ingredient shortages
"""

from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status

from backoffice_api.exceptions import ValidationError
from inventory.models import Dish, DishIngredient
from procurement.lifecycle import PurchaseOrderLifecycle
from procurement.models import PurchaseOrder
from procurement.shortages import ShortageResolver
from tests.helpers import create_restaurant, create_ingredient, create_supplier, create_offering


class ShortageResolverTest(TestCase):
    """Test supplier selection and package rounding for shortages"""

    def setUp(self):
        self.restaurant, self.owner, self.purchaser = create_restaurant()
        self.rice = create_ingredient(self.restaurant, name='Jasmine Rice')
        self.chicken = create_ingredient(self.restaurant, name='Chicken Thigh')
        self.garlic = create_ingredient(self.restaurant, name='Garlic')

        self.metro = create_supplier(self.restaurant, name='Metro Produce', lead_time_days=2)
        self.budget = create_supplier(self.restaurant, name='Budget Grains', lead_time_days=4)
        create_offering(self.metro, self.rice, package_price='1250.00', contents='25000', package_unit='sack')
        self.budget_rice = create_offering(self.budget, self.rice, package_price='1100.00', contents='25000',
                                           package_unit='sack')
        create_offering(self.metro, self.chicken, package_price='480.00', contents='2000', package_unit='tray')
        self.resolver = ShortageResolver(tax_rate='10')

    def test_one_order_per_cheapest_supplier(self):
        result = self.resolver.create_purchase_orders_from_shortages(
            [(self.rice.pk, Decimal('30000')), (self.chicken.pk, Decimal('3000'))],
            self.restaurant, user=self.purchaser,
        )

        self.assertEqual(len(result.orders), 2)
        self.assertEqual(result.skipped, [])
        by_supplier = {order.supplier.name: order for order in result.orders}

        rice_order = by_supplier['Budget Grains']
        rice_item = rice_order.items.get()
        self.assertEqual(rice_item.ordered_quantity, Decimal('2'))
        self.assertEqual(rice_item.unit_price, Decimal('1100.00'))
        self.assertEqual(rice_order.status, 'draft')
        self.assertEqual(rice_order.tax_rate, Decimal('10'))
        self.assertEqual(rice_order.total_amount, Decimal('2420.00'))
        self.assertEqual(rice_order.expected_delivery_date, timezone.localdate() + timedelta(days=4))
        self.assertTrue(rice_order.notes.startswith('Auto-generated from shortages'))

        self.assertEqual(by_supplier['Metro Produce'].items.get().ordered_quantity, Decimal('2'))

    def test_minimum_order_quantity_is_a_floor(self):
        self.budget_rice.minimum_order_quantity = Decimal('3')
        self.budget_rice.save()

        result = self.resolver.create_purchase_orders_from_shortages([(self.rice.pk, Decimal('100'))],
                                                                     self.restaurant)

        self.assertEqual(result.orders[0].items.get().ordered_quantity, Decimal('3'))

    def test_inactive_supplier_is_ignored(self):
        self.budget.is_active = False
        self.budget.save()

        result = self.resolver.create_purchase_orders_from_shortages([(self.rice.pk, Decimal('100'))],
                                                                     self.restaurant)

        self.assertEqual(result.orders[0].supplier, self.metro)

    def test_ingredients_without_offering_are_reported(self):
        other, _, _ = create_restaurant('Other Place')
        flour = create_ingredient(other, name='Flour')

        result = self.resolver.create_purchase_orders_from_shortages(
            [(self.garlic.pk, Decimal('500')), (flour.pk, Decimal('1000'))], self.restaurant,
        )

        self.assertEqual(result.orders, [])
        reasons = {row['ingredient_id']: row['reason'] for row in result.skipped}
        self.assertEqual(reasons[self.garlic.pk], 'No active supplier offering')
        self.assertEqual(reasons[flour.pk], 'Ingredient not found')
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_availability_rows_are_aggregated(self):
        result = self.resolver.create_purchase_orders_from_shortages([
            {'ingredient_id': self.chicken.pk, 'shortage': '1500.000'},
            {'ingredient_id': self.chicken.pk, 'shortage': '1500.000'},
            {'ingredient_id': self.rice.pk, 'shortage': '0.000'},
        ], self.restaurant)

        self.assertEqual(len(result.orders), 1)
        self.assertEqual(result.orders[0].items.get().ordered_quantity, Decimal('2'))

    def test_order_cap_is_not_enforced(self):
        self.budget_rice.minimum_order_quantity = Decimal('1')
        self.budget_rice.save()

        result = self.resolver.create_purchase_orders_from_shortages([(self.rice.pk, Decimal('60000'))],
                                                                     self.restaurant)

        self.assertEqual(result.orders[0].items.get().ordered_quantity, Decimal('3'))

    def test_supplier_failure_is_collected(self):
        lifecycle = mock.Mock(spec=PurchaseOrderLifecycle)
        lifecycle.create_purchase_order.side_effect = ValidationError('Supplier Budget Grains is inactive')
        resolver = ShortageResolver(lifecycle=lifecycle, tax_rate='10')

        result = resolver.create_purchase_orders_from_shortages([(self.rice.pk, Decimal('100'))], self.restaurant)

        self.assertEqual(result.orders, [])
        self.assertEqual(result.errors[0]['supplier'], 'Budget Grains')
        self.assertIn('inactive', result.errors[0]['error'])

    def test_nothing_short(self):
        result = self.resolver.create_purchase_orders_from_shortages([], self.restaurant)
        self.assertEqual((result.orders, result.skipped, result.errors), ([], [], []))

    def test_bad_ingredient_id(self):
        with self.assertRaises(ValidationError):
            self.resolver.create_purchase_orders_from_shortages([('rice', Decimal('5'))], self.restaurant)


class ShortageEndpointTest(APITestCase):
    """Test the from-shortages endpoint"""

    def setUp(self):
        self.restaurant, self.owner, self.purchaser = create_restaurant()
        self.rice = create_ingredient(self.restaurant, name='Jasmine Rice')
        self.supplier = create_supplier(self.restaurant)
        create_offering(self.supplier, self.rice, package_price='1250.00', contents='25000', package_unit='sack')
        self.dish = Dish.objects.create(restaurant=self.restaurant, name='Garlic Rice')
        DishIngredient.objects.create(dish=self.dish, ingredient=self.rice, quantity_needed=Decimal('200'))
        self.client.force_authenticate(user=self.purchaser)

    def test_from_plan(self):
        response = self.client.post(reverse('create_from_shortages'), {
            'plan': [{'dish_id': self.dish.pk, 'quantity': '150'}],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data['purchase_orders']), 1)
        item = response.data['purchase_orders'][0]['items'][0]
        self.assertEqual(item['ordered_quantity'], '2.00')

    def test_from_explicit_shortages(self):
        garlic = create_ingredient(self.restaurant, name='Garlic')
        response = self.client.post(reverse('create_from_shortages'), {
            'shortages': [{'ingredient_id': garlic.pk, 'shortage': '500'}],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['purchase_orders'], [])
        self.assertEqual(response.data['skipped'][0]['ingredient'], 'Garlic')

    def test_needs_shortages_or_plan(self):
        response = self.client.post(reverse('create_from_shortages'), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
