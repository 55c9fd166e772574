from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APITestCase
from rest_framework import status
from decimal import Decimal
from unittest import mock

from backoffice_api.exceptions import ValidationError, NotFoundError, InsufficientStockError
from tests.helpers import create_restaurant, create_ingredient, create_supplier, create_offering
from .models import Ingredient, StockMovement, Dish, DishIngredient, DamageSpoilageLog
from .services import (
    StockLedger, check_stock_availability, check_plan_availability, record_dish_sale,
    log_damage_spoilage, low_stock_ingredients, ingredient_cost,
)
from .units import convert, can_convert, normalize_unit, to_ingredient_unit


class UnitConversionTest(TestCase):
    """Test unit normalization and conversion"""

    def test_aliases_normalize(self):
        self.assertEqual(normalize_unit('Kilograms'), 'kg')
        self.assertEqual(normalize_unit(' litre '), 'l')
        self.assertEqual(normalize_unit('piece'), 'pcs')

    def test_unknown_unit_raises(self):
        with self.assertRaises(ValidationError):
            normalize_unit('bushel')

    def test_convert_within_family(self):
        self.assertEqual(convert(Decimal('0.25'), 'kg', 'g'), Decimal('250'))
        self.assertEqual(convert(Decimal('1500'), 'ml', 'l'), Decimal('1.5'))
        self.assertEqual(convert(Decimal('2'), 'dozen', 'pcs'), Decimal('24'))

    def test_convert_across_families_raises(self):
        self.assertFalse(can_convert('kg', 'ml'))
        with self.assertRaises(ValidationError):
            convert(Decimal('1'), 'kg', 'ml')

    def test_blank_unit_means_base_unit(self):
        restaurant, _, _ = create_restaurant()
        rice = create_ingredient(restaurant)
        self.assertEqual(to_ingredient_unit(Decimal('200'), '', rice), Decimal('200'))
        self.assertEqual(to_ingredient_unit(Decimal('0.2'), 'kg', rice), Decimal('200.0'))


class StockLedgerTest(TestCase):
    """Test receiving and deducting stock through the ledger"""

    def setUp(self):
        self.restaurant, self.owner, _ = create_restaurant()
        self.ingredient = create_ingredient(self.restaurant, name='Calamansi', base_unit='pcs')
        self.ledger = StockLedger(allow_negative=False)

    def test_weighted_average_cost(self):
        """Two deliveries at different prices blend into one unit cost"""
        first = self.ledger.receive_stock(self.ingredient.pk, Decimal('50'), Decimal('10'), Decimal('2'))
        self.assertEqual(first.stock_after, Decimal('50'))
        self.assertEqual(first.cost_after, Decimal('2'))

        second = self.ledger.receive_stock(self.ingredient.pk, Decimal('25'), Decimal('5'), Decimal('4'))

        self.ingredient.refresh_from_db()
        self.assertEqual(self.ingredient.current_stock, Decimal('75'))
        self.assertEqual(self.ingredient.packages, Decimal('15'))
        self.assertEqual(self.ingredient.cost_per_unit.quantize(Decimal('0.01')), Decimal('2.67'))
        self.assertEqual(second.cost_before, Decimal('2'))
        self.assertEqual(StockMovement.objects.filter(ingredient=self.ingredient).count(), 2)

    def test_receive_records_movement(self):
        update = self.ledger.receive_stock(
            self.ingredient.pk, Decimal('12'), Decimal('1'), Decimal('3.50'),
            reference='PO2026-0001', user=self.owner,
        )
        movement = StockMovement.objects.get(pk=update.movement_id)
        self.assertEqual(movement.movement_type, 'receive')
        self.assertEqual(movement.reference_number, 'PO2026-0001')
        self.assertEqual(movement.stock_before, Decimal('0'))
        self.assertEqual(movement.stock_after, Decimal('12'))
        self.assertEqual(movement.user, self.owner)

    def test_receive_rejects_bad_input(self):
        with self.assertRaises(ValidationError):
            self.ledger.receive_stock(self.ingredient.pk, Decimal('0'), Decimal('1'), Decimal('1'))
        with self.assertRaises(ValidationError):
            self.ledger.receive_stock(self.ingredient.pk, Decimal('5'), Decimal('1'), Decimal('-1'))
        with self.assertRaises(ValidationError):
            self.ledger.receive_stock(self.ingredient.pk, 'lots', Decimal('1'), Decimal('1'))
        self.assertFalse(StockMovement.objects.exists())

    def test_unknown_ingredient(self):
        with self.assertRaises(NotFoundError):
            self.ledger.receive_stock(999999, Decimal('5'), Decimal('1'), Decimal('1'))

    def test_deduct_keeps_cost(self):
        self.ledger.receive_stock(self.ingredient.pk, Decimal('40'), Decimal('2'), Decimal('2.5'))
        update = self.ledger.deduct_stock(self.ingredient.pk, Decimal('15'), movement_type='waste')

        self.ingredient.refresh_from_db()
        self.assertEqual(self.ingredient.current_stock, Decimal('25'))
        self.assertEqual(self.ingredient.cost_per_unit, Decimal('2.5'))
        self.assertEqual(update.movement_type, 'waste')
        self.assertFalse(update.flagged_negative)

    def test_deduct_below_zero_is_rejected(self):
        self.ledger.receive_stock(self.ingredient.pk, Decimal('5'), Decimal('1'), Decimal('1'))

        with self.assertRaises(InsufficientStockError) as context:
            self.ledger.deduct_stock(self.ingredient.pk, Decimal('8'))

        self.assertEqual(context.exception.shortages[0]['shortage'], '3.000')
        self.ingredient.refresh_from_db()
        self.assertEqual(self.ingredient.current_stock, Decimal('5'))
        self.assertFalse(StockMovement.objects.filter(movement_type='sale').exists())

    def test_deduct_below_zero_flagged_when_allowed(self):
        ledger = StockLedger(allow_negative=True)
        ledger.receive_stock(self.ingredient.pk, Decimal('5'), Decimal('1'), Decimal('1'))

        with self.assertLogs('inventory.services', 'WARNING'):
            update = ledger.deduct_stock(self.ingredient.pk, Decimal('8'))

        self.assertTrue(update.flagged_negative)
        self.ingredient.refresh_from_db()
        self.assertEqual(self.ingredient.current_stock, Decimal('-3'))

    def test_low_stock_warning(self):
        self.ingredient.reorder_level = Decimal('10')
        self.ingredient.save()
        self.ledger.receive_stock(self.ingredient.pk, Decimal('12'), Decimal('1'), Decimal('1'))

        with self.assertLogs('inventory.services', 'WARNING') as logs:
            self.ledger.deduct_stock(self.ingredient.pk, Decimal('4'))

        self.assertIn('Low stock: Calamansi', logs.output[0])
        self.assertEqual(list(low_stock_ingredients(self.restaurant)), [self.ingredient])

    def test_mutations_lock_the_ingredient_row(self):
        manager = Ingredient.objects
        with mock.patch.object(manager, 'select_for_update', wraps=manager.select_for_update) as lock:
            self.ledger.receive_stock(self.ingredient.pk, Decimal('10'), Decimal('1'), Decimal('2'))
            self.assertEqual(lock.call_count, 1)

            self.ledger.deduct_stock(self.ingredient.pk, Decimal('4'))
            self.assertEqual(lock.call_count, 2)

        self.ingredient.refresh_from_db()
        self.assertEqual(self.ingredient.current_stock, Decimal('6'))

    def test_deduct_rejects_receive_type(self):
        with self.assertRaises(ValidationError):
            self.ledger.deduct_stock(self.ingredient.pk, Decimal('1'), movement_type='receive')


class DishStockTest(TestCase):
    """Test recipe-driven availability checks and sales"""

    def setUp(self):
        self.restaurant, self.owner, _ = create_restaurant()
        self.rice = create_ingredient(self.restaurant, name='Jasmine Rice', base_unit='g')
        self.chicken = create_ingredient(self.restaurant, name='Chicken Thigh', base_unit='g')
        ledger = StockLedger(allow_negative=False)
        ledger.receive_stock(self.rice.pk, Decimal('1000'), Decimal('1'), Decimal('0.08'))
        ledger.receive_stock(self.chicken.pk, Decimal('500'), Decimal('1'), Decimal('0.30'))

        self.adobo = Dish.objects.create(restaurant=self.restaurant, name='Chicken Adobo', price=Decimal('245.00'))
        DishIngredient.objects.create(dish=self.adobo, ingredient=self.rice, quantity_needed=Decimal('200'))
        DishIngredient.objects.create(
            dish=self.adobo, ingredient=self.chicken, quantity_needed=Decimal('0.25'), unit='kg',
        )

    def test_availability_converts_recipe_units(self):
        availability = check_stock_availability(self.adobo.pk, 2)

        self.assertTrue(availability.available)
        required = {row['ingredient']: row['required'] for row in availability.requirements}
        self.assertEqual(required, {'Jasmine Rice': '400.000', 'Chicken Thigh': '500.000'})

    def test_availability_reports_shortages(self):
        availability = check_stock_availability(self.adobo.pk, 3)

        self.assertFalse(availability.available)
        self.assertEqual(len(availability.shortages), 1)
        self.assertEqual(availability.shortages[0]['ingredient_id'], self.chicken.pk)
        self.assertEqual(availability.shortages[0]['shortage'], '250.000')

    def test_sale_deducts_every_ingredient(self):
        with self.assertLogs('inventory.services', 'WARNING'):
            result = record_dish_sale(self.adobo.pk, 2, user=self.owner, reference='OR-1001')

        self.assertEqual(len(result.updates), 2)
        self.rice.refresh_from_db()
        self.chicken.refresh_from_db()
        self.assertEqual(self.rice.current_stock, Decimal('600'))
        self.assertEqual(self.chicken.current_stock, Decimal('0'))
        self.assertEqual(StockMovement.objects.filter(reference_number='OR-1001').count(), 2)

    def test_sale_is_all_or_nothing(self):
        with self.assertRaises(InsufficientStockError):
            record_dish_sale(self.adobo.pk, 3, user=self.owner)

        self.rice.refresh_from_db()
        self.assertEqual(self.rice.current_stock, Decimal('1000'))
        self.assertFalse(StockMovement.objects.filter(movement_type='sale').exists())

    def test_sale_of_other_restaurants_dish(self):
        other, _, _ = create_restaurant('Other Place')
        with self.assertRaises(NotFoundError):
            record_dish_sale(self.adobo.pk, 1, restaurant=other)

    def test_plan_shares_ingredients(self):
        sinangag = Dish.objects.create(restaurant=self.restaurant, name='Sinangag')
        DishIngredient.objects.create(dish=sinangag, ingredient=self.rice, quantity_needed=Decimal('0.3'), unit='kg')

        availability = check_plan_availability([(self.adobo.pk, 2), (sinangag.pk, 3)])

        self.assertFalse(availability.available)
        self.assertEqual(len(availability.shortages), 1)
        shortage = availability.shortages[0]
        self.assertEqual(shortage['ingredient'], 'Jasmine Rice')
        self.assertEqual(shortage['required'], '1300.000')
        self.assertEqual(shortage['shortage'], '300.000')

    def test_empty_plan(self):
        with self.assertRaises(ValidationError):
            check_plan_availability([])


class DamageSpoilageTest(TestCase):
    """Test damage, spoilage and waste write-offs"""

    def setUp(self):
        self.restaurant, self.owner, _ = create_restaurant()
        self.rice = create_ingredient(self.restaurant)
        StockLedger(allow_negative=False).receive_stock(self.rice.pk, Decimal('1000'), Decimal('1'), Decimal('0.1'))

    def test_partial_failure_keeps_good_lines(self):
        result = log_damage_spoilage(
            self.restaurant,
            [
                {'ingredient_id': self.rice.pk, 'quantity': Decimal('0.1'), 'unit': 'kg'},
                {'ingredient_id': 999999, 'quantity': Decimal('1')},
            ],
            user=self.owner, log_type='spoilage', reason='Weevils in the sack',
        )

        self.assertEqual(result.success_count, 1)
        self.assertEqual(result.failed[0]['index'], 1)
        log = result.logs[0]
        self.assertEqual(log.quantity_base, Decimal('100'))
        self.assertEqual(log.estimated_cost, Decimal('10.00'))
        movement = StockMovement.objects.get(movement_type='spoilage')
        self.assertEqual(movement.reference_number, f"DMG-{log.pk}")
        self.rice.refresh_from_db()
        self.assertEqual(self.rice.current_stock, Decimal('900'))

    def test_insufficient_stock_line_leaves_no_log(self):
        result = log_damage_spoilage(
            self.restaurant, [{'ingredient_id': self.rice.pk, 'quantity': Decimal('2'), 'unit': 'kg'}],
        )
        self.assertEqual(result.success_count, 0)
        self.assertFalse(DamageSpoilageLog.objects.exists())

    def test_incompatible_unit_fails_line(self):
        result = log_damage_spoilage(
            self.restaurant, [{'ingredient_id': self.rice.pk, 'quantity': Decimal('1'), 'unit': 'l'}],
        )
        self.assertEqual(len(result.failed), 1)
        self.assertIn('Cannot convert', result.failed[0]['error'])

    def test_no_entries(self):
        with self.assertRaises(ValidationError):
            log_damage_spoilage(self.restaurant, [])


class IngredientCostTest(TestCase):

    def test_cheapest_active_offering(self):
        restaurant, _, _ = create_restaurant()
        rice = create_ingredient(restaurant)
        create_offering(create_supplier(restaurant), rice, package_price='1250.00', contents='25000')
        create_offering(create_supplier(restaurant, name='Budget Grains'), rice,
                        package_price='45.00', contents='1000')
        create_offering(create_supplier(restaurant, name='Closed', is_active=False), rice,
                        package_price='1.00', contents='1000')

        self.assertEqual(ingredient_cost(rice), Decimal('0.0450'))

    def test_falls_back_to_running_average(self):
        restaurant, _, _ = create_restaurant()
        rice = create_ingredient(restaurant, cost_per_unit=Decimal('0.0600'))
        self.assertEqual(ingredient_cost(rice), Decimal('0.0600'))


class InventoryAPITest(APITestCase):
    """Test ingredient, dish and damage endpoints"""

    def setUp(self):
        self.restaurant, self.owner, self.purchaser = create_restaurant()
        self.rice = create_ingredient(self.restaurant, reorder_level=Decimal('100'))
        self.chicken = create_ingredient(self.restaurant, name='Chicken Thigh')
        StockLedger(allow_negative=False).receive_stock(self.rice.pk, Decimal('500'), Decimal('1'), Decimal('0.08'))
        self.dish = Dish.objects.create(restaurant=self.restaurant, name='Chicken Adobo')
        DishIngredient.objects.create(dish=self.dish, ingredient=self.rice, quantity_needed=Decimal('200'))
        DishIngredient.objects.create(dish=self.dish, ingredient=self.chicken, quantity_needed=Decimal('150'))
        self.client.force_authenticate(user=self.owner)

    def test_stock_fields_are_read_only(self):
        response = self.client.patch(
            reverse('ingredient-detail', args=[self.rice.pk]),
            {'current_stock': '99999', 'reorder_level': '250'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.rice.refresh_from_db()
        self.assertEqual(self.rice.current_stock, Decimal('500'))
        self.assertEqual(self.rice.reorder_level, Decimal('250'))

    def test_create_ingredient_normalizes_unit(self):
        response = self.client.post(reverse('ingredient-list'), {'name': 'Coconut Milk', 'base_unit': 'Litres'},
                                    format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        ingredient = Ingredient.objects.get(name='Coconut Milk')
        self.assertEqual(ingredient.base_unit, 'l')
        self.assertEqual(ingredient.restaurant, self.restaurant)

    def test_duplicate_ingredient_name(self):
        response = self.client.post(reverse('ingredient-list'), {'name': 'jasmine rice', 'base_unit': 'g'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unit_locked_after_movements(self):
        response = self.client.patch(reverse('ingredient-detail', args=[self.rice.pk]), {'base_unit': 'kg'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('base_unit', response.data)

    def test_sale_without_stock_is_conflict(self):
        response = self.client.post(reverse('dish-sale', args=[self.dish.pk]), {'quantity': '1'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'insufficient_stock')
        shortage = response.data['details']['shortages'][0]
        self.assertEqual(shortage['ingredient_id'], self.chicken.pk)
        self.rice.refresh_from_db()
        self.assertEqual(self.rice.current_stock, Decimal('500'))

    def test_sale(self):
        StockLedger(allow_negative=False).receive_stock(self.chicken.pk, Decimal('300'), Decimal('1'), Decimal('0.3'))

        response = self.client.post(reverse('dish-sale', args=[self.dish.pk]),
                                    {'quantity': '2', 'reference': 'OR-2001'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data['inventory_updates']), 2)
        self.rice.refresh_from_db()
        self.assertEqual(self.rice.current_stock, Decimal('100'))

    def test_dish_availability(self):
        response = self.client.get(reverse('dish-availability', args=[self.dish.pk]), {'quantity': '2'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['available'])
        self.assertEqual(response.data['shortages'][0]['ingredient'], 'Chicken Thigh')

    def test_low_stock(self):
        response = self.client.get(reverse('ingredient-low-stock'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = [row['name'] for row in response.data['ingredients']]
        self.assertEqual(names, ['Chicken Thigh'])

    def test_create_dish_with_recipe(self):
        response = self.client.post(reverse('dish-list'), {
            'name': 'Garlic Rice',
            'price': '60.00',
            'ingredients': [{'ingredient': self.rice.pk, 'quantity_needed': '0.18', 'unit': 'kg'}],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        dish = Dish.objects.get(name='Garlic Rice')
        self.assertEqual(dish.dish_ingredients.get().unit, 'kg')

    def test_dish_recipe_rejects_incompatible_unit(self):
        response = self.client.post(reverse('dish-list'), {
            'name': 'Rice Soup',
            'ingredients': [{'ingredient': self.rice.pk, 'quantity_needed': '1', 'unit': 'l'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_plan_availability(self):
        response = self.client.post(reverse('plan-availability'), {
            'plan': [{'dish_id': self.dish.pk, 'quantity': '1'}],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['available'])

    def test_damage_report(self):
        response = self.client.post(reverse('damagelog-list'), {
            'log_type': 'waste',
            'reason': 'Burnt batch',
            'items': [
                {'ingredient_id': self.rice.pk, 'quantity': '50'},
                {'ingredient_id': self.chicken.pk, 'quantity': '50'},
            ],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['success_count'], 1)
        self.assertEqual(len(response.data['failed']), 1)

    def test_movements_are_scoped(self):
        other, _, _ = create_restaurant('Other Place')
        flour = create_ingredient(other, name='Flour')
        StockLedger(allow_negative=False).receive_stock(flour.pk, Decimal('10'), Decimal('1'), Decimal('1'))

        response = self.client.get(reverse('stockmovement-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['ingredient_name'] for row in response.data['results']], ['Jasmine Rice'])
