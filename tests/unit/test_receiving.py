"""
Unit tests for delivery receiving and manual receiving
"""

from decimal import Decimal
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase

from backoffice_api.exceptions import (
    ValidationError, NotFoundError, ConflictError, InvalidTransitionError,
)
from billing.models import SupplierBill
from inventory.models import Ingredient, StockMovement
from procurement.models import PurchaseOrder
from procurement.receiving import ReceivingProcessor
from tests.helpers import create_restaurant, create_ingredient, create_supplier, create_offering, create_order


class ReceivingTestCase(TestCase):

    def setUp(self):
        self.restaurant, self.owner, self.purchaser = create_restaurant()
        self.rice = create_ingredient(self.restaurant, name='Jasmine Rice')
        self.chicken = create_ingredient(self.restaurant, name='Chicken Thigh')
        self.supplier = create_supplier(self.restaurant, payment_terms='NET_15')
        create_offering(self.supplier, self.rice, package_price='1250.00', contents='25000', package_unit='sack')
        create_offering(self.supplier, self.chicken, package_price='480.00', contents='2000', package_unit='tray')
        self.order = create_order(
            self.restaurant, self.supplier,
            [(self.rice, 10, '1250.00'), (self.chicken, 5, '480.00')],
        )
        self.rice_item, self.chicken_item = list(self.order.items.order_by('id'))
        self.processor = ReceivingProcessor(allow_over_delivery=False)


class ReceiveDeliveryTest(ReceivingTestCase):
    """Test receiving against a confirmed purchase order"""

    def test_partial_then_full_delivery(self):
        first = self.processor.receive(self.order.pk, [
            {'item_id': self.rice_item.pk, 'received_quantity': Decimal('10')},
            {'item_id': self.chicken_item.pk, 'received_quantity': Decimal('3')},
        ], user=self.purchaser)

        self.assertEqual(first.order.status, 'partially_delivered')
        self.assertIsNone(first.bill)
        self.assertEqual(len(first.inventory_updates), 2)
        self.assertFalse(SupplierBill.objects.exists())

        second = self.processor.receive(self.order.pk, [
            {'item_id': self.chicken_item.pk, 'received_quantity': Decimal('2')},
        ], {'delivery_condition': 'good', 'received_by': 'Rafael (commissary)'}, user=self.purchaser)

        self.assertEqual(second.order.status, 'delivered')
        self.assertEqual(second.order.received_by, 'Rafael (commissary)')
        self.assertIsNotNone(second.bill)
        self.assertEqual(SupplierBill.objects.filter(purchase_order=self.order).count(), 1)
        self.assertEqual(second.bill.subtotal, Decimal('14900.00'))
        self.assertEqual(second.bill.payment_terms, 'NET_15')
        self.assertFalse(second.partially_succeeded)

        with self.assertRaises(ConflictError):
            self.processor.receive(self.order.pk, [
                {'item_id': self.chicken_item.pk, 'received_quantity': Decimal('0')},
            ])
        self.assertEqual(SupplierBill.objects.count(), 1)

    def test_stock_is_received_in_base_units(self):
        self.processor.receive(self.order.pk, [
            {'item_id': self.rice_item.pk, 'received_quantity': Decimal('2')},
        ], user=self.purchaser)

        self.rice.refresh_from_db()
        self.assertEqual(self.rice.current_stock, Decimal('50000'))
        self.assertEqual(self.rice.packages, Decimal('2'))
        self.assertEqual(self.rice.cost_per_unit, Decimal('0.0500'))
        movement = StockMovement.objects.get(ingredient=self.rice)
        self.assertEqual(movement.movement_type, 'receive')
        self.assertEqual(movement.reference_number, self.order.po_number)

    def test_over_delivery_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.processor.receive(self.order.pk, [
                {'item_id': self.rice_item.pk, 'received_quantity': Decimal('10')},
                {'item_id': self.chicken_item.pk, 'received_quantity': Decimal('6')},
            ])

        self.rice.refresh_from_db()
        self.assertEqual(self.rice.current_stock, Decimal('0'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, 'confirmed')

    def test_over_delivery_when_allowed(self):
        processor = ReceivingProcessor(allow_over_delivery=True)
        result = processor.receive(self.order.pk, [
            {'item_id': self.rice_item.pk, 'received_quantity': Decimal('10')},
            {'item_id': self.chicken_item.pk, 'received_quantity': Decimal('6')},
        ])
        self.assertEqual(result.order.status, 'delivered')
        self.chicken_item.refresh_from_db()
        self.assertEqual(self.chicken_item.received_quantity, Decimal('6'))

    def test_close_short_finishes_the_order(self):
        result = self.processor.receive(self.order.pk, [
            {'item_id': self.rice_item.pk, 'received_quantity': Decimal('10')},
            {'item_id': self.chicken_item.pk, 'received_quantity': Decimal('3'),
             'has_discrepancy': True, 'discrepancy_reason': 'Supplier ran out'},
        ], {'close_short': True})

        self.assertEqual(result.order.status, 'delivered')
        self.assertEqual(result.bill.subtotal, Decimal('13940.00'))

    def test_discrepancy_needs_reason(self):
        with self.assertRaises(ValidationError):
            self.processor.receive(self.order.pk, [
                {'item_id': self.chicken_item.pk, 'received_quantity': Decimal('3'), 'has_discrepancy': True},
            ])

    def test_item_without_offering(self):
        garlic = create_ingredient(self.restaurant, name='Garlic')
        order = create_order(self.restaurant, self.supplier, [(garlic, 2, '90.00')])

        with self.assertRaises(ValidationError):
            self.processor.receive(order.pk, [{'item_id': order.items.get().pk, 'received_quantity': Decimal('2')}])

    def test_duplicate_and_unknown_items(self):
        with self.assertRaises(ValidationError):
            self.processor.receive(self.order.pk, [
                {'item_id': self.rice_item.pk, 'received_quantity': Decimal('1')},
                {'item_id': self.rice_item.pk, 'received_quantity': Decimal('1')},
            ])
        with self.assertRaises(NotFoundError):
            self.processor.receive(self.order.pk, [{'item_id': 999999, 'received_quantity': Decimal('1')}])

    def test_package_counts_allow_two_decimals(self):
        with self.assertRaises(ValidationError):
            self.processor.receive(self.order.pk, [
                {'item_id': self.rice_item.pk, 'received_quantity': Decimal('1.234')},
            ])

    def test_order_must_be_confirmed(self):
        sent = create_order(self.restaurant, self.supplier, [(self.rice, 1, '1250.00')], status='sent')
        with self.assertRaises(InvalidTransitionError):
            self.processor.receive(sent.pk, [{'item_id': sent.items.get().pk, 'received_quantity': Decimal('1')}])

    def test_billing_failure_is_a_warning(self):
        billing = mock.Mock()
        billing.generate_bill_from_purchase_order.side_effect = ConflictError('Ledger locked for month end')
        processor = ReceivingProcessor(billing=billing, allow_over_delivery=False)

        with self.assertLogs('procurement.receiving', 'WARNING'):
            result = processor.receive(self.order.pk, [
                {'item_id': self.rice_item.pk, 'received_quantity': Decimal('10')},
                {'item_id': self.chicken_item.pk, 'received_quantity': Decimal('5')},
            ])

        self.assertTrue(result.partially_succeeded)
        self.assertIn('Bill generation failed', result.warnings[0])
        self.assertIsNone(result.bill)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, 'delivered')
        self.chicken.refresh_from_db()
        self.assertEqual(self.chicken.current_stock, Decimal('10000'))

    def test_unexpected_billing_error_is_a_warning(self):
        billing = mock.Mock()
        billing.generate_bill_from_purchase_order.side_effect = DatabaseError('bill table locked')
        processor = ReceivingProcessor(billing=billing, allow_over_delivery=False)

        with self.assertLogs('procurement.receiving', 'ERROR'):
            result = processor.receive(self.order.pk, [
                {'item_id': self.rice_item.pk, 'received_quantity': Decimal('10')},
                {'item_id': self.chicken_item.pk, 'received_quantity': Decimal('5')},
            ])

        self.assertTrue(result.partially_succeeded)
        self.assertIn('bill table locked', result.warnings[0])
        self.assertIsNone(result.bill)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, 'delivered')
        self.rice.refresh_from_db()
        self.assertEqual(self.rice.current_stock, Decimal('250000'))


class ManualReceiveTest(ReceivingTestCase):
    """Test receiving goods bought outside a purchase order"""

    def test_manual_receive_creates_order_stock_and_bill(self):
        result = self.processor.manual_receive(
            self.restaurant,
            {'name': 'Palengke Vendor', 'contact': '0917 555 0101'},
            [
                {'name': 'jasmine rice', 'packages': Decimal('2'), 'contents_quantity': Decimal('25000'),
                 'package_price': Decimal('1100.00'), 'package_unit': 'sack'},
                {'name': 'Fish Sauce', 'base_unit': 'ml', 'packages': Decimal('6'),
                 'contents_quantity': Decimal('750'), 'package_price': Decimal('85.00')},
            ],
            {'delivery_condition': 'fair'},
            user=self.purchaser,
        )

        order = result.order
        self.assertTrue(order.is_manual_receive)
        self.assertIsNone(order.supplier)
        self.assertEqual(order.status, 'delivered')
        self.assertEqual(order.display_supplier_name, 'Palengke Vendor')
        self.assertEqual(order.subtotal, Decimal('2710.00'))
        self.assertEqual(order.received_by, 'Paolo Purchaser')

        self.rice.refresh_from_db()
        self.assertEqual(self.rice.current_stock, Decimal('50000'))
        fish_sauce = Ingredient.objects.get(restaurant=self.restaurant, name='Fish Sauce')
        self.assertEqual(fish_sauce.base_unit, 'ml')
        self.assertEqual(fish_sauce.cost_per_unit, Decimal('0.1133'))
        self.assertEqual(StockMovement.objects.filter(movement_type='manual_receive').count(), 2)

        self.assertIsNotNone(result.bill)
        self.assertIsNone(result.bill.supplier)
        self.assertEqual(result.bill.payment_terms, 'NET_30')
        self.assertEqual(result.bill.total_amount, Decimal('3035.20'))

    def test_batch_cost_is_not_rounded_before_averaging(self):
        calamansi = create_ingredient(self.restaurant, name='Calamansi', base_unit='pcs',
                                      current_stock=Decimal('1'), cost_per_unit=Decimal('0'))

        self.processor.manual_receive(self.restaurant, {'name': 'Palengke Vendor'}, [
            {'ingredient_id': calamansi.pk, 'packages': Decimal('1'),
             'contents_quantity': Decimal('3000'), 'package_price': Decimal('2000.00')},
        ])

        # 2000 / 3001 rather than 0.6667 x 3000 / 3001
        calamansi.refresh_from_db()
        self.assertEqual(calamansi.cost_per_unit, Decimal('0.6664'))

    def test_unknown_unit_for_new_ingredient(self):
        with self.assertRaises(ValidationError):
            self.processor.manual_receive(
                self.restaurant, {'name': 'Palengke Vendor'},
                [{'name': 'Lemongrass', 'base_unit': 'bundle', 'packages': Decimal('1'),
                  'contents_quantity': Decimal('1'), 'package_price': Decimal('20')}],
            )
        self.assertFalse(PurchaseOrder.objects.filter(is_manual_receive=True).exists())
        self.assertFalse(Ingredient.objects.filter(name='Lemongrass').exists())

    def test_foreign_ingredient_id(self):
        other, _, _ = create_restaurant('Other Place')
        flour = create_ingredient(other, name='Flour')
        with self.assertRaises(NotFoundError):
            self.processor.manual_receive(
                self.restaurant, {'name': 'Palengke Vendor'},
                [{'ingredient_id': flour.pk, 'packages': Decimal('1'),
                  'contents_quantity': Decimal('1000'), 'package_price': Decimal('60')}],
            )

    def test_supplier_name_required(self):
        with self.assertRaises(ValidationError):
            self.processor.manual_receive(self.restaurant, {'name': '  '}, [
                {'ingredient_id': self.rice.pk, 'packages': Decimal('1'),
                 'contents_quantity': Decimal('1000'), 'package_price': Decimal('60')},
            ])
