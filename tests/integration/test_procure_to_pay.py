"""
End-to-end purchasing flow through the HTTP API: order, approve, supplier
confirmation, receiving, stock, billing and payments.
"""

import re
from decimal import Decimal

from django.core import mail
from django.test import override_settings
from django.urls import reverse
from rest_framework.test import APITestCase
from rest_framework import status

from billing.models import SupplierBill
from inventory.models import StockMovement
from tests.helpers import create_restaurant, create_ingredient, create_supplier, create_offering


@override_settings(BILLING_DEFAULT_TAX_RATE='0')
class ProcureToPayTest(APITestCase):
    """Test the purchase-to-payment flow"""

    def setUp(self):
        self.restaurant, self.owner, self.purchaser = create_restaurant()
        self.calamansi = create_ingredient(self.restaurant, name='Calamansi', base_unit='pcs')
        self.rice = create_ingredient(self.restaurant, name='Jasmine Rice')
        self.chicken = create_ingredient(self.restaurant, name='Chicken Thigh')
        self.supplier = create_supplier(self.restaurant, payment_terms='NET_30')
        create_offering(self.supplier, self.rice, package_price='50.00', contents='1000', package_unit='bag')
        create_offering(self.supplier, self.chicken, package_price='100.00', contents='1000', package_unit='tray')

    def test_weighted_average_cost_across_deliveries(self):
        self.client.force_authenticate(user=self.purchaser)
        url = reverse('manual_receive')

        response = self.client.post(url, {
            'supplier_name': 'Palengke Vendor',
            'items': [{'ingredient_id': self.calamansi.pk, 'packages': '10', 'contents_quantity': '5',
                       'package_price': '10.00', 'package_unit': 'net'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.calamansi.refresh_from_db()
        self.assertEqual(self.calamansi.current_stock, Decimal('50'))
        self.assertEqual(self.calamansi.cost_per_unit, Decimal('2'))

        response = self.client.post(url, {
            'supplier_name': 'Palengke Vendor',
            'items': [{'ingredient_id': self.calamansi.pk, 'packages': '5', 'contents_quantity': '5',
                       'package_price': '20.00', 'package_unit': 'net'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNotNone(response.data['bill'])

        self.calamansi.refresh_from_db()
        self.assertEqual(self.calamansi.current_stock, Decimal('75'))
        self.assertEqual(self.calamansi.cost_per_unit.quantize(Decimal('0.01')), Decimal('2.67'))

    def test_order_to_payment(self):
        # purchaser drafts and submits
        self.client.force_authenticate(user=self.purchaser)
        response = self.client.post(reverse('purchaseorder-list'), {
            'supplier_id': self.supplier.pk,
            'tax_rate': '0',
            'items': [
                {'ingredient_id': self.rice.pk, 'ordered_quantity': '10'},
                {'ingredient_id': self.chicken.pk, 'ordered_quantity': '5'},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        order_id = response.data['id']
        rice_item, chicken_item = [item['id'] for item in response.data['items']]

        self.client.post(reverse('purchaseorder-submit', args=[order_id]))

        # owner approves, which emails the supplier a signed confirm link
        self.client.force_authenticate(user=self.owner)
        mail.outbox = []
        response = self.client.post(reverse('purchaseorder-approve', args=[order_id]))
        self.assertEqual(response.data['purchase_order']['status'], 'sent')
        self.assertEqual(len(mail.outbox), 1)

        confirm_url = re.search(r'Confirm: (\S+)', mail.outbox[0].body).group(1)
        path = confirm_url.replace('http://127.0.0.1:8000', '')
        self.client.force_authenticate(user=None)
        response = self.client.get(path)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'confirmed')

        # kitchen receives in two deliveries
        self.client.force_authenticate(user=self.purchaser)
        receive_url = reverse('purchaseorder-receive', args=[order_id])
        response = self.client.post(receive_url, {
            'items': [
                {'item_id': rice_item, 'received_quantity': '10'},
                {'item_id': chicken_item, 'received_quantity': '3'},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['purchase_order']['status'], 'partially_delivered')
        self.assertIsNone(response.data['bill'])

        response = self.client.post(receive_url, {
            'items': [{'item_id': chicken_item, 'received_quantity': '2'}],
            'delivery_condition': 'good',
        }, format='json')
        self.assertEqual(response.data['purchase_order']['status'], 'delivered')
        self.assertEqual(response.data['partially_succeeded'], False)
        bill_id = response.data['bill']['id']
        self.assertEqual(SupplierBill.objects.count(), 1)
        self.assertEqual(StockMovement.objects.filter(movement_type='receive').count(), 3)

        self.chicken.refresh_from_db()
        self.assertEqual(self.chicken.current_stock, Decimal('5000'))

        # 10 x 50 + 5 x 100, no tax
        bill = SupplierBill.objects.get(pk=bill_id)
        self.assertEqual(bill.total_amount, Decimal('1000.00'))

        # pay it off in two parts
        payments_url = reverse('supplierbill-payments', args=[bill_id])
        response = self.client.post(payments_url, {'amount': '400.00', 'payment_method': 'gcash'}, format='json')
        self.assertEqual(response.data['bill']['paid_amount'], '400.00')
        self.assertEqual(response.data['bill']['outstanding_amount'], '600.00')
        self.assertEqual(response.data['bill']['status'], 'partially_paid')

        response = self.client.post(payments_url, {'amount': '600.00', 'payment_method': 'bank_transfer'},
                                    format='json')
        self.assertEqual(response.data['bill']['status'], 'paid')
        last_payment_id = response.data['payment']['id']

        response = self.client.post(payments_url, {'amount': '1.00', 'payment_method': 'cash'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        bill.refresh_from_db()
        self.assertEqual(bill.paid_amount, Decimal('1000.00'))

        # a bounced transfer reopens the bill
        response = self.client.post(reverse('supplierpayment-cancel', args=[last_payment_id]), {}, format='json')
        self.assertEqual(response.data['bill']['paid_amount'], '400.00')
        self.assertEqual(response.data['bill']['outstanding_amount'], '600.00')
        self.assertEqual(response.data['bill']['status'], 'partially_paid')

        response = self.client.get(reverse('purchaseorder-detail', args=[order_id]))
        self.assertEqual(response.data['bill']['status'], 'partially_paid')
