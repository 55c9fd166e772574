from datetime import date, timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status

from backoffice_api.exceptions import ValidationError, NotFoundError, ConflictError, InvalidTransitionError
from tests.helpers import create_restaurant, create_ingredient, create_supplier, create_order
from .models import SupplierBill, SupplierPayment
from .services import BillingEngine, PaymentLedger, calculate_due_date


def delivered_order(restaurant, supplier, lines, received=None, delivered_on=None):
    """Delivered order with every line received in full unless ``received`` says otherwise"""
    purchase_order = create_order(restaurant, supplier, lines, status='delivered')
    for index, item in enumerate(purchase_order.items.all()):
        item.received_quantity = item.ordered_quantity if received is None else Decimal(str(received[index]))
        item.save()
    purchase_order.actual_delivery_date = delivered_on or timezone.localdate()
    purchase_order.save()
    return purchase_order


class DueDateTest(TestCase):
    """Test payment term offsets"""

    def test_known_terms(self):
        bill_date = date(2026, 1, 31)
        self.assertEqual(calculate_due_date(bill_date, 'NET_15'), date(2026, 2, 15))
        self.assertEqual(calculate_due_date(bill_date, 'net_7'), date(2026, 2, 7))
        self.assertEqual(calculate_due_date(bill_date, 'COD'), bill_date)

    def test_unknown_terms_default_to_thirty_days(self):
        self.assertEqual(calculate_due_date(date(2026, 3, 1), 'EOM'), date(2026, 3, 31))
        self.assertEqual(calculate_due_date(date(2026, 3, 1), None), date(2026, 3, 31))


class BillingEngineTest(TestCase):
    """Test bill generation from purchase orders"""

    def setUp(self):
        self.restaurant, self.owner, _ = create_restaurant()
        self.rice = create_ingredient(self.restaurant)
        self.supplier = create_supplier(self.restaurant, payment_terms='NET_15')
        self.engine = BillingEngine(default_tax_rate='12')

    def test_generate_uses_received_quantities(self):
        purchase_order = delivered_order(self.restaurant, self.supplier, [(self.rice, 5, '100.00')], received=[3])

        bill = self.engine.generate_bill_from_purchase_order(purchase_order.pk, user=self.owner)

        self.assertEqual(bill.subtotal, Decimal('300.00'))
        self.assertEqual(bill.tax_amount, Decimal('36.00'))
        self.assertEqual(bill.total_amount, Decimal('336.00'))
        self.assertEqual(bill.outstanding_amount, bill.total_amount)
        self.assertEqual(bill.status, 'pending')
        self.assertEqual(bill.payment_terms, 'NET_15')
        self.assertEqual(bill.due_date, timezone.localdate() + timedelta(days=15))
        self.assertEqual(bill.bill_number, f"BILL-{timezone.now().year}-000001")

    def test_discount_and_tax(self):
        purchase_order = delivered_order(self.restaurant, self.supplier, [(self.rice, 10, '100.00')])

        bill = self.engine.generate_bill_from_purchase_order(
            purchase_order.pk, tax_rate=Decimal('10'), discount_amount=Decimal('100'),
        )

        self.assertEqual(bill.subtotal, Decimal('1000.00'))
        self.assertEqual(bill.tax_amount, Decimal('90.00'))
        self.assertEqual(bill.total_amount, Decimal('990.00'))

    def test_one_bill_per_order(self):
        purchase_order = delivered_order(self.restaurant, self.supplier, [(self.rice, 1, '100.00')])
        self.engine.generate_bill_from_purchase_order(purchase_order.pk)

        with self.assertRaises(ConflictError):
            self.engine.generate_bill_from_purchase_order(purchase_order.pk)
        self.assertEqual(SupplierBill.objects.count(), 1)

    def test_order_must_be_delivered(self):
        purchase_order = create_order(self.restaurant, self.supplier, [(self.rice, 1, '100.00')])
        with self.assertRaises(InvalidTransitionError):
            self.engine.generate_bill_from_purchase_order(purchase_order.pk)

    def test_nothing_received(self):
        purchase_order = delivered_order(self.restaurant, self.supplier, [(self.rice, 2, '100.00')], received=[0])
        with self.assertRaises(ValidationError):
            self.engine.generate_bill_from_purchase_order(purchase_order.pk)

    def test_discount_above_subtotal(self):
        purchase_order = delivered_order(self.restaurant, self.supplier, [(self.rice, 1, '100.00')])
        with self.assertRaises(ValidationError):
            self.engine.generate_bill_from_purchase_order(purchase_order.pk, discount_amount=Decimal('150'))

    def test_unknown_order(self):
        with self.assertRaises(NotFoundError):
            self.engine.generate_bill_from_purchase_order(999999)

    def test_bulk_generation_reports_each_order(self):
        billable = delivered_order(self.restaurant, self.supplier, [(self.rice, 1, '100.00')])
        not_billable = create_order(self.restaurant, self.supplier, [(self.rice, 1, '100.00')], status='sent')

        result = self.engine.bulk_generate_bills([billable.pk, not_billable.pk, 999999])

        self.assertEqual(result.processed_count, 3)
        self.assertEqual(result.success_count, 1)
        self.assertEqual(result.error_count, 2)
        self.assertFalse(result.success)
        self.assertTrue(result.results[0]['success'])


class PaymentLedgerTest(TestCase):
    """Test payments, cancellations and overdue marking"""

    def setUp(self):
        self.restaurant, self.owner, _ = create_restaurant()
        self.rice = create_ingredient(self.restaurant)
        self.supplier = create_supplier(self.restaurant)
        purchase_order = delivered_order(self.restaurant, self.supplier, [(self.rice, 2, '500.00')])
        self.bill = BillingEngine().generate_bill_from_purchase_order(purchase_order.pk, tax_rate=Decimal('0'))
        self.ledger = PaymentLedger()

    def test_payments_settle_the_bill(self):
        self.assertEqual(self.bill.total_amount, Decimal('1000.00'))

        first = self.ledger.record_payment(self.bill.pk, Decimal('400'), 'gcash', user=self.owner)
        self.assertEqual(first.bill.paid_amount, Decimal('400.00'))
        self.assertEqual(first.bill.outstanding_amount, Decimal('600.00'))
        self.assertEqual(first.bill.status, 'partially_paid')
        self.assertTrue(first.payment.payment_reference.startswith(f"PAY-{timezone.now().year}-"))

        second = self.ledger.record_payment(self.bill.pk, Decimal('600'), 'bank_transfer')
        self.assertEqual(second.bill.status, 'paid')
        self.assertEqual(second.bill.outstanding_amount, Decimal('0.00'))

        with self.assertRaises(ConflictError):
            self.ledger.record_payment(self.bill.pk, Decimal('1'), 'cash')

        self.bill.refresh_from_db()
        self.assertEqual(self.bill.paid_amount, Decimal('1000.00'))
        self.assertEqual(SupplierPayment.objects.count(), 2)

    def test_overpayment_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.ledger.record_payment(self.bill.pk, Decimal('1000.01'), 'cash')
        self.bill.refresh_from_db()
        self.assertEqual(self.bill.paid_amount, Decimal('0.00'))
        self.assertFalse(SupplierPayment.objects.exists())

    def test_invalid_payment_input(self):
        with self.assertRaises(ValidationError):
            self.ledger.record_payment(self.bill.pk, Decimal('0'), 'cash')
        with self.assertRaises(ValidationError):
            self.ledger.record_payment(self.bill.pk, Decimal('10'), 'barter')
        with self.assertRaises(NotFoundError):
            self.ledger.record_payment(999999, Decimal('10'), 'cash')

    def test_cancel_payment_reopens_bill(self):
        self.ledger.record_payment(self.bill.pk, Decimal('400'), 'cash')
        payment = self.ledger.record_payment(self.bill.pk, Decimal('600'), 'cash').payment

        result = self.ledger.cancel_payment(payment.pk, user=self.owner, reason='Bounced transfer')

        self.assertEqual(result.payment.status, 'cancelled')
        self.assertEqual(result.payment.cancelled_by, self.owner)
        self.assertIn('Cancelled: Bounced transfer', result.payment.notes)
        self.assertEqual(result.bill.paid_amount, Decimal('400.00'))
        self.assertEqual(result.bill.outstanding_amount, Decimal('600.00'))
        self.assertEqual(result.bill.status, 'partially_paid')

        with self.assertRaises(ConflictError):
            self.ledger.cancel_payment(payment.pk)

    def test_cancel_payment_on_past_due_bill(self):
        self.bill.due_date = timezone.localdate() - timedelta(days=3)
        self.bill.save()
        self.ledger.record_payment(self.bill.pk, Decimal('400'), 'cash')
        payment = self.ledger.record_payment(self.bill.pk, Decimal('600'), 'cash').payment

        result = self.ledger.cancel_payment(payment.pk)

        self.assertEqual(result.bill.outstanding_amount, Decimal('600.00'))
        self.assertEqual(result.bill.status, 'overdue')

    def test_partial_payment_keeps_bill_overdue(self):
        self.bill.bill_date = timezone.localdate() - timedelta(days=30)
        self.bill.due_date = self.bill.bill_date + timedelta(days=7)
        self.bill.save()
        self.ledger.mark_overdue()
        self.bill.refresh_from_db()
        self.assertEqual(self.bill.status, 'overdue')

        result = self.ledger.record_payment(self.bill.pk, Decimal('100'), 'cash')

        self.assertEqual(result.bill.outstanding_amount, Decimal('900.00'))
        self.assertEqual(result.bill.status, 'overdue')

        result = self.ledger.record_payment(self.bill.pk, Decimal('900'), 'cash')
        self.assertEqual(result.bill.status, 'paid')

    def test_update_payment_amount(self):
        payment = self.ledger.record_payment(self.bill.pk, Decimal('400'), 'cash').payment

        result = self.ledger.update_payment(payment.pk, amount=Decimal('700'), payment_method='check')

        self.assertEqual(result.payment.amount, Decimal('700.00'))
        self.assertEqual(result.payment.payment_method, 'check')
        self.assertEqual(result.bill.paid_amount, Decimal('700.00'))
        self.assertEqual(result.bill.outstanding_amount, Decimal('300.00'))

        with self.assertRaises(ValidationError):
            self.ledger.update_payment(payment.pk, amount=Decimal('1200'))

    def test_cancelled_payment_cannot_be_edited(self):
        payment = self.ledger.record_payment(self.bill.pk, Decimal('400'), 'cash').payment
        self.ledger.cancel_payment(payment.pk)
        with self.assertRaises(ConflictError):
            self.ledger.update_payment(payment.pk, notes='Late edit')

    def test_mark_overdue(self):
        self.bill.due_date = timezone.localdate() - timedelta(days=1)
        self.bill.save()
        other, _, _ = create_restaurant('Other Place')

        with self.assertLogs('billing.services', 'WARNING'):
            result = self.ledger.mark_overdue()

        self.assertEqual(result.marked_count, 1)
        self.assertEqual(result.total_overdue, Decimal('1000.00'))
        self.bill.refresh_from_db()
        self.assertEqual(self.bill.status, 'overdue')
        self.assertEqual(self.ledger.mark_overdue(restaurant=other).marked_count, 0)

    def test_paid_bill_never_goes_overdue(self):
        self.ledger.record_payment(self.bill.pk, Decimal('1000'), 'cash')
        result = self.ledger.mark_overdue(today=self.bill.due_date + timedelta(days=10))
        self.assertEqual(result.marked_count, 0)


class MarkOverdueCommandTest(TestCase):
    """Test the mark_overdue_bills management command"""

    def setUp(self):
        self.restaurant, _, _ = create_restaurant()
        rice = create_ingredient(self.restaurant)
        supplier = create_supplier(self.restaurant, payment_terms='NET_7')
        purchase_order = delivered_order(self.restaurant, supplier, [(rice, 1, '250.00')])
        self.bill = BillingEngine().generate_bill_from_purchase_order(
            purchase_order.pk, bill_date=timezone.localdate() - timedelta(days=10),
        )

    def test_dry_run_changes_nothing(self):
        out = StringIO()
        call_command('mark_overdue_bills', '--dry-run', stdout=out)

        self.assertIn('1 bill(s) would be marked overdue', out.getvalue())
        self.bill.refresh_from_db()
        self.assertEqual(self.bill.status, 'pending')

    def test_marks_bills(self):
        out = StringIO()
        call_command('mark_overdue_bills', restaurant=self.restaurant.pk, stdout=out)

        self.assertIn(f"Marked {self.bill.bill_number} overdue", out.getvalue())
        self.bill.refresh_from_db()
        self.assertEqual(self.bill.status, 'overdue')

    def test_unknown_restaurant(self):
        with self.assertRaises(CommandError):
            call_command('mark_overdue_bills', restaurant=999999, stdout=StringIO())


class BillingAPITest(APITestCase):
    """Test bill and payment endpoints"""

    def setUp(self):
        self.restaurant, self.owner, self.purchaser = create_restaurant()
        self.rice = create_ingredient(self.restaurant)
        self.supplier = create_supplier(self.restaurant)
        self.purchase_order = delivered_order(self.restaurant, self.supplier, [(self.rice, 4, '250.00')])
        self.client.force_authenticate(user=self.purchaser)

    def generate(self, **payload):
        payload.setdefault('purchase_order_id', self.purchase_order.pk)
        payload.setdefault('tax_rate', '0')
        return self.client.post(reverse('supplierbill-generate'), payload, format='json')

    def test_generate(self):
        response = self.generate(supplier_invoice_number='SI-88812')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_amount'], '1000.00')
        self.assertEqual(response.data['po_number'], self.purchase_order.po_number)
        self.assertEqual(response.data['payments'], [])

    def test_generate_twice_conflicts(self):
        self.generate()
        response = self.generate()
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'conflict')

    def test_generate_for_other_restaurant(self):
        other, _, _ = create_restaurant('Other Place')
        foreign = delivered_order(other, create_supplier(other, name='Elsewhere Foods'), [(create_ingredient(other), 1, '10.00')])

        response = self.generate(purchase_order_id=foreign.pk)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(SupplierBill.objects.exists())

    def test_bulk_generate(self):
        other, _, _ = create_restaurant('Other Place')
        foreign = delivered_order(other, create_supplier(other, name='Elsewhere Foods'), [(create_ingredient(other), 1, '10.00')])

        response = self.client.post(reverse('supplierbill-bulk-generate'), {
            'purchase_order_ids': [self.purchase_order.pk, foreign.pk],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['processed_count'], 2)
        self.assertEqual(response.data['success_count'], 1)
        self.assertEqual(response.data['error_count'], 1)

    def test_record_and_cancel_payment(self):
        bill_id = self.generate().data['id']

        response = self.client.post(reverse('supplierbill-payments', args=[bill_id]), {
            'amount': '400.00', 'payment_method': 'gcash', 'transaction_reference': 'GC-5521',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['bill']['status'], 'partially_paid')
        self.assertEqual(response.data['bill']['outstanding_amount'], '600.00')

        payment_id = response.data['payment']['id']
        response = self.client.post(reverse('supplierpayment-cancel', args=[payment_id]),
                                    {'reason': 'Wrong bill'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['payment']['status'], 'cancelled')
        self.assertEqual(response.data['bill']['status'], 'pending')

    def test_overpayment_is_bad_request(self):
        bill_id = self.generate().data['id']
        response = self.client.post(reverse('supplierbill-payments', args=[bill_id]),
                                    {'amount': '1500.00', 'payment_method': 'cash'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'validation_error')

    def test_update_payment(self):
        bill_id = self.generate().data['id']
        payment_id = self.client.post(reverse('supplierbill-payments', args=[bill_id]),
                                      {'amount': '400.00', 'payment_method': 'cash'},
                                      format='json').data['payment']['id']

        response = self.client.patch(reverse('supplierpayment-detail', args=[payment_id]),
                                     {'amount': '1000.00'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['bill']['status'], 'paid')

    def test_mark_overdue_needs_manager(self):
        response = self.client.post(reverse('supplierbill-mark-overdue'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.owner)
        response = self.client.post(reverse('supplierbill-mark-overdue'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['marked_count'], 0)

    def test_filter_by_status(self):
        self.generate()
        response = self.client.get(reverse('supplierbill-list'), {'status': 'paid'})
        self.assertEqual(response.data['results'], [])
