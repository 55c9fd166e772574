"""
Supplier billing: bills derived from purchase orders and the payments
applied against them.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List

from django.conf import settings
from django.db import transaction, IntegrityError
from django.utils import timezone

from backoffice_api.exceptions import (
    BackofficeError, ValidationError, NotFoundError, ConflictError, InvalidTransitionError,
)
from backoffice_api.utils import to_decimal, quantize_money
from procurement.models import PurchaseOrder
from .models import SupplierBill, SupplierPayment

logger = logging.getLogger(__name__)

PAYMENT_TERM_DAYS = {
    'COD': 0,
    'NET_0': 0,
    'NET_7': 7,
    'NET_15': 15,
    'NET_30': 30,
    'NET_60': 60,
    'NET_90': 90,
}
DEFAULT_TERM_DAYS = 30


def calculate_due_date(bill_date, payment_terms):
    """Bill date plus the term offset; unknown terms fall back to 30 days"""
    days = PAYMENT_TERM_DAYS.get((payment_terms or '').strip().upper(), DEFAULT_TERM_DAYS)
    return bill_date + timedelta(days=days)


@dataclass
class BulkBillResult:
    processed_count: int = 0
    success_count: int = 0
    error_count: int = 0
    results: List[Dict] = field(default_factory=list)

    @property
    def success(self):
        return self.error_count == 0


@dataclass
class PaymentResult:
    payment: SupplierPayment
    bill: SupplierBill


@dataclass
class OverdueResult:
    marked_count: int = 0
    total_overdue: Decimal = Decimal('0.00')
    bill_numbers: List[str] = field(default_factory=list)


class BillingEngine:
    """Creates at most one supplier bill per purchase order"""

    def __init__(self, default_tax_rate=None):
        if default_tax_rate is None:
            default_tax_rate = settings.BILLING_DEFAULT_TAX_RATE
        self.default_tax_rate = to_decimal(default_tax_rate, 'tax_rate')

    def generate_bill_from_purchase_order(self, purchase_order_id, *, user=None, bill_date=None,
                                          supplier_invoice_number='', tax_rate=None,
                                          discount_amount=None, notes='') -> SupplierBill:
        tax_rate = self.default_tax_rate if tax_rate is None else to_decimal(tax_rate, 'tax_rate')
        discount = to_decimal(discount_amount or 0, 'discount_amount')
        if tax_rate < 0:
            raise ValidationError('Tax rate cannot be negative')
        if discount < 0:
            raise ValidationError('Discount cannot be negative')

        with transaction.atomic():
            try:
                purchase_order = (PurchaseOrder.objects.select_for_update()
                                  .select_related('supplier').get(pk=purchase_order_id))
            except (PurchaseOrder.DoesNotExist, ValueError, TypeError):
                raise NotFoundError(f"Purchase order {purchase_order_id} not found",
                                    {'purchase_order_id': purchase_order_id})

            existing = SupplierBill.objects.filter(purchase_order=purchase_order).first()
            if existing:
                raise ConflictError(
                    f"Bill {existing.bill_number} already exists for {purchase_order.po_number}",
                    {'bill_id': existing.pk, 'bill_number': existing.bill_number},
                )
            if purchase_order.status not in PurchaseOrder.BILLABLE_STATUSES:
                raise InvalidTransitionError(purchase_order.status, 'bill', PurchaseOrder.BILLABLE_STATUSES)

            subtotal = quantize_money(sum(
                (item.received_quantity * item.unit_price for item in purchase_order.items.all()),
                Decimal('0'),
            ))
            if subtotal <= 0:
                raise ValidationError(f"Nothing has been received on {purchase_order.po_number}")
            if discount > subtotal:
                raise ValidationError('Discount cannot exceed the bill subtotal')

            taxable = subtotal - discount
            tax_amount = quantize_money(taxable * tax_rate / Decimal('100'))
            total_amount = quantize_money(taxable + tax_amount)

            if purchase_order.supplier:
                payment_terms = purchase_order.supplier.payment_terms
            else:
                payment_terms = settings.BILLING_DEFAULT_PAYMENT_TERMS
            bill_date = bill_date or purchase_order.actual_delivery_date or timezone.localdate()

            try:
                with transaction.atomic():
                    bill = SupplierBill.objects.create(
                        purchase_order=purchase_order,
                        restaurant_id=purchase_order.restaurant_id,
                        supplier=purchase_order.supplier,
                        supplier_invoice_number=supplier_invoice_number or '',
                        bill_date=bill_date,
                        due_date=calculate_due_date(bill_date, payment_terms),
                        payment_terms=payment_terms,
                        subtotal=subtotal,
                        tax_rate=tax_rate,
                        tax_amount=tax_amount,
                        discount_amount=quantize_money(discount),
                        total_amount=total_amount,
                        paid_amount=Decimal('0.00'),
                        outstanding_amount=total_amount,
                        status='pending',
                        notes=notes or f"Auto-generated from {purchase_order.po_number}",
                        created_by=user,
                    )
            except IntegrityError:
                raise ConflictError(f"A bill already exists for {purchase_order.po_number}")

        logger.info(
            "Generated bill %s for %s: total %s due %s (%s)",
            bill.bill_number, purchase_order.po_number, bill.total_amount, bill.due_date, payment_terms,
        )
        return bill

    def bulk_generate_bills(self, purchase_order_ids, *, user=None, **options) -> BulkBillResult:
        """Generate bills order by order; one failure does not undo the others"""
        result = BulkBillResult()
        for purchase_order_id in purchase_order_ids:
            result.processed_count += 1
            try:
                bill = self.generate_bill_from_purchase_order(purchase_order_id, user=user, **options)
            except BackofficeError as exc:
                result.error_count += 1
                result.results.append({
                    'purchase_order_id': purchase_order_id,
                    'success': False,
                    'error': exc.message,
                })
            else:
                result.success_count += 1
                result.results.append({
                    'purchase_order_id': purchase_order_id,
                    'success': True,
                    'bill_id': bill.pk,
                    'bill_number': bill.bill_number,
                })

        logger.info(
            "Bulk bill generation: %s processed, %s created, %s failed",
            result.processed_count, result.success_count, result.error_count,
        )
        return result


class PaymentLedger:
    """Applies, edits and reverses supplier payments, keeping bills consistent"""

    def _lock_bill(self, bill_id) -> SupplierBill:
        try:
            return SupplierBill.objects.select_for_update().get(pk=bill_id)
        except (SupplierBill.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Bill {bill_id} not found", {'bill_id': bill_id})

    def _lock_payment(self, payment_id):
        try:
            payment = SupplierPayment.objects.only('bill_id').get(pk=payment_id)
        except (SupplierPayment.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Payment {payment_id} not found", {'payment_id': payment_id})
        # bill first, then payment: same order as record_payment
        bill = self._lock_bill(payment.bill_id)
        payment = SupplierPayment.objects.select_for_update().get(pk=payment_id)
        return payment, bill

    def _validate_method(self, payment_method):
        if payment_method not in dict(SupplierPayment.PAYMENT_METHOD_CHOICES):
            raise ValidationError(f"Unknown payment method '{payment_method}'",
                                  {'payment_method': payment_method})

    def _recompute(self, bill, check_overdue=False, today=None):
        bill.outstanding_amount = quantize_money(bill.total_amount - bill.paid_amount)
        if bill.outstanding_amount < 0 or bill.paid_amount < 0:
            raise ValidationError(
                f"Payments on {bill.bill_number} would not balance",
                {'paid_amount': str(bill.paid_amount), 'total_amount': str(bill.total_amount)},
            )

        if bill.status != 'cancelled':
            today = today or timezone.localdate()
            if bill.outstanding_amount <= 0:
                bill.status = 'paid'
            elif check_overdue and bill.due_date < today:
                bill.status = 'overdue'
            elif bill.paid_amount > 0:
                bill.status = 'partially_paid'
            else:
                bill.status = 'pending'

        bill.save(update_fields=['paid_amount', 'outstanding_amount', 'status', 'updated_at'])

    def record_payment(self, bill_id, amount, payment_method, payment_date=None, *, user=None,
                       transaction_reference='', notes='') -> PaymentResult:
        amount = to_decimal(amount, 'amount')
        if amount <= 0:
            raise ValidationError('Payment amount must be greater than zero', {'amount': str(amount)})
        self._validate_method(payment_method)

        with transaction.atomic():
            bill = self._lock_bill(bill_id)
            if bill.status in SupplierBill.CLOSED_STATUSES:
                raise ConflictError(f"Bill {bill.bill_number} is {bill.status}",
                                    {'bill_id': bill.pk, 'status': bill.status})
            if amount > bill.outstanding_amount:
                raise ValidationError(
                    f"Payment amount ({amount}) cannot exceed outstanding amount ({bill.outstanding_amount})",
                    {'amount': str(amount), 'outstanding_amount': str(bill.outstanding_amount)},
                )

            payment = SupplierPayment.objects.create(
                bill=bill,
                amount=quantize_money(amount),
                payment_method=payment_method,
                payment_date=payment_date or timezone.localdate(),
                transaction_reference=transaction_reference or '',
                notes=notes or '',
                status='completed',
                recorded_by=user,
            )

            bill.paid_amount = quantize_money(bill.paid_amount + payment.amount)
            self._recompute(bill, check_overdue=True)

        logger.info(
            "Payment %s of %s recorded on %s: outstanding %s (%s)",
            payment.payment_reference, payment.amount, bill.bill_number, bill.outstanding_amount, bill.status,
        )
        return PaymentResult(payment=payment, bill=bill)

    def cancel_payment(self, payment_id, *, user=None, reason='') -> PaymentResult:
        with transaction.atomic():
            payment, bill = self._lock_payment(payment_id)
            if payment.status == 'cancelled':
                raise ConflictError(f"Payment {payment.payment_reference} is already cancelled")

            payment.status = 'cancelled'
            payment.cancelled_by = user
            payment.cancelled_at = timezone.now()
            if reason:
                payment.notes = f"{payment.notes}\nCancelled: {reason}".strip()
            payment.save(update_fields=['status', 'cancelled_by', 'cancelled_at', 'notes', 'updated_at'])

            bill.paid_amount = quantize_money(bill.paid_amount - payment.amount)
            self._recompute(bill, check_overdue=True)

        logger.info(
            "Payment %s cancelled on %s: outstanding %s (%s)",
            payment.payment_reference, bill.bill_number, bill.outstanding_amount, bill.status,
        )
        return PaymentResult(payment=payment, bill=bill)

    def update_payment(self, payment_id, *, amount=None, payment_method=None, payment_date=None,
                       transaction_reference=None, notes=None, user=None) -> PaymentResult:
        """Edit a completed payment; a new amount is re-applied to the bill"""
        if payment_method is not None:
            self._validate_method(payment_method)
        if amount is not None:
            amount = to_decimal(amount, 'amount')
            if amount <= 0:
                raise ValidationError('Payment amount must be greater than zero', {'amount': str(amount)})

        with transaction.atomic():
            payment, bill = self._lock_payment(payment_id)
            if payment.status != 'completed':
                raise ConflictError(f"Only completed payments can be edited ({payment.payment_reference})")

            if amount is not None and amount != payment.amount:
                available = bill.outstanding_amount + payment.amount
                if amount > available:
                    raise ValidationError(
                        f"Payment amount ({amount}) cannot exceed available amount ({available})",
                        {'amount': str(amount), 'available_amount': str(available)},
                    )
                bill.paid_amount = quantize_money(bill.paid_amount - payment.amount + amount)
                payment.amount = quantize_money(amount)

            if payment_method is not None:
                payment.payment_method = payment_method
            if payment_date is not None:
                payment.payment_date = payment_date
            if transaction_reference is not None:
                payment.transaction_reference = transaction_reference
            if notes is not None:
                payment.notes = notes
            payment.save()

            self._recompute(bill, check_overdue=True)

        logger.info("Payment %s updated by %s", payment.payment_reference, user or 'system')
        return PaymentResult(payment=payment, bill=bill)

    def mark_overdue(self, restaurant=None, today=None) -> OverdueResult:
        """Flip unpaid bills past their due date to overdue"""
        today = today or timezone.localdate()
        result = OverdueResult()

        with transaction.atomic():
            bills = SupplierBill.objects.select_for_update().filter(
                due_date__lt=today,
                outstanding_amount__gt=0,
            ).exclude(status__in=['paid', 'cancelled', 'overdue'])
            if restaurant is not None:
                bills = bills.filter(restaurant=restaurant)

            for bill in bills:
                bill.status = 'overdue'
                bill.save(update_fields=['status', 'updated_at'])
                result.marked_count += 1
                result.total_overdue += bill.outstanding_amount
                result.bill_numbers.append(bill.bill_number)

        if result.marked_count:
            logger.warning(
                "Marked %s bills overdue, %s outstanding", result.marked_count, result.total_overdue,
            )
        return result
