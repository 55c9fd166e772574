"""
Purchase order state machine.

    draft -> pending -> sent -> confirmed -> partially_delivered <-> delivered
    draft / pending / sent -> cancelled

``sent`` needs a manager's approval; ``confirmed`` and the supplier-side
``cancelled`` come in through a signed link. Receiving lives in
``procurement.receiving``.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import List

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from backoffice_api.exceptions import (
    ValidationError, NotFoundError, PermissionDeniedError, InvalidTransitionError, ExternalServiceError,
)
from backoffice_api.utils import to_decimal, quantize_money
from inventory.models import Ingredient
from suppliers.models import Supplier, SupplierOffering
from .links import verify_supplier_token
from .models import PurchaseOrder, PurchaseOrderItem
from .signals import (
    purchase_order_submitted, purchase_order_sent,
    purchase_order_supplier_responded, purchase_order_cancelled,
)

logger = logging.getLogger(__name__)

UNSET = object()


@dataclass
class TransitionResult:
    order: PurchaseOrder
    warnings: List[str] = field(default_factory=list)

    @property
    def partially_succeeded(self):
        return bool(self.warnings)


def notify(signal, purchase_order, user=None):
    """Send a lifecycle signal; receiver failures come back as warnings"""
    warnings = []
    for receiver, response in signal.send_robust(sender=PurchaseOrder, purchase_order=purchase_order, user=user):
        if isinstance(response, Exception):
            name = getattr(receiver, '__name__', repr(receiver))
            failure = ExternalServiceError(
                f"Notification {name} failed for {purchase_order.po_number}: {response}",
                {'receiver': name},
            )
            logger.warning(failure.message)
            warnings.append(failure.message)
    return warnings


class PurchaseOrderLifecycle:

    def _get_locked(self, purchase_order_id) -> PurchaseOrder:
        try:
            return PurchaseOrder.objects.select_for_update().get(pk=purchase_order_id)
        except (PurchaseOrder.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Purchase order {purchase_order_id} not found",
                                {'purchase_order_id': purchase_order_id})

    def _get_supplier(self, restaurant, supplier_id):
        if supplier_id in (None, ''):
            return None
        try:
            supplier = Supplier.objects.get(pk=supplier_id, restaurant=restaurant)
        except (Supplier.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Supplier {supplier_id} not found", {'supplier_id': supplier_id})
        if not supplier.is_active:
            raise ValidationError(f"Supplier {supplier.name} is inactive", {'supplier_id': supplier.pk})
        return supplier

    def _prepare_items(self, restaurant, supplier, items, enforce_order_cap):
        if not items:
            raise ValidationError('At least one item is required')

        ingredient_ids = [item.get('ingredient_id') for item in items]
        ingredients = {
            ingredient.pk: ingredient
            for ingredient in Ingredient.objects.filter(restaurant=restaurant, pk__in=[i for i in ingredient_ids if i])
        }
        offerings = {}
        if supplier:
            offerings = {
                offering.ingredient_id: offering
                for offering in SupplierOffering.objects.filter(
                    supplier=supplier, ingredient_id__in=list(ingredients), is_active=True,
                )
            }

        prepared = []
        for index, item in enumerate(items, start=1):
            ingredient = ingredients.get(_as_int(item.get('ingredient_id')))
            if ingredient is None:
                raise NotFoundError(
                    f"Item {index}: ingredient {item.get('ingredient_id')} not found",
                    {'item': index, 'ingredient_id': item.get('ingredient_id')},
                )
            offering = offerings.get(ingredient.pk)

            ordered_quantity = to_decimal(item.get('ordered_quantity'), 'ordered_quantity')
            if ordered_quantity <= 0:
                raise ValidationError(f"Item {index}: quantity must be greater than 0", {'item': index})

            unit_price = item.get('unit_price')
            if unit_price in (None, '') and offering:
                unit_price = offering.package_price
            unit_price = to_decimal(unit_price, 'unit_price')
            if unit_price <= 0:
                raise ValidationError(f"Item {index}: unit price must be greater than 0", {'item': index})

            if (enforce_order_cap and offering and offering.minimum_order_quantity > 0
                    and ordered_quantity > offering.minimum_order_quantity):
                raise ValidationError(
                    f"Item {index}: {ingredient.name} quantity ({ordered_quantity}) exceeds the supplier's "
                    f"order cap ({offering.minimum_order_quantity})",
                    {'item': index, 'ingredient_id': ingredient.pk,
                     'cap': str(offering.minimum_order_quantity)},
                )

            prepared.append({
                'ingredient': ingredient,
                'offering': offering,
                'ordered_quantity': ordered_quantity,
                'unit_price': unit_price,
                'unit_of_measure': item.get('unit_of_measure') or (offering.package_unit if offering else ''),
                'notes': item.get('notes') or '',
            })
        return prepared

    def _default_delivery_date(self, supplier, prepared):
        if not supplier:
            return None
        lead_times = [line['offering'].lead_time_days for line in prepared if line['offering']]
        lead_time = max(lead_times + [supplier.lead_time_days])
        return timezone.localdate() + timedelta(days=int(lead_time))

    def _write_items(self, purchase_order, prepared):
        for line in prepared:
            PurchaseOrderItem.objects.create(
                purchase_order=purchase_order,
                ingredient=line['ingredient'],
                ordered_quantity=line['ordered_quantity'],
                unit_price=line['unit_price'],
                unit_of_measure=line['unit_of_measure'],
                notes=line['notes'],
            )

    def apply_totals(self, purchase_order):
        subtotal = quantize_money(sum(
            (item.ordered_quantity * item.unit_price for item in purchase_order.items.all()),
            Decimal('0'),
        ))
        discount = purchase_order.discount_amount or Decimal('0')
        if discount > subtotal:
            raise ValidationError('Discount cannot exceed the order subtotal')
        purchase_order.subtotal = subtotal
        purchase_order.tax_amount = quantize_money((subtotal - discount) * purchase_order.tax_rate / Decimal('100'))
        purchase_order.total_amount = quantize_money(subtotal - discount + purchase_order.tax_amount)

    def create_purchase_order(self, restaurant, supplier_id, items, *, user=None, expected_delivery_date=None,
                              notes='', delivery_instructions='', discount_amount=None, tax_rate=None,
                              enforce_order_cap=None) -> PurchaseOrder:
        """Create a draft order; quantities are supplier packages"""
        if enforce_order_cap is None:
            enforce_order_cap = settings.PROCUREMENT_ENFORCE_ORDER_CAP
        discount = to_decimal(discount_amount or 0, 'discount_amount')
        tax_rate = to_decimal(tax_rate or 0, 'tax_rate')
        if discount < 0 or tax_rate < 0:
            raise ValidationError('Discount and tax rate cannot be negative')

        with transaction.atomic():
            supplier = self._get_supplier(restaurant, supplier_id)
            prepared = self._prepare_items(restaurant, supplier, items, enforce_order_cap)

            purchase_order = PurchaseOrder.objects.create(
                restaurant=restaurant,
                supplier=supplier,
                status='draft',
                expected_delivery_date=expected_delivery_date or self._default_delivery_date(supplier, prepared),
                notes=notes or '',
                delivery_instructions=delivery_instructions or '',
                discount_amount=quantize_money(discount),
                tax_rate=tax_rate,
                created_by=user,
            )
            self._write_items(purchase_order, prepared)
            self.apply_totals(purchase_order)
            purchase_order.save(update_fields=['subtotal', 'tax_amount', 'total_amount', 'updated_at'])

        logger.info(
            "Created %s for %s with %s items (total %s)",
            purchase_order.po_number, purchase_order.display_supplier_name, len(prepared), purchase_order.total_amount,
        )
        return purchase_order

    def update_purchase_order(self, purchase_order_id, *, user=None, items=None, supplier_id=UNSET,
                              expected_delivery_date=UNSET, notes=None, delivery_instructions=None,
                              discount_amount=None, tax_rate=None) -> PurchaseOrder:
        """Edit a draft or pending order; ``items`` replaces every line"""
        with transaction.atomic():
            purchase_order = self._get_locked(purchase_order_id)
            if not purchase_order.is_editable:
                raise InvalidTransitionError(purchase_order.status, 'edit', PurchaseOrder.EDITABLE_STATUSES)

            if supplier_id is not UNSET:
                purchase_order.supplier = self._get_supplier(purchase_order.restaurant, supplier_id)
            if items is not None:
                prepared = self._prepare_items(
                    purchase_order.restaurant, purchase_order.supplier, items,
                    settings.PROCUREMENT_ENFORCE_ORDER_CAP,
                )
                purchase_order.items.all().delete()
                self._write_items(purchase_order, prepared)
            if expected_delivery_date is not UNSET:
                purchase_order.expected_delivery_date = expected_delivery_date
            if notes is not None:
                purchase_order.notes = notes
            if delivery_instructions is not None:
                purchase_order.delivery_instructions = delivery_instructions
            if discount_amount is not None:
                purchase_order.discount_amount = quantize_money(to_decimal(discount_amount, 'discount_amount'))
            if tax_rate is not None:
                purchase_order.tax_rate = to_decimal(tax_rate, 'tax_rate')
            if purchase_order.discount_amount < 0 or purchase_order.tax_rate < 0:
                raise ValidationError('Discount and tax rate cannot be negative')

            self.apply_totals(purchase_order)
            purchase_order.save()

        logger.info("Updated %s by %s", purchase_order.po_number, user or 'system')
        return purchase_order

    def submit_for_approval(self, purchase_order_id, *, user=None) -> TransitionResult:
        with transaction.atomic():
            purchase_order = self._get_locked(purchase_order_id)
            if purchase_order.status != 'draft':
                raise InvalidTransitionError(purchase_order.status, 'submit', ['draft'])
            if not purchase_order.items.exists():
                raise ValidationError(f"{purchase_order.po_number} has no items")
            purchase_order.status = 'pending'
            purchase_order.save(update_fields=['status', 'updated_at'])

        logger.info("%s submitted for approval", purchase_order.po_number)
        return TransitionResult(purchase_order, notify(purchase_order_submitted, purchase_order, user))

    def approve_and_send(self, purchase_order_id, *, user) -> TransitionResult:
        if user is None or not user.can_approve_purchase_orders:
            raise PermissionDeniedError('Only owners and managers can approve purchase orders')

        with transaction.atomic():
            purchase_order = self._get_locked(purchase_order_id)
            if purchase_order.status != 'pending':
                raise InvalidTransitionError(purchase_order.status, 'approve', ['pending'])
            if purchase_order.restaurant_id != user.restaurant_id and not user.is_superuser:
                raise PermissionDeniedError('You cannot approve orders of another restaurant')
            if purchase_order.supplier is None:
                raise ValidationError(f"{purchase_order.po_number} has no supplier to send to")

            purchase_order.status = 'sent'
            purchase_order.approved_by = user
            purchase_order.approved_at = timezone.now()
            purchase_order.save(update_fields=['status', 'approved_by', 'approved_at', 'updated_at'])

        logger.info("%s approved by %s and sent to %s", purchase_order.po_number, user.email,
                    purchase_order.supplier.name)
        return TransitionResult(purchase_order, notify(purchase_order_sent, purchase_order, user))

    def supplier_respond(self, purchase_order_id, token, action) -> TransitionResult:
        """Apply a supplier's confirm/reject from a signed link"""
        verify_supplier_token(purchase_order_id, token, action)
        new_status = 'confirmed' if action == 'confirm' else 'cancelled'

        with transaction.atomic():
            purchase_order = self._get_locked(purchase_order_id)
            repeat_visit = purchase_order.status == new_status and purchase_order.supplier_response == action
            if purchase_order.status != 'sent' and not repeat_visit:
                raise InvalidTransitionError(purchase_order.status, f"{action} via supplier link", ['sent'])

            purchase_order.status = new_status
            purchase_order.supplier_response = action
            purchase_order.supplier_responded_at = timezone.now()
            purchase_order.save(update_fields=['status', 'supplier_response', 'supplier_responded_at', 'updated_at'])

        logger.info("Supplier %s %s (repeat visit: %s)", action, purchase_order.po_number, repeat_visit)
        if repeat_visit:
            return TransitionResult(purchase_order)
        return TransitionResult(purchase_order, notify(purchase_order_supplier_responded, purchase_order))

    def cancel(self, purchase_order_id, *, user=None, reason='') -> TransitionResult:
        with transaction.atomic():
            purchase_order = self._get_locked(purchase_order_id)
            if purchase_order.status not in PurchaseOrder.CANCELLABLE_STATUSES:
                raise InvalidTransitionError(purchase_order.status, 'cancel', PurchaseOrder.CANCELLABLE_STATUSES)
            purchase_order.status = 'cancelled'
            if reason:
                purchase_order.notes = f"{purchase_order.notes}\nCancelled: {reason}".strip()
            purchase_order.save(update_fields=['status', 'notes', 'updated_at'])

        logger.info("%s cancelled by %s", purchase_order.po_number, user or 'system')
        return TransitionResult(purchase_order, notify(purchase_order_cancelled, purchase_order, user))

    def delete(self, purchase_order_id, *, user=None):
        with transaction.atomic():
            purchase_order = self._get_locked(purchase_order_id)
            if not purchase_order.is_editable:
                raise InvalidTransitionError(purchase_order.status, 'delete', PurchaseOrder.EDITABLE_STATUSES)
            po_number = purchase_order.po_number
            purchase_order.delete()

        logger.info("%s deleted by %s", po_number, user or 'system')


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
