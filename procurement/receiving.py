"""
Delivery receiving: turns received supplier packages into ingredient stock
and, once an order is fully delivered, into a supplier bill.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from accounts.models import Restaurant
from backoffice_api.exceptions import (
    BackofficeError, ValidationError, NotFoundError, ConflictError, InvalidTransitionError, ExternalServiceError,
)
from backoffice_api.utils import to_decimal, quantize_money
from billing.models import SupplierBill
from billing.services import BillingEngine
from inventory.models import Ingredient
from inventory.services import StockLedger, StockUpdate
from inventory.units import is_known_unit, normalize_unit
from suppliers.models import SupplierOffering
from .models import PurchaseOrder, PurchaseOrderItem

logger = logging.getLogger(__name__)

PACKAGES = Decimal('0.01')


@dataclass
class ReceiveResult:
    order: PurchaseOrder
    inventory_updates: List[StockUpdate] = field(default_factory=list)
    bill: Optional[SupplierBill] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def partially_succeeded(self):
        return bool(self.warnings)


def _packages(value, field_name):
    value = to_decimal(value, field_name)
    if value != value.quantize(PACKAGES):
        raise ValidationError(f"{field_name} allows at most two decimal places", {field_name: str(value)})
    return value


class ReceivingProcessor:

    def __init__(self, ledger=None, billing=None, allow_over_delivery=None):
        self.ledger = ledger or StockLedger()
        self.billing = billing or BillingEngine()
        if allow_over_delivery is None:
            allow_over_delivery = settings.PROCUREMENT_ALLOW_OVER_DELIVERY
        self.allow_over_delivery = allow_over_delivery

    def receive(self, purchase_order_id, item_receipts, delivery_meta=None, *, user=None) -> ReceiveResult:
        """
        Record a (partial) delivery against a confirmed order.

        ``item_receipts`` quantities are packages received in this delivery,
        added to what earlier deliveries already brought in.
        """
        delivery_meta = delivery_meta or {}
        if not item_receipts:
            raise ValidationError('At least one received item is required')

        with transaction.atomic():
            try:
                purchase_order = (PurchaseOrder.objects.select_for_update()
                                  .select_related('supplier').get(pk=purchase_order_id))
            except (PurchaseOrder.DoesNotExist, ValueError, TypeError):
                raise NotFoundError(f"Purchase order {purchase_order_id} not found",
                                    {'purchase_order_id': purchase_order_id})

            if not purchase_order.is_receivable:
                raise InvalidTransitionError(purchase_order.status, 'receive', PurchaseOrder.RECEIVABLE_STATUSES)
            if purchase_order.status == 'delivered' and purchase_order.received_by:
                raise ConflictError(f"{purchase_order.po_number} has already been received in full")

            items = {item.pk: item for item in purchase_order.items.select_for_update().select_related('ingredient')}
            offerings = {}
            if purchase_order.supplier_id:
                offerings = {
                    offering.ingredient_id: offering
                    for offering in SupplierOffering.objects.filter(supplier_id=purchase_order.supplier_id)
                }

            updates = []
            seen = set()
            for receipt in item_receipts:
                item = items.get(_as_int(receipt.get('item_id')))
                if item is None:
                    raise NotFoundError(
                        f"Item {receipt.get('item_id')} is not on {purchase_order.po_number}",
                        {'item_id': receipt.get('item_id')},
                    )
                if item.pk in seen:
                    raise ValidationError(f"Item {item.pk} appears twice in the delivery", {'item_id': item.pk})
                seen.add(item.pk)

                update = self._receive_item(purchase_order, item, receipt, offerings.get(item.ingredient_id), user)
                if update:
                    updates.append(update)

            close_short = bool(delivery_meta.get('close_short'))
            fully_received = all(item.is_fully_received for item in items.values())
            purchase_order.status = 'delivered' if fully_received or close_short else 'partially_delivered'
            purchase_order.actual_delivery_date = delivery_meta.get('actual_delivery_date') or timezone.localdate()
            if delivery_meta.get('delivery_condition'):
                purchase_order.delivery_condition = delivery_meta['delivery_condition']
            purchase_order.received_by = (delivery_meta.get('received_by')
                                          or ((user.get_full_name() or user.email) if user else ''))[:100]
            if delivery_meta.get('notes'):
                purchase_order.receiving_notes = delivery_meta['notes']
            purchase_order.save()

        logger.info(
            "Received %s line(s) on %s -> %s%s",
            len(updates), purchase_order.po_number, purchase_order.status, ' (closed short)' if close_short else '',
        )

        result = ReceiveResult(order=purchase_order, inventory_updates=updates)
        if purchase_order.status == 'delivered':
            self._auto_bill(result, user, bill_date=purchase_order.actual_delivery_date)
        return result

    def _receive_item(self, purchase_order, item, receipt, offering, user):
        quantity = _packages(receipt.get('received_quantity', 0), 'received_quantity')
        if quantity < 0:
            raise ValidationError(f"Received quantity for {item.ingredient.name} cannot be negative",
                                  {'item_id': item.pk})

        cumulative = item.received_quantity + quantity
        if cumulative > item.ordered_quantity and not self.allow_over_delivery:
            raise ValidationError(
                f"{item.ingredient.name}: receiving {quantity} would exceed the ordered quantity "
                f"({item.received_quantity} of {item.ordered_quantity} already received)",
                {'item_id': item.pk, 'ordered_quantity': str(item.ordered_quantity),
                 'received_quantity': str(item.received_quantity)},
            )

        for attribute in ('quality_rating', 'condition_notes', 'discrepancy_reason'):
            if receipt.get(attribute):
                setattr(item, attribute, receipt[attribute])
        if 'has_discrepancy' in receipt:
            item.has_discrepancy = bool(receipt['has_discrepancy'])
        if item.has_discrepancy and not item.discrepancy_reason:
            raise ValidationError(f"Give a reason for the discrepancy on {item.ingredient.name}",
                                  {'item_id': item.pk})

        if quantity == 0:
            item.save()
            return None

        if offering is None:
            raise ValidationError(
                f"{purchase_order.display_supplier_name} has no package offering for {item.ingredient.name}",
                {'item_id': item.pk, 'ingredient_id': item.ingredient_id},
            )

        item.received_quantity = cumulative
        item.save()
        return self.ledger.receive_stock(
            item.ingredient_id,
            quantity * offering.package_contents_quantity,
            quantity,
            item.unit_price / offering.package_contents_quantity,
            movement_type='receive',
            reference=purchase_order.po_number,
            user=user,
            notes=f"{quantity} {item.unit_of_measure or offering.package_unit} x "
                  f"{offering.package_contents_quantity} {item.ingredient.base_unit}",
        )

    def manual_receive(self, restaurant, supplier_info, items, delivery_meta=None, *, user=None) -> ReceiveResult:
        """Receive goods that were bought outside the purchase order flow"""
        supplier_info = supplier_info or {}
        delivery_meta = delivery_meta or {}
        supplier_name = (supplier_info.get('name') or '').strip()
        if not supplier_name:
            raise ValidationError('Supplier name is required')
        if not items:
            raise ValidationError('At least one item is required')

        with transaction.atomic():
            # serializes ingredient lookup-or-create per restaurant
            Restaurant.objects.select_for_update().get(pk=restaurant.pk)

            purchase_order = PurchaseOrder.objects.create(
                restaurant=restaurant,
                supplier=None,
                supplier_name=supplier_name[:150],
                supplier_contact=(supplier_info.get('contact') or '')[:100],
                is_manual_receive=True,
                status='delivered',
                actual_delivery_date=delivery_meta.get('actual_delivery_date') or timezone.localdate(),
                delivery_condition=delivery_meta.get('delivery_condition') or '',
                received_by=(delivery_meta.get('received_by')
                             or ((user.get_full_name() or user.email) if user else ''))[:100],
                receiving_notes=delivery_meta.get('notes') or '',
                notes=f"Manual receive from {supplier_name}",
                created_by=user,
                approved_by=user,
                approved_at=timezone.now(),
            )

            updates = []
            subtotal = Decimal('0')
            for index, line in enumerate(items, start=1):
                ingredient = self._resolve_ingredient(restaurant, line, index)
                packages = _packages(line.get('packages'), 'packages')
                contents = to_decimal(line.get('contents_quantity'), 'contents_quantity')
                package_price = to_decimal(line.get('package_price'), 'package_price')
                if packages <= 0 or contents <= 0:
                    raise ValidationError(f"Item {index}: packages and contents must be greater than 0",
                                          {'item': index})
                if package_price < 0:
                    raise ValidationError(f"Item {index}: package price cannot be negative", {'item': index})

                PurchaseOrderItem.objects.create(
                    purchase_order=purchase_order,
                    ingredient=ingredient,
                    ordered_quantity=packages,
                    received_quantity=packages,
                    unit_of_measure=line.get('package_unit') or '',
                    unit_price=quantize_money(package_price),
                    notes=f"{contents} {ingredient.base_unit} per package",
                )
                subtotal += packages * package_price
                updates.append(self.ledger.receive_stock(
                    ingredient.pk,
                    packages * contents,
                    packages,
                    package_price / contents,
                    movement_type='manual_receive',
                    reference=purchase_order.po_number,
                    user=user,
                    notes=f"Manual receive from {supplier_name}",
                ))

            purchase_order.subtotal = quantize_money(subtotal)
            purchase_order.total_amount = purchase_order.subtotal
            purchase_order.save(update_fields=['subtotal', 'total_amount', 'updated_at'])

        logger.info(
            "Manual receive %s from %s: %s line(s), %s",
            purchase_order.po_number, supplier_name, len(updates), purchase_order.subtotal,
        )
        result = ReceiveResult(order=purchase_order, inventory_updates=updates)
        self._auto_bill(result, user, bill_date=purchase_order.actual_delivery_date)
        return result

    def _resolve_ingredient(self, restaurant, line, index):
        ingredient_id = line.get('ingredient_id')
        if ingredient_id not in (None, ''):
            try:
                return Ingredient.objects.get(pk=ingredient_id, restaurant=restaurant)
            except (Ingredient.DoesNotExist, ValueError, TypeError):
                raise NotFoundError(f"Item {index}: ingredient {ingredient_id} not found",
                                    {'item': index, 'ingredient_id': ingredient_id})

        name = (line.get('name') or '').strip()
        if not name:
            raise ValidationError(f"Item {index}: an ingredient id or name is required", {'item': index})
        ingredient = Ingredient.objects.filter(restaurant=restaurant, name__iexact=name).order_by('pk').first()
        if ingredient:
            return ingredient

        base_unit = line.get('base_unit') or 'pcs'
        if not is_known_unit(base_unit):
            raise ValidationError(f"Item {index}: unknown unit '{base_unit}'", {'item': index})
        base_unit = normalize_unit(base_unit)
        ingredient = Ingredient.objects.create(restaurant=restaurant, name=name[:150], base_unit=base_unit)
        logger.info("Created ingredient %s (%s) during manual receive", ingredient.name, base_unit)
        return ingredient

    def _auto_bill(self, result, user, bill_date=None):
        """Bill a delivered order in its own transaction; failures become warnings"""
        purchase_order = result.order
        if SupplierBill.objects.filter(purchase_order=purchase_order).exists():
            logger.info("%s already billed; skipping auto-generation", purchase_order.po_number)
            return
        try:
            result.bill = self.billing.generate_bill_from_purchase_order(
                purchase_order.pk, user=user, bill_date=bill_date,
                notes=f"Auto-generated from delivered purchase order {purchase_order.po_number}",
            )
        except BackofficeError as exc:
            failure = ExternalServiceError(
                f"Bill generation failed, please create it manually: {exc.message}",
                {"purchase_order_id": purchase_order.pk, "cause": exc.error_kind},
            )
            logger.warning("Failed to auto-generate bill for %s: %s", purchase_order.po_number, exc.message)
            result.warnings.append(failure.message)
        except Exception as exc:
            # stock and status are already committed; report instead of raising
            failure = ExternalServiceError(
                f"Bill generation failed, please create it manually: {exc}",
                {"purchase_order_id": purchase_order.pk, "cause": type(exc).__name__},
            )
            logger.exception("Unexpected error auto-generating bill for %s", purchase_order.po_number)
            result.warnings.append(failure.message)


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
