"""
Drafts purchase orders that cover ingredient shortages, one per supplier.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, ROUND_CEILING
from typing import Dict, List

from django.conf import settings
from django.utils import timezone

from backoffice_api.exceptions import BackofficeError, ValidationError
from backoffice_api.utils import to_decimal, quantize_quantity
from inventory.models import Ingredient
from suppliers.models import SupplierOffering
from .lifecycle import PurchaseOrderLifecycle
from .models import PurchaseOrder

logger = logging.getLogger(__name__)


@dataclass
class ShortageResolution:
    orders: List[PurchaseOrder] = field(default_factory=list)
    skipped: List[Dict] = field(default_factory=list)
    errors: List[Dict] = field(default_factory=list)


def _normalize(shortages):
    """Accept (ingredient_id, quantity) pairs or availability shortage rows"""
    totals = OrderedDict()
    for entry in shortages:
        if isinstance(entry, dict):
            ingredient_id, quantity = entry.get('ingredient_id'), entry.get('shortage')
        else:
            ingredient_id, quantity = entry
        quantity = to_decimal(quantity, 'shortage')
        if quantity <= 0:
            continue
        try:
            ingredient_id = int(ingredient_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid ingredient id {ingredient_id!r}")
        totals[ingredient_id] = totals.get(ingredient_id, Decimal('0')) + quantity
    return totals


class ShortageResolver:

    def __init__(self, lifecycle=None, tax_rate=None):
        self.lifecycle = lifecycle or PurchaseOrderLifecycle()
        if tax_rate is None:
            tax_rate = settings.SHORTAGE_PO_TAX_RATE
        self.tax_rate = to_decimal(tax_rate, 'tax_rate')

    def select_offering(self, ingredient):
        """Cheapest active package of an active supplier"""
        return (SupplierOffering.objects
                .filter(ingredient=ingredient, is_active=True, supplier__is_active=True,
                        package_contents_quantity__gt=0)
                .select_related('supplier')
                .order_by('package_price', 'id')
                .first())

    @staticmethod
    def packages_needed(shortage, offering):
        packages = (shortage / offering.package_contents_quantity).to_integral_value(rounding=ROUND_CEILING)
        return max(packages, offering.minimum_order_quantity)

    def create_purchase_orders_from_shortages(self, shortages, restaurant, *, user=None) -> ShortageResolution:
        result = ShortageResolution()
        totals = _normalize(shortages)
        if not totals:
            return result

        ingredients = Ingredient.objects.in_bulk(list(totals))
        by_supplier = OrderedDict()
        for ingredient_id, shortage in totals.items():
            ingredient = ingredients.get(ingredient_id)
            if ingredient is None or ingredient.restaurant_id != restaurant.pk:
                result.skipped.append({
                    'ingredient_id': ingredient_id, 'ingredient': None,
                    'shortage': str(quantize_quantity(shortage)), 'reason': 'Ingredient not found',
                })
                continue

            offering = self.select_offering(ingredient)
            if offering is None:
                logger.warning("No active supplier offering for %s; shortage of %s %s not ordered",
                               ingredient.name, shortage, ingredient.base_unit)
                result.skipped.append({
                    'ingredient_id': ingredient_id, 'ingredient': ingredient.name,
                    'shortage': str(quantize_quantity(shortage)), 'reason': 'No active supplier offering',
                })
                continue

            by_supplier.setdefault(offering.supplier, []).append((ingredient, shortage, offering))

        for supplier, lines in by_supplier.items():
            items = [
                {
                    'ingredient_id': ingredient.pk,
                    'ordered_quantity': self.packages_needed(shortage, offering),
                    'unit_price': offering.package_price,
                    'unit_of_measure': offering.package_unit,
                    'notes': f"Shortage: {quantize_quantity(shortage)} {ingredient.base_unit}",
                }
                for ingredient, shortage, offering in lines
            ]
            summary = ', '.join(
                f"{ingredient.name} {quantize_quantity(shortage)} {ingredient.base_unit}"
                for ingredient, shortage, _ in lines
            )
            try:
                purchase_order = self.lifecycle.create_purchase_order(
                    restaurant, supplier.pk, items,
                    user=user,
                    expected_delivery_date=timezone.localdate() + timedelta(days=supplier.lead_time_days),
                    notes=f"Auto-generated from shortages: {summary}",
                    tax_rate=self.tax_rate,
                    enforce_order_cap=False,
                )
            except BackofficeError as exc:
                logger.warning("Could not draft shortage order for %s: %s", supplier.name, exc.message)
                result.errors.append({'supplier_id': supplier.pk, 'supplier': supplier.name, 'error': exc.message})
            else:
                result.orders.append(purchase_order)

        logger.info(
            "Shortage resolution: %s order(s) drafted, %s ingredient(s) skipped",
            len(result.orders), len(result.skipped),
        )
        return result
