"""
Stock ledger and kitchen-side stock services.

StockLedger is the only code that writes ``Ingredient.current_stock``,
``packages`` and ``cost_per_unit``. Every mutation runs in a transaction
holding a row lock on the ingredient, and leaves a StockMovement behind.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field, asdict
from decimal import Decimal
from typing import Dict, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from backoffice_api.exceptions import (
    BackofficeError, ValidationError, NotFoundError, InsufficientStockError,
)
from backoffice_api.utils import (
    to_decimal, quantize_money, quantize_quantity, quantize_cost,
)
from .models import Ingredient, StockMovement, Dish, DamageSpoilageLog
from .units import to_ingredient_unit

logger = logging.getLogger(__name__)

DEDUCTION_TYPES = ('sale', 'waste', 'damage', 'spoilage')


@dataclass
class StockUpdate:
    ingredient_id: int
    ingredient_name: str
    base_unit: str
    movement_type: str
    quantity: Decimal
    package_count: Decimal
    unit_cost: Optional[Decimal]
    stock_before: Decimal
    stock_after: Decimal
    cost_before: Decimal
    cost_after: Decimal
    flagged_negative: bool = False
    movement_id: Optional[int] = None

    def as_dict(self):
        return {key: (str(value) if isinstance(value, Decimal) else value)
                for key, value in asdict(self).items()}


@dataclass
class Availability:
    available: bool
    requirements: List[Dict] = field(default_factory=list)
    shortages: List[Dict] = field(default_factory=list)


@dataclass
class SaleResult:
    dish: Dish
    quantity: Decimal
    updates: List[StockUpdate] = field(default_factory=list)


@dataclass
class DamageResult:
    logs: List[DamageSpoilageLog] = field(default_factory=list)
    failed: List[Dict] = field(default_factory=list)

    @property
    def success_count(self):
        return len(self.logs)


class StockLedger:
    """Receives and deducts ingredient stock under a per-row lock"""

    def __init__(self, allow_negative: Optional[bool] = None):
        if allow_negative is None:
            allow_negative = settings.INVENTORY_ALLOW_NEGATIVE_STOCK
        self.allow_negative = allow_negative

    def _lock_ingredient(self, ingredient_id) -> Ingredient:
        try:
            return Ingredient.objects.select_for_update().get(pk=ingredient_id)
        except (Ingredient.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Ingredient {ingredient_id} not found", {'ingredient_id': ingredient_id})

    def receive_stock(self, ingredient_id, quantity, package_count, unit_cost, *,
                      movement_type='receive', reference='', user=None, notes='') -> StockUpdate:
        """
        Add ``quantity`` base units bought at ``unit_cost`` and re-average the cost.

        new_cost = (cost * stock + unit_cost * quantity) / (stock + quantity)
        when there is stock on hand, otherwise the batch cost.
        """
        quantity = to_decimal(quantity, 'quantity')
        package_count = to_decimal(package_count, 'package_count')
        unit_cost = to_decimal(unit_cost, 'unit_cost')

        if quantity <= 0:
            raise ValidationError('Received quantity must be greater than zero', {'quantity': str(quantity)})
        if package_count < 0:
            raise ValidationError('Package count cannot be negative', {'package_count': str(package_count)})
        if unit_cost < 0:
            raise ValidationError('Unit cost cannot be negative', {'unit_cost': str(unit_cost)})
        if movement_type not in StockMovement.INCREASE_TYPES:
            raise ValidationError(f"'{movement_type}' is not a receiving movement")

        with transaction.atomic():
            ingredient = self._lock_ingredient(ingredient_id)
            stock_before = ingredient.current_stock
            cost_before = ingredient.cost_per_unit

            new_stock = stock_before + quantity
            if stock_before > 0:
                new_cost = ((cost_before * stock_before) + (unit_cost * quantity)) / new_stock
            else:
                new_cost = unit_cost

            ingredient.current_stock = quantize_quantity(new_stock)
            ingredient.packages = quantize_quantity(ingredient.packages + package_count)
            ingredient.cost_per_unit = quantize_cost(new_cost)
            ingredient.save(update_fields=['current_stock', 'packages', 'cost_per_unit', 'updated_at'])

            movement = StockMovement.objects.create(
                ingredient=ingredient,
                movement_type=movement_type,
                reference_number=reference[:50],
                quantity=quantity,
                package_count=package_count,
                unit_cost=quantize_cost(unit_cost),
                stock_before=stock_before,
                stock_after=ingredient.current_stock,
                cost_before=cost_before,
                cost_after=ingredient.cost_per_unit,
                user=user,
                notes=notes,
            )

        logger.info(
            "Received %s %s of %s (ref %s): stock %s -> %s, cost %s -> %s",
            quantity, ingredient.base_unit, ingredient.name, reference or '-',
            stock_before, ingredient.current_stock, cost_before, ingredient.cost_per_unit,
        )
        return self._update_from(ingredient, movement)

    def deduct_stock(self, ingredient_id, quantity, *, movement_type='sale', reference='',
                     user=None, notes='') -> StockUpdate:
        """Subtract stock for sales and write-offs; the unit cost is left alone"""
        quantity = to_decimal(quantity, 'quantity')
        if quantity <= 0:
            raise ValidationError('Deducted quantity must be greater than zero', {'quantity': str(quantity)})
        if movement_type not in DEDUCTION_TYPES:
            raise ValidationError(f"'{movement_type}' is not a deduction movement")

        with transaction.atomic():
            ingredient = self._lock_ingredient(ingredient_id)
            stock_before = ingredient.current_stock
            new_stock = quantize_quantity(stock_before - quantity)
            below_zero = new_stock < 0

            if below_zero and not self.allow_negative:
                raise InsufficientStockError(
                    f"Not enough {ingredient.name}: {stock_before} {ingredient.base_unit} on hand, "
                    f"{quantity} required",
                    shortages=[_shortage_row(ingredient, quantity, stock_before)],
                )

            ingredient.current_stock = new_stock
            ingredient.save(update_fields=['current_stock', 'updated_at'])

            movement = StockMovement.objects.create(
                ingredient=ingredient,
                movement_type=movement_type,
                reference_number=reference[:50],
                quantity=quantity,
                unit_cost=ingredient.cost_per_unit,
                stock_before=stock_before,
                stock_after=new_stock,
                cost_before=ingredient.cost_per_unit,
                cost_after=ingredient.cost_per_unit,
                flagged_negative=below_zero,
                user=user,
                notes=notes,
            )

        if below_zero:
            logger.warning(
                "%s went negative (%s %s) after %s %s; flagged movement %s",
                ingredient.name, new_stock, ingredient.base_unit, movement_type, reference or '-', movement.pk,
            )
        if new_stock <= ingredient.reorder_level:
            logger.warning(
                "Low stock: %s at %s %s (reorder level %s)",
                ingredient.name, new_stock, ingredient.base_unit, ingredient.reorder_level,
            )
        return self._update_from(ingredient, movement)

    def _update_from(self, ingredient, movement):
        return StockUpdate(
            ingredient_id=ingredient.pk,
            ingredient_name=ingredient.name,
            base_unit=ingredient.base_unit,
            movement_type=movement.movement_type,
            quantity=movement.quantity,
            package_count=movement.package_count,
            unit_cost=movement.unit_cost,
            stock_before=movement.stock_before,
            stock_after=movement.stock_after,
            cost_before=movement.cost_before,
            cost_after=movement.cost_after,
            flagged_negative=movement.flagged_negative,
            movement_id=movement.pk,
        )


def _shortage_row(ingredient, required, on_hand):
    return {
        'ingredient_id': ingredient.pk,
        'ingredient': ingredient.name,
        'base_unit': ingredient.base_unit,
        'required': str(quantize_quantity(required)),
        'current_stock': str(on_hand),
        'shortage': str(quantize_quantity(required - on_hand)),
    }


def _get_dish(dish_id, restaurant=None):
    queryset = Dish.objects.all()
    if restaurant is not None:
        queryset = queryset.filter(restaurant=restaurant)
    try:
        return queryset.get(pk=dish_id)
    except (Dish.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Dish {dish_id} not found", {'dish_id': dish_id})


def _collect_requirements(plan, restaurant=None):
    """Sum base-unit requirements per ingredient for [(dish_id, quantity), ...]"""
    requirements = OrderedDict()
    for dish_id, quantity in plan:
        quantity = to_decimal(quantity, 'quantity')
        if quantity <= 0:
            raise ValidationError('Dish quantity must be greater than zero', {'dish_id': dish_id})
        dish = _get_dish(dish_id, restaurant)
        for line in dish.dish_ingredients.select_related('ingredient'):
            needed = to_ingredient_unit(line.quantity_needed, line.unit, line.ingredient) * quantity
            if line.ingredient_id in requirements:
                requirements[line.ingredient_id]['required'] += needed
            else:
                requirements[line.ingredient_id] = {'ingredient': line.ingredient, 'required': needed}
    return requirements


def _availability(requirements, stock_by_id=None):
    rows = []
    shortages = []
    for ingredient_id, entry in requirements.items():
        ingredient = entry['ingredient']
        on_hand = stock_by_id[ingredient_id] if stock_by_id else ingredient.current_stock
        required = quantize_quantity(entry['required'])
        rows.append({
            'ingredient_id': ingredient_id,
            'ingredient': ingredient.name,
            'base_unit': ingredient.base_unit,
            'required': str(required),
            'current_stock': str(on_hand),
            'is_available': on_hand >= required,
        })
        if on_hand < required:
            shortages.append(_shortage_row(ingredient, required, on_hand))
    return Availability(available=not shortages, requirements=rows, shortages=shortages)


def check_stock_availability(dish_id, quantity, restaurant=None) -> Availability:
    """Can ``quantity`` portions of the dish be made from current stock?"""
    return _availability(_collect_requirements([(dish_id, quantity)], restaurant))


def check_plan_availability(plan, restaurant=None) -> Availability:
    """Availability for a preparation plan of several dishes sharing ingredients"""
    if not plan:
        raise ValidationError('Preparation plan is empty')
    return _availability(_collect_requirements(plan, restaurant))


def record_dish_sale(dish_id, quantity, *, user=None, reference='', restaurant=None) -> SaleResult:
    """Deduct every recipe ingredient for a sale, all or nothing"""
    ledger = StockLedger()
    dish = _get_dish(dish_id, restaurant)

    with transaction.atomic():
        requirements = _collect_requirements([(dish.pk, quantity)], restaurant)
        # lock in id order so concurrent sales of overlapping recipes cannot deadlock
        locked = Ingredient.objects.select_for_update().filter(pk__in=list(requirements)).order_by('pk')
        stock_by_id = {ingredient.pk: ingredient.current_stock for ingredient in locked}

        availability = _availability(requirements, stock_by_id)
        if not availability.available and not ledger.allow_negative:
            raise InsufficientStockError(
                f"Not enough stock to sell {quantity} x {dish.name}",
                shortages=availability.shortages,
            )

        reference = reference or f"SALE-{dish.pk}-{timezone.now():%Y%m%d%H%M%S}"
        updates = [
            ledger.deduct_stock(
                ingredient_id, requirements[ingredient_id]['required'],
                movement_type='sale', reference=reference, user=user,
                notes=f"{quantity} x {dish.name}",
            )
            for ingredient_id in sorted(requirements)
        ]

    logger.info("Recorded sale of %s x %s (%s ingredients)", quantity, dish.name, len(updates))
    return SaleResult(dish=dish, quantity=to_decimal(quantity), updates=updates)


def log_damage_spoilage(restaurant, entries, *, user=None, log_type='damage', incident_date=None,
                        reason='', notes='') -> DamageResult:
    """
    Write off damaged, spoiled or wasted stock.

    Each entry is ``{'ingredient_id', 'quantity', 'unit', 'estimated_cost'?,
    'reason'?, 'notes'?, 'log_type'?}`` and is committed on its own, so one
    bad line does not discard the others.
    """
    if not entries:
        raise ValidationError('At least one item is required')

    ledger = StockLedger()
    incident_date = incident_date or timezone.localdate()
    result = DamageResult()

    for index, entry in enumerate(entries):
        entry_type = entry.get('log_type') or log_type
        try:
            if entry_type not in dict(DamageSpoilageLog.LOG_TYPES):
                raise ValidationError(f"Unknown log type '{entry_type}'")
            with transaction.atomic():
                log = _write_off(ledger, restaurant, entry, entry_type, user, incident_date, reason, notes)
        except BackofficeError as exc:
            logger.warning("Damage/spoilage line %s rejected: %s", index + 1, exc.message)
            result.failed.append({'index': index, 'entry': entry, 'error': exc.message})
        else:
            result.logs.append(log)

    return result


def _write_off(ledger, restaurant, entry, log_type, user, incident_date, reason, notes):
    try:
        ingredient = Ingredient.objects.get(pk=entry.get('ingredient_id'), restaurant=restaurant)
    except (Ingredient.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"Ingredient {entry.get('ingredient_id')} not found")

    quantity = to_decimal(entry.get('quantity'), 'quantity')
    if quantity <= 0:
        raise ValidationError('Quantity must be greater than zero')
    unit = entry.get('unit') or ingredient.base_unit
    quantity_base = quantize_quantity(to_ingredient_unit(quantity, unit, ingredient))

    estimated_cost = entry.get('estimated_cost')
    if estimated_cost in (None, ''):
        estimated_cost = quantity_base * ingredient.cost_per_unit
    estimated_cost = quantize_money(to_decimal(estimated_cost, 'estimated_cost'))

    log = DamageSpoilageLog.objects.create(
        restaurant=restaurant,
        ingredient=ingredient,
        log_type=log_type,
        quantity=quantity,
        unit=unit,
        quantity_base=quantity_base,
        estimated_cost=estimated_cost,
        reason=entry.get('reason') or reason,
        notes=entry.get('notes') or notes,
        incident_date=incident_date,
        reported_by=user,
    )
    ledger.deduct_stock(
        ingredient.pk, quantity_base,
        movement_type=log_type, reference=f"DMG-{log.pk}", user=user,
        notes=log.reason,
    )
    return log


def low_stock_ingredients(restaurant):
    return Ingredient.objects.filter(
        restaurant=restaurant,
        current_stock__lte=F('reorder_level'),
    ).order_by('name')


def ingredient_cost(ingredient) -> Decimal:
    """Cheapest active offering cost per base unit, falling back to the running average"""
    offerings = ingredient.offerings.filter(is_active=True, supplier__is_active=True)
    costs = [offering.unit_cost for offering in offerings if offering.package_contents_quantity > 0]
    if costs:
        return quantize_cost(min(costs))
    return ingredient.cost_per_unit
