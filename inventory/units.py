"""
Unit conversion for ingredient quantities.

Every unit belongs to one family with a base unit (g, ml, pcs) and a factor
to that base. Conversion is only possible inside a family.
"""

from decimal import Decimal

from backoffice_api.exceptions import ValidationError

WEIGHT = 'weight'
VOLUME = 'volume'
COUNT = 'count'

BASE_UNITS = {
    WEIGHT: 'g',
    VOLUME: 'ml',
    COUNT: 'pcs',
}

UNIT_FACTORS = {
    # weight, base g
    'mg': (WEIGHT, Decimal('0.001')),
    'g': (WEIGHT, Decimal('1')),
    'kg': (WEIGHT, Decimal('1000')),
    'lb': (WEIGHT, Decimal('453.592')),
    'oz': (WEIGHT, Decimal('28.3495')),
    # volume, base ml
    'ml': (VOLUME, Decimal('1')),
    'l': (VOLUME, Decimal('1000')),
    'cup': (VOLUME, Decimal('236.588')),
    'tbsp': (VOLUME, Decimal('14.7868')),
    'tsp': (VOLUME, Decimal('4.92892')),
    # count, base pcs
    'pcs': (COUNT, Decimal('1')),
    'dozen': (COUNT, Decimal('12')),
}

ALIASES = {
    'gram': 'g', 'grams': 'g',
    'kilo': 'kg', 'kilos': 'kg', 'kilogram': 'kg', 'kilograms': 'kg',
    'lbs': 'lb', 'pound': 'lb', 'pounds': 'lb',
    'ounce': 'oz', 'ounces': 'oz',
    'milliliter': 'ml', 'milliliters': 'ml', 'millilitre': 'ml',
    'liter': 'l', 'liters': 'l', 'litre': 'l', 'litres': 'l', 'ltr': 'l',
    'cups': 'cup',
    'tablespoon': 'tbsp', 'tablespoons': 'tbsp',
    'teaspoon': 'tsp', 'teaspoons': 'tsp',
    'pc': 'pcs', 'piece': 'pcs', 'pieces': 'pcs', 'each': 'pcs', 'ea': 'pcs',
}


def normalize_unit(unit):
    key = (unit or '').strip().lower()
    key = ALIASES.get(key, key)
    if key not in UNIT_FACTORS:
        raise ValidationError(f"Unknown unit '{unit}'", {'unit': unit})
    return key


def unit_family(unit):
    return UNIT_FACTORS[normalize_unit(unit)][0]


def is_known_unit(unit):
    try:
        normalize_unit(unit)
    except ValidationError:
        return False
    return True


def can_convert(from_unit, to_unit):
    if not (is_known_unit(from_unit) and is_known_unit(to_unit)):
        return False
    return unit_family(from_unit) == unit_family(to_unit)


def convert(quantity, from_unit, to_unit):
    """Convert ``quantity`` between two units of the same family"""
    source = normalize_unit(from_unit)
    target = normalize_unit(to_unit)
    if source == target:
        return Decimal(quantity)

    source_family, source_factor = UNIT_FACTORS[source]
    target_family, target_factor = UNIT_FACTORS[target]
    if source_family != target_family:
        raise ValidationError(
            f"Cannot convert {source_family} unit '{from_unit}' to {target_family} unit '{to_unit}'",
            {'from_unit': from_unit, 'to_unit': to_unit},
        )

    return Decimal(quantity) * source_factor / target_factor


def to_ingredient_unit(quantity, unit, ingredient):
    """Express ``quantity`` in the ingredient's base unit; blank unit means already base"""
    if not unit or unit == ingredient.base_unit:
        return Decimal(quantity)
    if not is_known_unit(ingredient.base_unit):
        raise ValidationError(
            f"{ingredient.name} is tracked in '{ingredient.base_unit}', which cannot be converted",
            {'ingredient_id': ingredient.pk, 'unit': unit},
        )
    return convert(quantity, unit, ingredient.base_unit)
