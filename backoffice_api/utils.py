from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .exceptions import ValidationError

MONEY = Decimal('0.01')
QUANTITY = Decimal('0.001')
UNIT_COST = Decimal('0.0001')


def to_decimal(value, field='value'):
    """Coerce user input to Decimal, raising ValidationError on garbage"""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError(f"{field} must be a valid number", {field: value})
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", {field: str(value)})
    return result


def quantize_money(value):
    return Decimal(value).quantize(MONEY, rounding=ROUND_HALF_UP)


def quantize_quantity(value):
    return Decimal(value).quantize(QUANTITY, rounding=ROUND_HALF_UP)


def quantize_cost(value):
    return Decimal(value).quantize(UNIT_COST, rounding=ROUND_HALF_UP)
