"""Number parsing utilities for request payloads."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal('0.01')


def parse_amount(value, field='monto') -> Decimal:
    """
    Parse a positive monetary amount (number or numeric string) to Decimal.

    Raises:
        ValueError: if the value is missing, not numeric or not positive.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f'El {field} es obligatorio')

    try:
        decimal_value = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f'El {field} no es un número válido')

    if not decimal_value.is_finite():
        raise ValueError(f'El {field} no es un número válido')
    if decimal_value <= 0:
        raise ValueError(f'El {field} debe ser mayor a 0')

    return decimal_value


def parse_quantity(value, allow_zero=False) -> int:
    """
    Parse an item quantity (whole units).

    Raises:
        ValueError: if the value is not an integer or is out of range.
    """
    if value is None or isinstance(value, bool):
        raise ValueError('La cantidad es obligatoria')

    try:
        quantity = int(str(value).strip())
    except ValueError:
        raise ValueError('La cantidad debe ser un número entero')

    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise ValueError('La cantidad debe ser mayor a 0')

    return quantity


def to_decimal(value, default=None):
    """
    Lenient conversion used for JSON condition payloads.

    Missing values give `default`; unparseable values give None.
    """
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
