"""
Price-list condition evaluation.

A condition is met only when it is inside its own validity window AND its
type-specific check holds against the cart aggregate. Malformed conditions
(unknown type, unknown operator, unparseable payload) are never errors: they
are logged and reported as not met.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from quotations.models import ConditionType, ConditionOperator
from quotations.utils.dates import utcnow, parse_datetime
from quotations.utils.formatters import money_cl
from quotations.utils.number_format import to_decimal

logger = logging.getLogger(__name__)

INFINITY = Decimal('Infinity')
HUNDRED = Decimal('100')

# Operators that compare the aggregate against the lower bound only
_THRESHOLD_COMPARATORS = {
    ConditionOperator.GREATER_THAN.value: lambda value, bound: value > bound,
    ConditionOperator.GREATER_OR_EQUAL.value: lambda value, bound: value >= bound,
    ConditionOperator.LESS_THAN.value: lambda value, bound: value < bound,
    ConditionOperator.LESS_OR_EQUAL.value: lambda value, bound: value <= bound,
    ConditionOperator.EQUALS.value: lambda value, bound: value == bound,
}


def _result(is_met: bool, current_value=None, target_value=None, message: str = '') -> Dict[str, Any]:
    """Build a ConditionResult dict with progress and remaining derived from the values."""
    progress = Decimal('100') if is_met else Decimal('0')
    remaining = Decimal('0')

    if isinstance(current_value, Decimal) and isinstance(target_value, Decimal):
        if target_value <= 0:
            progress = Decimal('100')
        else:
            progress = min(HUNDRED, current_value / target_value * HUNDRED)
        remaining = max(Decimal('0'), target_value - current_value)
        progress = progress.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    return {
        'is_met': is_met,
        'progress': progress,
        'current_value': current_value,
        'target_value': target_value,
        'remaining': remaining,
        'message': message,
    }


def _not_met(message: str) -> Dict[str, Any]:
    return _result(False, message=message)


def _evaluate_range(operator: str, value: Decimal, lower, upper) -> Optional[bool]:
    """Shared amount/quantity check. Returns None for unknown operators."""
    if operator in _THRESHOLD_COMPARATORS:
        return _THRESHOLD_COMPARATORS[operator](value, lower)
    if operator == ConditionOperator.BETWEEN.value:
        return lower <= value <= (upper if upper is not None else INFINITY)
    return None


def evaluate_amount_condition(condition, total_price) -> Dict[str, Any]:
    payload = condition.condition_value or {}
    min_amount = to_decimal(payload.get('min_amount'), Decimal('0'))
    max_amount = to_decimal(payload.get('max_amount'))
    current = Decimal(str(total_price))

    if min_amount is None or (payload.get('max_amount') not in (None, '') and max_amount is None):
        logger.warning(f"[PRICING] Invalid amount payload on condition {condition.id}: {payload}")
        return _not_met('Condición de monto mal configurada')
    # A zero or missing max means no upper bound
    max_amount = max_amount or None

    is_met = _evaluate_range(condition.operator, current, min_amount, max_amount)
    if is_met is None:
        logger.warning(f"[PRICING] Unknown operator for amount condition: {condition.operator}")
        return _not_met(f'Operador desconocido: {condition.operator}')

    if is_met:
        message = 'Monto mínimo alcanzado'
    elif current < min_amount:
        message = f'Agrega ${money_cl(min_amount - current)} más para acceder a este precio'
    else:
        message = 'El monto del carrito está fuera del rango de esta lista'
    return _result(is_met, current, min_amount, message)


def evaluate_quantity_condition(condition, total_quantity) -> Dict[str, Any]:
    payload = condition.condition_value or {}
    min_quantity = to_decimal(payload.get('min_quantity'), Decimal('0'))
    max_quantity = to_decimal(payload.get('max_quantity'))
    current = Decimal(str(total_quantity))

    if min_quantity is None or (payload.get('max_quantity') not in (None, '') and max_quantity is None):
        logger.warning(f"[PRICING] Invalid quantity payload on condition {condition.id}: {payload}")
        return _not_met('Condición de cantidad mal configurada')
    max_quantity = max_quantity or None

    is_met = _evaluate_range(condition.operator, current, min_quantity, max_quantity)
    if is_met is None:
        logger.warning(f"[PRICING] Unknown operator for quantity condition: {condition.operator}")
        return _not_met(f'Operador desconocido: {condition.operator}')

    if is_met:
        message = 'Cantidad mínima alcanzada'
    elif current < min_quantity:
        message = f'Agrega {min_quantity - current} unidades más para acceder a este precio'
    else:
        message = 'La cantidad del carrito está fuera del rango de esta lista'
    return _result(is_met, current, min_quantity, message)


def evaluate_date_range_condition(condition, now) -> Dict[str, Any]:
    payload = condition.condition_value or {}
    try:
        from_date = parse_datetime(payload.get('from_date'))
        to_date = parse_datetime(payload.get('to_date'))
    except ValueError:
        logger.warning(f"[PRICING] Invalid dates on condition {condition.id}: {payload}")
        return _not_met('Condición de fechas mal configurada')

    operator = condition.operator
    if operator == ConditionOperator.BETWEEN.value:
        is_met = bool(from_date and to_date and from_date <= now <= to_date)
    elif operator == ConditionOperator.AFTER.value:
        is_met = bool(from_date and now > from_date)
    elif operator == ConditionOperator.BEFORE.value:
        is_met = bool(to_date and now < to_date)
    else:
        logger.warning(f"[PRICING] Unknown operator for date_range condition: {operator}")
        return _not_met(f'Operador desconocido: {operator}')

    return _result(is_met, message='Promoción vigente' if is_met else 'Promoción fuera de fecha')


def evaluate_customer_type_condition(condition, cart) -> Dict[str, Any]:
    required = (condition.condition_value or {}).get('customer_type')
    actual = getattr(cart, 'customer_type', None) if cart is not None else None

    if condition.operator != ConditionOperator.EQUALS.value:
        logger.warning(f"[PRICING] Unknown operator for customer_type condition: {condition.operator}")
        return _not_met(f'Operador desconocido: {condition.operator}')
    if not required or not actual:
        return _not_met('Tipo de cliente no informado')

    is_met = str(actual).strip().lower() == str(required).strip().lower()
    message = 'Tipo de cliente habilitado' if is_met else f'Disponible solo para clientes {required}'
    return _result(is_met, message=message)


def evaluate_condition(condition, total_price, total_quantity, cart=None, now=None) -> Dict[str, Any]:
    """
    Evaluate one condition against the cart aggregate.

    Args:
        condition: PriceListCondition (or any object with the same attributes)
        total_price: cart total under default-list prices
        total_quantity: sum of item quantities
        cart: the Cart (needed for customer_type)
        now: evaluation instant, naive UTC (defaults to utcnow())

    Returns:
        ConditionResult dict: is_met, progress (0-100), current_value,
        target_value, remaining, message.
    """
    now = now or utcnow()

    if not condition.is_valid_at(now):
        return _not_met('Condición fuera de su período de vigencia')

    condition_type = condition.condition_type
    if condition_type == ConditionType.AMOUNT.value:
        return evaluate_amount_condition(condition, total_price)
    if condition_type == ConditionType.QUANTITY.value:
        return evaluate_quantity_condition(condition, total_quantity)
    if condition_type == ConditionType.DATE_RANGE.value:
        return evaluate_date_range_condition(condition, now)
    if condition_type == ConditionType.CUSTOMER_TYPE.value:
        return evaluate_customer_type_condition(condition, cart)

    logger.warning(f"[PRICING] Unknown condition type: {condition_type}")
    return _not_met(f'Tipo de condición desconocido: {condition_type}')


def is_condition_met(condition, total_price, total_quantity, cart=None, now=None) -> bool:
    return evaluate_condition(condition, total_price, total_quantity, cart, now)['is_met']
