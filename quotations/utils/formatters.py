"""
Utilidades de formateo para respuestas JSON y comprobantes PDF.
Incluye montos en estilo chileno (punto como separador de miles).
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Any, Union


def money_cl(value: Union[int, float, Decimal, str, None], decimals: int = 0) -> str:
    """
    Formatea un monto en estilo chileno.

    - Separador de miles: punto (.)
    - Separador decimal: coma (,)
    - Pesos sin decimales por defecto

    Examples:
        money_cl(1349990) -> "1.349.990"
        money_cl(1500.5, decimals=2) -> "1.500,50"
        money_cl(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        quantum = Decimal(1).scaleb(-decimals)
        num = Decimal(str(value)).quantize(quantum)
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    num = abs(num)

    text = f"{num:.{decimals}f}"
    if decimals:
        integer_part, decimal_part = text.split(".")
    else:
        integer_part, decimal_part = text, ""

    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    integer_formatted = '.'.join(groups)[::-1]

    if decimal_part:
        return f"{sign}{integer_formatted},{decimal_part}"
    return f"{sign}{integer_formatted}"


def datetime_cl(value: Union[datetime, None], with_time: bool = True) -> str:
    """
    Formatea un datetime como DD/MM/YYYY HH:MM.

    Examples:
        datetime_cl(datetime(2026, 1, 12, 15, 30)) -> "12/01/2026 15:30"
    """
    if value is None or not isinstance(value, datetime):
        return "-"
    if with_time:
        return value.strftime("%d/%m/%Y %H:%M")
    return value.strftime("%d/%m/%Y")


def to_number(value: Any) -> Any:
    """Decimal -> float for JSON bodies; other values pass through."""
    if isinstance(value, Decimal):
        return float(value)
    return value


def jsonable(value: Any) -> Any:
    """Recursively convert Decimals and datetimes inside dicts/lists."""
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
