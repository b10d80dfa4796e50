"""Date helpers. All timestamps are stored as naive UTC."""
from datetime import datetime, date, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Current UTC time without tzinfo (matches the DateTime columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_datetime(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Parse ISO-8601 strings (with or without offset, 'Z' allowed) to naive UTC.

    Plain dates are taken as midnight. Returns None for empty values.

    Raises:
        ValueError: if the value cannot be parsed.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    cleaned = str(value).strip()
    if cleaned.endswith('Z'):
        cleaned = cleaned[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        raise ValueError(f'Fecha inválida: {value}')
    return to_naive_utc(parsed)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
