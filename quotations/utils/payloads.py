"""Request payload helpers (the API accepts camelCase or snake_case keys)."""
import re
from typing import Any, Dict

from flask import request

from quotations.exceptions import BusinessLogicError

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub('_', key).lower()


def snake_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Top-level keys to snake_case; nested payloads are left untouched."""
    return {to_snake(k): v for k, v in data.items()}


def json_body(required: bool = False) -> Dict[str, Any]:
    """
    Parsed JSON object of the current request with snake_case keys.

    Multipart requests fall back to their form fields.

    Raises:
        BusinessLogicError: body is not a JSON object (or missing when required)
    """
    if request.mimetype == 'multipart/form-data':
        data = request.form.to_dict()
    else:
        data = request.get_json(silent=True)
    if data is None:
        if required:
            raise BusinessLogicError('Se requiere un cuerpo JSON')
        data = {}
    if not isinstance(data, dict):
        raise BusinessLogicError('El cuerpo debe ser un objeto JSON')
    return snake_keys(data)


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'si', 'sí')


def bool_arg(name: str):
    """Optional boolean query-string filter: None when the argument is absent."""
    value = request.args.get(name)
    if value is None or value == '':
        return None
    return parse_bool(value)
