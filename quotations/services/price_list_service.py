"""
Price list administration.

An organization always keeps exactly one default price list: unsetting the
only default or deleting it is rejected, and promoting another list demotes
the previous default in the same transaction.
"""
import logging
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from quotations.models import (
    PriceList, PriceListCondition, PriceListStatus, ConditionType, ConditionOperator
)
from quotations.exceptions import BusinessLogicError, NotFoundError
from quotations.services.cache_service import get_cache
from quotations.utils.dates import parse_datetime

logger = logging.getLogger(__name__)

CACHE_MODULE = 'price_lists'

_VALID_STATUSES = {s.value for s in PriceListStatus}
_VALID_TYPES = {t.value for t in ConditionType}
_VALID_OPERATORS = {o.value for o in ConditionOperator}


def get_price_lists(session: Session, organization_id: int, status: Optional[str] = None) -> List[PriceList]:
    """Price lists of an organization (with conditions), in id order."""
    query = (
        session.query(PriceList)
        .options(selectinload(PriceList.conditions))
        .filter(PriceList.organization_id == organization_id)
    )
    if status:
        query = query.filter(PriceList.status == status)
    return query.order_by(PriceList.id).all()


def list_price_lists_cached(session: Session, organization_id: int, status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Serialized listing for the API, cached per organization and status."""
    def loader():
        return [pl.to_dict() for pl in get_price_lists(session, organization_id, status)]

    try:
        cache = get_cache()
    except RuntimeError:
        return loader()

    ttl = current_app.config.get('CACHE_PRICE_LISTS_TTL', 300)
    return cache.memoize(organization_id, CACHE_MODULE, f"list:{status or 'all'}", loader, ttl)


def invalidate_price_list_cache(organization_id: int) -> None:
    try:
        get_cache().invalidate_module(organization_id, CACHE_MODULE)
    except RuntimeError:
        pass


def get_price_list(session: Session, price_list_id: int, organization_id: int) -> PriceList:
    price_list = (
        session.query(PriceList)
        .filter(PriceList.id == price_list_id, PriceList.organization_id == organization_id)
        .first()
    )
    if not price_list:
        raise NotFoundError(f'Lista de precios {price_list_id} no encontrada')
    return price_list


def get_default_price_list(session: Session, organization_id: int, active_only: bool = True) -> PriceList:
    """
    The organization's default price list.

    Raises:
        NotFoundError: if the organization has no (active) default list.
    """
    query = session.query(PriceList).filter(
        PriceList.organization_id == organization_id,
        PriceList.is_default.is_(True),
    )
    if active_only:
        query = query.filter(PriceList.status == PriceListStatus.ACTIVE.value)
    price_list = query.order_by(PriceList.id).first()
    if not price_list:
        raise NotFoundError('La organización no tiene una lista de precios por defecto')
    return price_list


def _other_defaults(session: Session, organization_id: int, exclude_id: Optional[int] = None):
    query = session.query(PriceList).filter(
        PriceList.organization_id == organization_id,
        PriceList.is_default.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(PriceList.id != exclude_id)
    return query.with_for_update().all()


def _validate_list_fields(data: Dict[str, Any], partial: bool = False) -> None:
    if not partial or 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            raise BusinessLogicError('El nombre de la lista de precios es obligatorio')
    if not partial or 'currency' in data:
        currency = (data.get('currency') or '').strip()
        if len(currency) != 3:
            raise BusinessLogicError('La moneda debe ser un código ISO de 3 letras')
    if 'status' in data and data['status'] not in _VALID_STATUSES:
        raise BusinessLogicError(f"Estado inválido: {data['status']}")


def create_price_list(session: Session, organization_id: int, data: Dict[str, Any]) -> PriceList:
    """
    Create a price list.

    The first list of an organization always becomes the default.
    Creating a list with is_default=True demotes the current default.
    """
    _validate_list_fields(data)

    existing_defaults = _other_defaults(session, organization_id)
    is_default = bool(data.get('is_default')) or not existing_defaults

    if is_default and data.get('status') == PriceListStatus.INACTIVE.value:
        raise BusinessLogicError('La lista de precios por defecto debe estar activa')

    try:
        for previous in existing_defaults:
            if is_default:
                previous.is_default = False

        price_list = PriceList(
            organization_id=organization_id,
            name=data['name'].strip(),
            currency=data['currency'].strip().upper(),
            is_default=is_default,
            status=data.get('status') or PriceListStatus.ACTIVE.value,
            pricing_tax_mode=data.get('pricing_tax_mode'),
        )
        session.add(price_list)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f"Ya existe una lista de precios con el nombre '{data['name']}'")

    invalidate_price_list_cache(organization_id)
    logger.info(f"[PRICING] Price list created: {price_list}")
    return price_list


def update_price_list(session: Session, price_list_id: int, organization_id: int, data: Dict[str, Any]) -> PriceList:
    """
    Update a price list.

    Raises:
        BusinessLogicError: when unsetting or deactivating the only default list,
            or when promoting an inactive list to default.
    """
    _validate_list_fields(data, partial=True)
    price_list = get_price_list(session, price_list_id, organization_id)

    try:
        if 'is_default' in data:
            wants_default = bool(data['is_default'])
            others = _other_defaults(session, organization_id, exclude_id=price_list.id)

            if wants_default and not price_list.is_default:
                resulting_status = data.get('status') or price_list.status
                if resulting_status == PriceListStatus.INACTIVE.value:
                    raise BusinessLogicError('La lista de precios por defecto debe estar activa')
                for previous in others:
                    previous.is_default = False
                price_list.is_default = True
                logger.info(f"[PRICING] Price list {price_list.id} is now the default for org {organization_id}")
            elif not wants_default and price_list.is_default:
                if not others:
                    raise BusinessLogicError(
                        'No se puede quitar la lista por defecto: la organización debe tener al menos una'
                    )
                price_list.is_default = False

        new_status = data.get('status')
        if new_status == PriceListStatus.INACTIVE.value and price_list.is_default:
            raise BusinessLogicError('No se puede desactivar la lista de precios por defecto')

        if 'name' in data:
            price_list.name = data['name'].strip()
        if 'currency' in data:
            price_list.currency = data['currency'].strip().upper()
        if new_status:
            price_list.status = new_status
        if 'pricing_tax_mode' in data:
            price_list.pricing_tax_mode = data['pricing_tax_mode']

        session.commit()
    except BusinessLogicError:
        session.rollback()
        raise
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f"Ya existe una lista de precios con el nombre '{data.get('name')}'")

    invalidate_price_list_cache(organization_id)
    return price_list


def delete_price_list(session: Session, price_list_id: int, organization_id: int) -> None:
    """
    Delete a price list (its conditions and product prices cascade).

    Raises:
        BusinessLogicError: when deleting the only default list.
    """
    price_list = get_price_list(session, price_list_id, organization_id)

    if price_list.is_default and not _other_defaults(session, organization_id, exclude_id=price_list.id):
        raise BusinessLogicError('No se puede eliminar la lista de precios por defecto')

    session.delete(price_list)
    session.commit()
    invalidate_price_list_cache(organization_id)
    logger.info(f"[PRICING] Price list {price_list_id} deleted (org {organization_id})")


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------

def _validate_condition_fields(data: Dict[str, Any], partial: bool = False) -> None:
    if not partial or 'condition_type' in data:
        if data.get('condition_type') not in _VALID_TYPES:
            raise BusinessLogicError(f"Tipo de condición inválido: {data.get('condition_type')}")
    if 'operator' in data and data['operator'] not in _VALID_OPERATORS:
        raise BusinessLogicError(f"Operador inválido: {data['operator']}")
    if 'status' in data and data['status'] not in _VALID_STATUSES:
        raise BusinessLogicError(f"Estado inválido: {data['status']}")
    if 'condition_value' in data and not isinstance(data['condition_value'], dict):
        raise BusinessLogicError('condition_value debe ser un objeto')


def _parse_window(data: Dict[str, Any]) -> Dict[str, Any]:
    window = {}
    try:
        for key in ('valid_from', 'valid_to'):
            if key in data:
                window[key] = parse_datetime(data[key])
    except ValueError as e:
        raise BusinessLogicError(str(e))
    return window


def get_conditions(session: Session, price_list_id: int, organization_id: int) -> List[PriceListCondition]:
    price_list = get_price_list(session, price_list_id, organization_id)
    return list(price_list.conditions)


def get_condition(session: Session, price_list_id: int, condition_id: int, organization_id: int) -> PriceListCondition:
    condition = (
        session.query(PriceListCondition)
        .filter(
            PriceListCondition.id == condition_id,
            PriceListCondition.price_list_id == price_list_id,
            PriceListCondition.organization_id == organization_id,
        )
        .first()
    )
    if not condition:
        raise NotFoundError(f'Condición {condition_id} no encontrada')
    return condition


def create_condition(session: Session, price_list_id: int, organization_id: int,
                     data: Dict[str, Any]) -> PriceListCondition:
    price_list = get_price_list(session, price_list_id, organization_id)
    _validate_condition_fields(data)
    window = _parse_window(data)

    condition = PriceListCondition(
        organization_id=organization_id,
        price_list_id=price_list.id,
        condition_type=data['condition_type'],
        operator=data.get('operator') or ConditionOperator.EQUALS.value,
        condition_value=data.get('condition_value') or {},
        status=data.get('status') or PriceListStatus.ACTIVE.value,
        valid_from=window.get('valid_from'),
        valid_to=window.get('valid_to'),
    )
    session.add(condition)
    session.commit()
    invalidate_price_list_cache(organization_id)
    return condition


def update_condition(session: Session, price_list_id: int, condition_id: int, organization_id: int,
                     data: Dict[str, Any]) -> PriceListCondition:
    condition = get_condition(session, price_list_id, condition_id, organization_id)
    _validate_condition_fields(data, partial=True)
    window = _parse_window(data)

    for field in ('condition_type', 'operator', 'condition_value', 'status'):
        if field in data:
            setattr(condition, field, data[field])
    for field, value in window.items():
        setattr(condition, field, value)

    session.commit()
    invalidate_price_list_cache(organization_id)
    return condition


def delete_condition(session: Session, price_list_id: int, condition_id: int, organization_id: int) -> None:
    condition = get_condition(session, price_list_id, condition_id, organization_id)
    session.delete(condition)
    session.commit()
    invalidate_price_list_cache(organization_id)
