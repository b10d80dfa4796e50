"""
Customization groups and fields.

Groups are unique by name within an organization. Fields belong to a group
and are listed by sort_order; reordering rewrites sort_order in one
transaction.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quotations.models import CustomizationGroup, CustomizationField, CustomizationFieldType
from quotations.exceptions import BusinessLogicError, NotFoundError

logger = logging.getLogger(__name__)

_FIELD_TYPES = {t.value for t in CustomizationFieldType}
GROUP_FIELDS = ('display_name', 'description', 'is_active', 'sort_order')
FIELD_FIELDS = (
    'name', 'display_name', 'description', 'options', 'is_required', 'is_active',
    'sort_order', 'min_value', 'max_value', 'max_length',
)


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------

def list_groups(session: Session, organization_id: int, active_only: bool = False) -> List[CustomizationGroup]:
    query = session.query(CustomizationGroup).filter(CustomizationGroup.organization_id == organization_id)
    if active_only:
        query = query.filter(CustomizationGroup.is_active.is_(True))
    return query.order_by(CustomizationGroup.sort_order, CustomizationGroup.name).all()


def get_group(session: Session, group_id: str, organization_id: int) -> CustomizationGroup:
    group = session.query(CustomizationGroup).filter(
        CustomizationGroup.id == str(group_id),
        CustomizationGroup.organization_id == organization_id
    ).first()
    if not group:
        raise NotFoundError(f'Grupo de personalización {group_id} no encontrado')
    return group


def _commit_group(session: Session, group: CustomizationGroup) -> CustomizationGroup:
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f"Ya existe un grupo de personalización con el nombre '{group.name}'")
    return group


def create_group(session: Session, organization_id: int, data: Dict[str, Any]) -> CustomizationGroup:
    name = (data.get('name') or '').strip()
    if not name or not (data.get('display_name') or '').strip():
        raise BusinessLogicError('name y display_name son obligatorios')

    group = CustomizationGroup(organization_id=organization_id, name=name, is_active=True, sort_order=0)
    for field in GROUP_FIELDS:
        if data.get(field) is not None:
            setattr(group, field, data[field])
    session.add(group)
    return _commit_group(session, group)


def update_group(session: Session, group_id: str, organization_id: int, data: Dict[str, Any]) -> CustomizationGroup:
    group = get_group(session, group_id, organization_id)
    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            raise BusinessLogicError('name es obligatorio')
        group.name = name
    for field in GROUP_FIELDS:
        if field in data:
            setattr(group, field, data[field])
    return _commit_group(session, group)


def delete_group(session: Session, group_id: str, organization_id: int) -> None:
    """Delete a group together with its fields."""
    group = get_group(session, group_id, organization_id)
    session.delete(group)
    session.commit()


def toggle_group(session: Session, group_id: str, organization_id: int) -> CustomizationGroup:
    group = get_group(session, group_id, organization_id)
    group.is_active = not group.is_active
    session.commit()
    return group


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------

def list_fields(session: Session, organization_id: int, group_id: Optional[str] = None,
                active_only: bool = False) -> List[CustomizationField]:
    query = session.query(CustomizationField).filter(CustomizationField.organization_id == organization_id)
    if group_id:
        query = query.filter(CustomizationField.group_id == str(group_id))
    if active_only:
        query = query.filter(CustomizationField.is_active.is_(True))
    return query.order_by(CustomizationField.sort_order, CustomizationField.name).all()


def get_field(session: Session, field_id: str, organization_id: int) -> CustomizationField:
    field = session.query(CustomizationField).filter(
        CustomizationField.id == str(field_id),
        CustomizationField.organization_id == organization_id
    ).first()
    if not field:
        raise NotFoundError(f'Campo de personalización {field_id} no encontrado')
    return field


def _validate_field(field: CustomizationField) -> None:
    if field.field_type not in _FIELD_TYPES:
        raise BusinessLogicError(f'Tipo de campo inválido: {field.field_type}')
    if not (field.name or '').strip() or not (field.display_name or '').strip():
        raise BusinessLogicError('name y display_name son obligatorios')
    if field.field_type == CustomizationFieldType.SELECT.value and not field.options:
        raise BusinessLogicError('Un campo de selección necesita opciones')
    if field.min_value is not None and field.max_value is not None and field.min_value > field.max_value:
        raise BusinessLogicError('min_value no puede ser mayor que max_value')
    if field.max_length is not None and field.max_length <= 0:
        raise BusinessLogicError('max_length debe ser mayor a 0')


def create_field(session: Session, organization_id: int, data: Dict[str, Any]) -> CustomizationField:
    group = get_group(session, data.get('group_id'), organization_id)

    field = CustomizationField(
        organization_id=organization_id,
        group_id=group.id,
        field_type=data.get('type'),
        is_required=True,
        is_active=True,
        sort_order=0,
    )
    for name in FIELD_FIELDS:
        if data.get(name) is not None:
            setattr(field, name, data[name])
    _validate_field(field)

    session.add(field)
    session.commit()
    logger.info(f"[CUSTOMIZATION] Field created: {field}")
    return field


def update_field(session: Session, field_id: str, organization_id: int, data: Dict[str, Any]) -> CustomizationField:
    field = get_field(session, field_id, organization_id)
    try:
        if 'group_id' in data:
            field.group_id = get_group(session, data['group_id'], organization_id).id
        if 'type' in data:
            field.field_type = data['type']
        for name in FIELD_FIELDS:
            if name in data:
                setattr(field, name, data[name])
        _validate_field(field)
    except (BusinessLogicError, NotFoundError):
        session.rollback()
        raise

    session.commit()
    return field


def delete_field(session: Session, field_id: str, organization_id: int) -> None:
    field = get_field(session, field_id, organization_id)
    session.delete(field)
    session.commit()


def toggle_field(session: Session, field_id: str, organization_id: int) -> CustomizationField:
    field = get_field(session, field_id, organization_id)
    field.is_active = not field.is_active
    session.commit()
    return field


def _reorder(session: Session, loader, orders: Any, organization_id: int) -> None:
    if not isinstance(orders, list):
        raise BusinessLogicError('Se requiere una lista de {id, sortOrder}')
    try:
        for entry in orders:
            if not isinstance(entry, dict):
                raise BusinessLogicError('Cada elemento debe ser un objeto {id, sortOrder}')
            sort_order = entry.get('sortOrder', entry.get('sort_order'))
            if not isinstance(sort_order, int) or isinstance(sort_order, bool):
                raise BusinessLogicError('sortOrder debe ser un número entero')
            loader(session, entry.get('id'), organization_id).sort_order = sort_order
    except (BusinessLogicError, NotFoundError):
        session.rollback()
        raise
    session.commit()


def reorder_groups(session: Session, organization_id: int, orders: Any) -> None:
    """Apply [{id, sortOrder}] to the organization's groups (all or nothing)."""
    _reorder(session, get_group, orders, organization_id)


def reorder_fields(session: Session, organization_id: int, orders: Any) -> None:
    _reorder(session, get_field, orders, organization_id)
