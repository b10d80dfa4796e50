"""
Organization administration.

Organizations are soft-deleted: deactivating one keeps its carts and
payments, and the organization header stops resolving to it.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quotations.models import Organization
from quotations.exceptions import BusinessLogicError, NotFoundError
from quotations.services.quote_config import QuoteConfig

logger = logging.getLogger(__name__)

_SLUG = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')


def list_organizations(session: Session, active: Optional[bool] = None,
                       search: Optional[str] = None) -> List[Organization]:
    query = session.query(Organization)
    if active is not None:
        query = query.filter(Organization.active.is_(active))
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(Organization.name.ilike(term) | Organization.slug.ilike(term))
    return query.order_by(Organization.name).all()


def get_organization(session: Session, organization_id: int) -> Organization:
    organization = session.query(Organization).filter(Organization.id == organization_id).first()
    if not organization:
        raise NotFoundError(f'Organización {organization_id} no encontrada')
    return organization


def _validate_slug(slug: str) -> str:
    slug = (slug or '').strip().lower()
    if not _SLUG.match(slug):
        raise BusinessLogicError('El slug solo admite minúsculas, números y guiones')
    if slug.isdigit():
        raise BusinessLogicError('El slug no puede ser solo numérico')
    return slug


def _validate_settings(settings: Any) -> Dict[str, Any]:
    """Keep only known quote settings and check they build a valid policy."""
    if not isinstance(settings, dict):
        raise BusinessLogicError('quote_settings debe ser un objeto')

    known = QuoteConfig().to_dict()
    unknown = sorted(set(settings) - set(known))
    if unknown:
        raise BusinessLogicError(f"Configuración desconocida: {', '.join(unknown)}")
    try:
        QuoteConfig().with_overrides(settings)
    except (TypeError, ValueError) as e:
        raise BusinessLogicError(f'Configuración inválida: {e}')
    return dict(settings)


def create_organization(session: Session, data: Dict[str, Any]) -> Organization:
    name = (data.get('name') or '').strip()
    if not name:
        raise BusinessLogicError('El nombre es obligatorio')

    organization = Organization(
        slug=_validate_slug(data.get('slug')),
        name=name,
        active=True,
        quote_settings=_validate_settings(data['quote_settings']) if data.get('quote_settings') else None,
    )
    try:
        session.add(organization)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f"Ya existe una organización con el slug '{organization.slug}'")

    logger.info(f"[ORG] Organization created: {organization}")
    return organization


def update_organization(session: Session, organization_id: int, data: Dict[str, Any]) -> Organization:
    organization = get_organization(session, organization_id)

    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            raise BusinessLogicError('El nombre es obligatorio')
        organization.name = name
    if 'slug' in data:
        organization.slug = _validate_slug(data['slug'])

    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f"Ya existe una organización con el slug '{data.get('slug')}'")
    return organization


def update_quote_settings(session: Session, organization_id: int, settings: Any) -> Organization:
    """Merge quote policy overrides; a null value drops the override."""
    organization = get_organization(session, organization_id)
    merged = dict(organization.quote_settings or {})
    for key, value in _validate_settings(settings).items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value

    organization.quote_settings = merged or None
    session.commit()
    logger.info(f"[ORG] Quote settings of organization {organization.id}: {merged}")
    return organization


def set_active(session: Session, organization_id: int, active: bool) -> Organization:
    organization = get_organization(session, organization_id)
    organization.active = active
    session.commit()
    logger.info(f"[ORG] Organization {organization.id} {'restored' if active else 'deactivated'}")
    return organization
