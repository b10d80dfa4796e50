"""Middleware for organization context."""
from functools import wraps
from flask import g, request, jsonify

from quotations.database import get_session
from quotations.models import Organization

ORGANIZATION_HEADER = 'X-Organization-ID'


def load_organization():
    """
    Load the calling organization into g.

    The organization comes from the X-Organization-ID header, either its
    numeric id or its slug. Sets g.organization and g.organization_id (None
    when the header is missing or does not match an active organization).
    """
    g.organization = None
    g.organization_id = None

    raw = (request.headers.get(ORGANIZATION_HEADER) or '').strip()
    if not raw:
        return

    query = get_session().query(Organization).filter(Organization.active.is_(True))
    if raw.isdigit():
        organization = query.filter(Organization.id == int(raw)).first()
    else:
        organization = query.filter(Organization.slug == raw).first()

    if organization:
        g.organization = organization
        g.organization_id = organization.id


def require_organization(f):
    """
    Decorator: Require a valid organization header.

    Returns 400 when the header is missing and 404 when it matches no
    active organization.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('organization_id') is None:
            if not request.headers.get(ORGANIZATION_HEADER):
                return jsonify({
                    'status': 'error',
                    'message': f'Falta el encabezado {ORGANIZATION_HEADER}'
                }), 400
            return jsonify({'status': 'error', 'message': 'Organización no encontrada'}), 404
        return f(*args, **kwargs)
    return decorated_function
