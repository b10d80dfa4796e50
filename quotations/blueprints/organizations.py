"""
Organizations blueprint - tenant administration.

These routes address organizations by id in the URL and do not use the
organization header.
"""
from flask import Blueprint, current_app, jsonify, request

from quotations.database import get_session
from quotations.services import organization_service
from quotations.services.quote_config import QuoteConfig
from quotations.utils.payloads import bool_arg, json_body

organizations_bp = Blueprint('organizations', __name__, url_prefix='/organizations')


@organizations_bp.route('', methods=['GET'])
def list_organizations():
    """List organizations (optional ?active=true|false and ?search=text)."""
    organizations = organization_service.list_organizations(
        get_session(), active=bool_arg('active'), search=request.args.get('search')
    )
    return jsonify({'organizations': [o.to_dict() for o in organizations]})


@organizations_bp.route('', methods=['POST'])
def create_organization():
    organization = organization_service.create_organization(get_session(), json_body(required=True))
    return jsonify(organization.to_dict()), 201


@organizations_bp.route('/<int:organization_id>', methods=['GET'])
def get_organization(organization_id):
    organization = organization_service.get_organization(get_session(), organization_id)
    return jsonify(organization.to_dict())


@organizations_bp.route('/<int:organization_id>', methods=['PATCH'])
def update_organization(organization_id):
    organization = organization_service.update_organization(get_session(), organization_id, json_body(required=True))
    return jsonify(organization.to_dict())


@organizations_bp.route('/<int:organization_id>/settings', methods=['GET'])
def get_settings(organization_id):
    """Effective quote policy: app defaults with the organization's overrides applied."""
    organization = organization_service.get_organization(get_session(), organization_id)
    config = QuoteConfig.for_organization(current_app.config, organization)
    return jsonify({'organizationId': organization.id, 'quoteSettings': config.to_dict()})


@organizations_bp.route('/<int:organization_id>/settings', methods=['PATCH'])
def update_settings(organization_id):
    """Override quote policy keys for this organization; null restores the app default."""
    organization = organization_service.update_quote_settings(get_session(), organization_id, json_body(required=True))
    return jsonify(organization.to_dict())


@organizations_bp.route('/<int:organization_id>', methods=['DELETE'])
def deactivate_organization(organization_id):
    organization = organization_service.set_active(get_session(), organization_id, False)
    return jsonify(organization.to_dict())


@organizations_bp.route('/<int:organization_id>/restore', methods=['POST'])
def restore_organization(organization_id):
    organization = organization_service.set_active(get_session(), organization_id, True)
    return jsonify(organization.to_dict())
