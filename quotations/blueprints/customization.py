"""Customization blueprints - groups and the fields inside them."""
from flask import Blueprint, jsonify, request, g

from quotations.database import get_session
from quotations.middleware import require_organization
from quotations.services import customization_service
from quotations.utils.payloads import json_body, parse_bool

customization_groups_bp = Blueprint('customization_groups', __name__, url_prefix='/customization-groups')
customization_fields_bp = Blueprint('customization_fields', __name__, url_prefix='/customization-fields')


# Groups

@customization_groups_bp.route('', methods=['GET'])
@require_organization
def list_groups():
    """List groups by sort order. ?includeFields=true embeds each group's fields."""
    groups = customization_service.list_groups(get_session(), g.organization_id)
    include_fields = parse_bool(request.args.get('includeFields'))
    return jsonify({'groups': [grp.to_dict(include_fields=include_fields) for grp in groups]})


@customization_groups_bp.route('/active', methods=['GET'])
@require_organization
def list_active_groups():
    groups = customization_service.list_groups(get_session(), g.organization_id, active_only=True)
    return jsonify({'groups': [grp.to_dict() for grp in groups]})


@customization_groups_bp.route('', methods=['POST'])
@require_organization
def create_group():
    group = customization_service.create_group(get_session(), g.organization_id, json_body(required=True))
    return jsonify(group.to_dict()), 201


@customization_groups_bp.route('/reorder', methods=['POST'])
@require_organization
def reorder_groups():
    data = json_body(required=True)
    customization_service.reorder_groups(get_session(), g.organization_id, data.get('group_orders'))
    return jsonify({'status': 'ok'})


@customization_groups_bp.route('/<group_id>', methods=['GET'])
@require_organization
def get_group(group_id):
    group = customization_service.get_group(get_session(), group_id, g.organization_id)
    return jsonify(group.to_dict(include_fields=True))


@customization_groups_bp.route('/<group_id>', methods=['PATCH'])
@require_organization
def update_group(group_id):
    group = customization_service.update_group(get_session(), group_id, g.organization_id, json_body(required=True))
    return jsonify(group.to_dict())


@customization_groups_bp.route('/<group_id>/toggle-active', methods=['PATCH'])
@require_organization
def toggle_group(group_id):
    group = customization_service.toggle_group(get_session(), group_id, g.organization_id)
    return jsonify(group.to_dict())


@customization_groups_bp.route('/<group_id>', methods=['DELETE'])
@require_organization
def delete_group(group_id):
    customization_service.delete_group(get_session(), group_id, g.organization_id)
    return jsonify({'status': 'ok', 'message': 'Grupo eliminado'})


# Fields

@customization_fields_bp.route('', methods=['GET'])
@require_organization
def list_fields():
    """List fields (optional ?groupId=... and ?active=true)."""
    fields = customization_service.list_fields(
        get_session(), g.organization_id,
        group_id=request.args.get('groupId'),
        active_only=parse_bool(request.args.get('active')),
    )
    return jsonify({'fields': [f.to_dict() for f in fields]})


@customization_fields_bp.route('', methods=['POST'])
@require_organization
def create_field():
    field = customization_service.create_field(get_session(), g.organization_id, json_body(required=True))
    return jsonify(field.to_dict()), 201


@customization_fields_bp.route('/reorder', methods=['POST'])
@require_organization
def reorder_fields():
    data = json_body(required=True)
    customization_service.reorder_fields(get_session(), g.organization_id, data.get('field_orders'))
    return jsonify({'status': 'ok'})


@customization_fields_bp.route('/<field_id>', methods=['GET'])
@require_organization
def get_field(field_id):
    field = customization_service.get_field(get_session(), field_id, g.organization_id)
    return jsonify(field.to_dict())


@customization_fields_bp.route('/<field_id>', methods=['PATCH'])
@require_organization
def update_field(field_id):
    field = customization_service.update_field(get_session(), field_id, g.organization_id, json_body(required=True))
    return jsonify(field.to_dict())


@customization_fields_bp.route('/<field_id>/toggle-active', methods=['PATCH'])
@require_organization
def toggle_field(field_id):
    field = customization_service.toggle_field(get_session(), field_id, g.organization_id)
    return jsonify(field.to_dict())


@customization_fields_bp.route('/<field_id>', methods=['DELETE'])
@require_organization
def delete_field(field_id):
    customization_service.delete_field(get_session(), field_id, g.organization_id)
    return jsonify({'status': 'ok', 'message': 'Campo eliminado'})
