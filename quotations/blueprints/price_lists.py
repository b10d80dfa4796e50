"""Price lists blueprint - CRUD for lists and their activation conditions."""
from flask import Blueprint, jsonify, request, g

from quotations.database import get_session
from quotations.middleware import require_organization
from quotations.services import price_list_service
from quotations.utils.payloads import json_body

price_lists_bp = Blueprint('price_lists', __name__, url_prefix='/price-lists')


@price_lists_bp.route('', methods=['GET'])
@require_organization
def list_price_lists():
    """List price lists (optional ?status=active|inactive), served from cache when available."""
    price_lists = price_list_service.list_price_lists_cached(
        get_session(), g.organization_id, request.args.get('status')
    )
    return jsonify({'priceLists': price_lists})


@price_lists_bp.route('', methods=['POST'])
@require_organization
def create_price_list():
    price_list = price_list_service.create_price_list(get_session(), g.organization_id, json_body(required=True))
    return jsonify(price_list.to_dict()), 201


@price_lists_bp.route('/<int:price_list_id>', methods=['GET'])
@require_organization
def get_price_list(price_list_id):
    price_list = price_list_service.get_price_list(get_session(), price_list_id, g.organization_id)
    return jsonify(price_list.to_dict())


@price_lists_bp.route('/<int:price_list_id>', methods=['PUT'])
@require_organization
def update_price_list(price_list_id):
    price_list = price_list_service.update_price_list(
        get_session(), price_list_id, g.organization_id, json_body(required=True)
    )
    return jsonify(price_list.to_dict())


@price_lists_bp.route('/<int:price_list_id>', methods=['DELETE'])
@require_organization
def delete_price_list(price_list_id):
    price_list_service.delete_price_list(get_session(), price_list_id, g.organization_id)
    return jsonify({'status': 'ok', 'message': 'Lista de precios eliminada'})


@price_lists_bp.route('/<int:price_list_id>/conditions', methods=['GET'])
@require_organization
def list_conditions(price_list_id):
    conditions = price_list_service.get_conditions(get_session(), price_list_id, g.organization_id)
    return jsonify({'priceListId': price_list_id, 'conditions': [c.to_dict() for c in conditions]})


@price_lists_bp.route('/<int:price_list_id>/conditions', methods=['POST'])
@require_organization
def create_condition(price_list_id):
    condition = price_list_service.create_condition(
        get_session(), price_list_id, g.organization_id, json_body(required=True)
    )
    return jsonify(condition.to_dict()), 201


@price_lists_bp.route('/<int:price_list_id>/conditions/<int:condition_id>', methods=['PUT'])
@require_organization
def update_condition(price_list_id, condition_id):
    condition = price_list_service.update_condition(
        get_session(), price_list_id, condition_id, g.organization_id, json_body(required=True)
    )
    return jsonify(condition.to_dict())


@price_lists_bp.route('/<int:price_list_id>/conditions/<int:condition_id>', methods=['DELETE'])
@require_organization
def delete_condition(price_list_id, condition_id):
    price_list_service.delete_condition(get_session(), price_list_id, condition_id, g.organization_id)
    return jsonify({'status': 'ok', 'message': 'Condición eliminada'})
