"""Payment methods blueprint - methods an organization accepts."""
from flask import Blueprint, jsonify, g

from quotations.database import get_session
from quotations.middleware import require_organization
from quotations.services import payment_method_service
from quotations.utils.payloads import bool_arg, json_body

payment_methods_bp = Blueprint('payment_methods', __name__, url_prefix='/payment-methods')


@payment_methods_bp.route('', methods=['GET'])
@require_organization
def list_payment_methods():
    methods = payment_method_service.list_payment_methods(get_session(), g.organization_id, bool_arg('active'))
    return jsonify({'paymentMethods': [m.to_dict() for m in methods]})


@payment_methods_bp.route('', methods=['POST'])
@require_organization
def create_payment_method():
    method = payment_method_service.create_payment_method(get_session(), g.organization_id, json_body(required=True))
    return jsonify(method.to_dict()), 201


@payment_methods_bp.route('/<payment_method_id>', methods=['GET'])
@require_organization
def get_payment_method(payment_method_id):
    method = payment_method_service.get_payment_method(get_session(), payment_method_id, g.organization_id)
    return jsonify(method.to_dict())


@payment_methods_bp.route('/<payment_method_id>', methods=['PATCH'])
@require_organization
def update_payment_method(payment_method_id):
    method = payment_method_service.update_payment_method(
        get_session(), payment_method_id, g.organization_id, json_body(required=True)
    )
    return jsonify(method.to_dict())


@payment_methods_bp.route('/<payment_method_id>/toggle-active', methods=['PATCH'])
@require_organization
def toggle_active(payment_method_id):
    method = payment_method_service.toggle_active(get_session(), payment_method_id, g.organization_id)
    return jsonify(method.to_dict())


@payment_methods_bp.route('/<payment_method_id>', methods=['DELETE'])
@require_organization
def delete_payment_method(payment_method_id):
    payment_method_service.delete_payment_method(get_session(), payment_method_id, g.organization_id)
    return jsonify({'status': 'ok', 'message': 'Método de pago eliminado'})
