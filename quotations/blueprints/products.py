"""Products blueprint - catalog CRUD and per-list prices."""
from flask import Blueprint, jsonify, request, g

from quotations.database import get_session
from quotations.middleware import require_organization
from quotations.services import product_price_service, product_service
from quotations.utils.payloads import bool_arg, json_body

products_bp = Blueprint('products', __name__, url_prefix='/products')


@products_bp.route('', methods=['GET'])
@require_organization
def list_products():
    """List products (optional ?active=true|false and ?search=text on name or SKU)."""
    products = product_service.list_products(
        get_session(), g.organization_id, active=bool_arg('active'), search=request.args.get('search')
    )
    return jsonify({'products': [p.to_dict() for p in products]})


@products_bp.route('', methods=['POST'])
@require_organization
def create_product():
    product = product_service.create_product(get_session(), g.organization_id, json_body(required=True))
    return jsonify(product.to_dict(include_prices=True)), 201


@products_bp.route('/<int:product_id>', methods=['GET'])
@require_organization
def get_product(product_id):
    product = product_price_service.get_product_by_id(get_session(), product_id, g.organization_id)
    return jsonify(product.to_dict(include_prices=True))


@products_bp.route('/<int:product_id>', methods=['PUT'])
@require_organization
def update_product(product_id):
    product = product_service.update_product(get_session(), product_id, g.organization_id, json_body(required=True))
    return jsonify(product.to_dict(include_prices=True))


@products_bp.route('/<int:product_id>/toggle-active', methods=['PATCH'])
@require_organization
def toggle_active(product_id):
    product = product_service.toggle_active(get_session(), product_id, g.organization_id)
    return jsonify(product.to_dict())


@products_bp.route('/<int:product_id>', methods=['DELETE'])
@require_organization
def delete_product(product_id):
    product_service.delete_product(get_session(), product_id, g.organization_id)
    return jsonify({'status': 'ok', 'message': 'Producto eliminado'})


@products_bp.route('/<int:product_id>/prices', methods=['GET'])
@require_organization
def list_prices(product_id):
    prices = product_price_service.get_product_prices(get_session(), product_id, g.organization_id)
    return jsonify({'productId': product_id, 'prices': [p.to_dict() for p in prices]})


@products_bp.route('/<int:product_id>/prices/<int:price_list_id>', methods=['PUT'])
@require_organization
def set_price(product_id, price_list_id):
    """Create or replace the product's price in a price list."""
    price = product_price_service.set_product_price(
        get_session(), g.organization_id, product_id, price_list_id, json_body(required=True)
    )
    return jsonify(price.to_dict())


@products_bp.route('/<int:product_id>/prices/<int:price_list_id>', methods=['DELETE'])
@require_organization
def delete_price(product_id, price_list_id):
    product_price_service.delete_product_price(get_session(), g.organization_id, product_id, price_list_id)
    return jsonify({'status': 'ok', 'message': 'Precio eliminado'})
