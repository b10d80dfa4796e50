"""Carts (quotes) blueprint - JSON API."""
import logging
from flask import Blueprint, jsonify, request, g

from quotations.database import get_session
from quotations.exceptions import PriceChangedError
from quotations.middleware import require_organization
from quotations.services import cart_service
from quotations.services.price_validation_service import (
    PriceValidationService, Applied, RequiresApproval, serialize_validation
)
from quotations.services.quote_config import current_quote_config
from quotations.services.quote_lifecycle_service import QuoteLifecycleService
from quotations.blueprints.metrics import price_validation_outcomes_total, record_price_list_selection
from quotations.utils.formatters import jsonable
from quotations.utils.payloads import json_body

logger = logging.getLogger(__name__)

carts_bp = Blueprint('carts', __name__, url_prefix='/cart')


@carts_bp.route('', methods=['GET'])
@require_organization
def list_carts():
    carts = cart_service.list_carts(
        get_session(), g.organization_id,
        status=request.args.get('status'),
        conversation_id=request.args.get('conversationId') or request.args.get('conversation_id'),
    )
    return jsonify({'carts': [c.to_dict(include_items=False) for c in carts]})


@carts_bp.route('', methods=['POST'])
@require_organization
def create_cart():
    """Create a draft cart, optionally with items (priced under the best price list)."""
    cart = cart_service.create_cart(get_session(), g.organization_id, json_body())
    record_price_list_selection(cart)
    return jsonify(cart.to_dict()), 201


@carts_bp.route('/<cart_id>', methods=['GET'])
@require_organization
def get_cart(cart_id):
    cart = cart_service.find_by_id_with_items(get_session(), cart_id, g.organization_id)
    return jsonify(cart.to_dict())


@carts_bp.route('/<cart_id>', methods=['PUT'])
@require_organization
def update_cart(cart_id):
    """Replace the cart items (re-pricing them) and/or update customer data."""
    cart = cart_service.replace_cart_items(get_session(), cart_id, g.organization_id, json_body(required=True))
    record_price_list_selection(cart)
    return jsonify(cart.to_dict())


@carts_bp.route('/<cart_id>/suggestions', methods=['PUT'])
@require_organization
def update_suggestions(cart_id):
    """Price suggested products and push them to the cart's subscribers (the cart is not modified)."""
    data = json_body(required=True)
    suggestions = cart_service.suggest_items(get_session(), cart_id, g.organization_id, data.get('suggestions'))
    return jsonify({'cartId': cart_id, 'suggestions': jsonable(suggestions)})


@carts_bp.route('/<cart_id>/items', methods=['POST'])
@require_organization
def add_item(cart_id):
    data = json_body(required=True)
    cart = cart_service.add_item(
        get_session(), cart_id, g.organization_id,
        product_id=data.get('product_id'),
        quantity=data.get('quantity', 1),
        customization_values=data.get('customization_values'),
    )
    return jsonify(cart.to_dict()), 201


@carts_bp.route('/<cart_id>/items/<item_id>', methods=['PATCH'])
@require_organization
def update_item(cart_id, item_id):
    """Set an item's quantity; 0 removes it."""
    data = json_body(required=True)
    cart = cart_service.update_item_quantity(get_session(), cart_id, g.organization_id, item_id, data.get('quantity'))
    return jsonify(cart.to_dict())


@carts_bp.route('/<cart_id>/items/<item_id>', methods=['DELETE'])
@require_organization
def remove_item(cart_id, item_id):
    cart = cart_service.remove_item(get_session(), cart_id, g.organization_id, item_id)
    return jsonify(cart.to_dict())


@carts_bp.route('/<cart_id>/customization', methods=['PATCH'])
@require_organization
def update_customization(cart_id):
    data = json_body(required=True)
    cart = cart_service.update_customization(
        get_session(), cart_id, g.organization_id,
        data.get('selected_product_ids') or [],
        data.get('customization_values') or {},
    )
    return jsonify(cart.to_dict())


@carts_bp.route('/<cart_id>/changelog', methods=['GET'])
@require_organization
def changelog(cart_id):
    """Change history, newest first. Optional ?operation=add|remove and ?limit=N."""
    limit = request.args.get('limit', type=int)
    entries = cart_service.get_changelog(
        get_session(), cart_id, g.organization_id,
        operation=request.args.get('operation'),
        limit=limit,
    )
    return jsonify({'cartId': cart_id, 'changelog': [e.to_dict() for e in entries]})


@carts_bp.route('/<cart_id>/price-list-progress', methods=['GET'])
@require_organization
def price_list_progress(cart_id):
    progress = cart_service.get_price_list_progress(get_session(), cart_id, g.organization_id)
    return jsonify({
        'cartId': cart_id,
        'priceLists': jsonable([
            {
                'priceListId': p['price_list_id'],
                'priceListName': p['price_list_name'],
                'progress': p['progress'],
                'conditions': [
                    {
                        'conditionId': c['condition_id'],
                        'conditionType': c['condition_type'],
                        'isMet': c['is_met'],
                        'progress': c['progress'],
                        'currentValue': c['current_value'],
                        'targetValue': c['target_value'],
                        'remaining': c['remaining'],
                        'message': c['message'],
                    }
                    for c in p['conditions']
                ],
            }
            for p in progress
        ]),
    })


@carts_bp.route('/<cart_id>/activate', methods=['POST'])
@require_organization
def activate(cart_id):
    cart = QuoteLifecycleService(get_session(), current_quote_config()).activate_quote(cart_id, g.organization_id)
    return jsonify(cart.to_dict())


@carts_bp.route('/<cart_id>/cancel', methods=['POST'])
@require_organization
def cancel(cart_id):
    cart = QuoteLifecycleService(get_session(), current_quote_config()).cancel_quote(cart_id, g.organization_id)
    return jsonify(cart.to_dict())


@carts_bp.route('/<cart_id>/validate-prices', methods=['POST'])
@require_organization
def validate_prices(cart_id):
    """
    Pre-payment check. 200 when payment may proceed (small drift is applied),
    409 when the customer must approve new prices, 410/400 when blocked.
    """
    service = PriceValidationService(get_session(), current_quote_config())
    outcome = service.validate_before_payment(cart_id, g.organization_id)

    if isinstance(outcome, Applied):
        price_validation_outcomes_total.labels(outcome='applied').inc()
        return jsonify({
            'cart': outcome.cart.to_dict(),
            'validation': serialize_validation(outcome.validation),
            'requiresApproval': False,
        })
    if isinstance(outcome, RequiresApproval):
        price_validation_outcomes_total.labels(outcome='requires_approval').inc()
        raise PriceChangedError(serialize_validation(outcome.validation), requires_customer_approval=True)

    price_validation_outcomes_total.labels(outcome='blocked').inc()
    raise outcome.error


@carts_bp.route('/<cart_id>/approve-prices', methods=['POST'])
@require_organization
def approve_prices(cart_id):
    """Customer accepts the current prices; pending changes are applied."""
    session = get_session()
    service = PriceValidationService(session, current_quote_config())
    validation = service.approve_price_changes(cart_id, g.organization_id)
    cart = cart_service.find_by_id_with_items(session, cart_id, g.organization_id)
    return jsonify({'cart': cart.to_dict(), 'validation': serialize_validation(validation)})
