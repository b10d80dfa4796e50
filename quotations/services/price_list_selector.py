"""
Price list selection.

Every item is first priced under the organization's default list; the cart
totals at default prices decide which conditional lists are unlocked, and the
cheapest applicable list wins. A list applies only when ALL of its active
conditions are met; a list without active conditions never applies here.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from quotations.models import PriceList
from quotations.exceptions import NotFoundError, ProductNotFoundError
from quotations.services.condition_evaluator import evaluate_condition
from quotations.services.price_list_service import get_price_lists
from quotations.services.product_price_service import get_product_by_id, find_price
from quotations.utils.dates import utcnow

logger = logging.getLogger(__name__)

INFINITY = Decimal('Infinity')


def _price_items_with_default(session: Session, items: List[Dict[str, Any]], default_list: PriceList,
                              organization_id: int, now, clamp_to_stock: bool) -> List[Dict[str, Any]]:
    processed = []
    for item in items:
        try:
            product = get_product_by_id(session, item['product_id'], organization_id)
        except NotFoundError:
            raise ProductNotFoundError(item['product_id'])
        price = find_price(product, default_list.id, now)
        if price is None:
            logger.error(f"[PRICING] Product {product.id} has no price in default list {default_list.id}")
            raise ProductNotFoundError(product.id)

        quantity = int(item['quantity'])
        if clamp_to_stock:
            quantity = min(quantity, product.stock_qty or quantity)

        processed.append({
            'product_id': product.id,
            'name': product.name,
            'sku': product.sku,
            'size': product.size,
            'color': product.color,
            'description': product.description,
            'image_url': product.image_url,
            'max_stock': product.stock_qty,
            'price': Decimal(price.amount),
            'quantity': quantity,
            'customization_values': item.get('customization_values'),
            '_product': product,
        })
    return processed


def _list_applies(price_list: PriceList, total_price, total_quantity, cart, now) -> bool:
    conditions = price_list.active_conditions
    if not conditions:
        return False
    return all(
        evaluate_condition(condition, total_price, total_quantity, cart, now)['is_met']
        for condition in conditions
    )


def _cost_under(price_list: PriceList, processed: List[Dict[str, Any]], now) -> Decimal:
    """Total cost of the items under a list; +Infinity when any product has no price there."""
    total = Decimal('0')
    for item in processed:
        price = find_price(item['_product'], price_list.id, now)
        if price is None:
            return INFINITY
        total += Decimal(price.amount) * item['quantity']
    return total


def select_best_price_list(session: Session, items: List[Dict[str, Any]], cart,
                           organization_id: int, now=None, clamp_to_stock: bool = True) -> Dict[str, Any]:
    """
    Price cart items under the cheapest applicable price list.

    Args:
        items: [{'product_id': ..., 'quantity': ..., 'customization_values': ...}]
        cart: the Cart being priced (for customer_type conditions)
        clamp_to_stock: cap requested quantities at product stock before the
            conditions are evaluated. Off when re-pricing quantities a cart
            already holds.

    Returns:
        {'processed_items': [...], 'applied_price_list': PriceList,
         'total_price': Decimal, 'total_quantity': int}

    Raises:
        NotFoundError: the organization has no active default list.
        ProductNotFoundError: missing product or missing default-list price.
    """
    now = now or utcnow()
    price_lists = get_price_lists(session, organization_id, status='active')

    default_list = next((pl for pl in price_lists if pl.is_default), None)
    if default_list is None:
        raise NotFoundError('La organización no tiene una lista de precios por defecto')

    processed = _price_items_with_default(session, items, default_list, organization_id, now, clamp_to_stock)

    total_quantity = sum(item['quantity'] for item in processed)
    total_price = sum((item['price'] * item['quantity'] for item in processed), Decimal('0'))

    applicable = [default_list] + [
        pl for pl in price_lists
        if not pl.is_default and _list_applies(pl, total_price, total_quantity, cart, now)
    ]

    best_list = default_list
    best_cost = total_price
    for price_list in applicable[1:]:
        cost = _cost_under(price_list, processed, now)
        logger.debug(f"[PRICING] Candidate list '{price_list.name}' (ID: {price_list.id}) cost={cost}")
        if cost < best_cost:
            best_list, best_cost = price_list, cost

    if best_list.id != default_list.id:
        for item in processed:
            item['price'] = Decimal(find_price(item['_product'], best_list.id, now).amount)
        logger.info(
            f"[PRICING] Price list '{best_list.name}' (ID: {best_list.id}) applies "
            f"(total {best_cost} vs default {total_price})"
        )
    else:
        logger.info(f"[PRICING] Default price list '{default_list.name}' (ID: {default_list.id}) applies")

    for item in processed:
        item.pop('_product')

    return {
        'processed_items': processed,
        'applied_price_list': best_list,
        'total_price': best_cost,
        'total_quantity': total_quantity,
    }


def calculate_price_list_progress(session: Session, context: Dict[str, Any], organization_id: int,
                                  now=None) -> List[Dict[str, Any]]:
    """
    Progress toward each non-default price list not yet unlocked.

    Args:
        context: {'total_price': ..., 'total_quantity': ..., 'cart': Cart or None}

    Returns:
        [{'price_list_id', 'price_list_name', 'progress', 'conditions': [...]}]
        where progress is the average of the condition progresses. Lists whose
        conditions are all met are omitted.
    """
    now = now or utcnow()
    total_price = context.get('total_price') or Decimal('0')
    total_quantity = context.get('total_quantity') or 0
    cart = context.get('cart')

    results = []
    for price_list in get_price_lists(session, organization_id, status='active'):
        if price_list.is_default:
            continue
        conditions = price_list.active_conditions
        if not conditions:
            continue

        evaluations = []
        for condition in conditions:
            evaluation = evaluate_condition(condition, total_price, total_quantity, cart, now)
            evaluation['condition_id'] = condition.id
            evaluation['condition_type'] = condition.condition_type
            evaluations.append(evaluation)

        if all(e['is_met'] for e in evaluations):
            continue

        progress = sum((e['progress'] for e in evaluations), Decimal('0')) / len(evaluations)
        results.append({
            'price_list_id': price_list.id,
            'price_list_name': price_list.name,
            'progress': progress.quantize(Decimal('0.01')),
            'conditions': evaluations,
        })

    return results

