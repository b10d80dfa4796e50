"""
Cart (quote) aggregate: items, totals and change history.

Every mutation loads the cart row with SELECT ... FOR UPDATE so concurrent
requests on the same cart are serialized, recomputes totals from the items,
writes the changelog and publishes a cart_updated event after commit.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from quotations.models import Cart, CartItem, CartChangelog, CartStatus, ChangelogOperation
from quotations.exceptions import BusinessLogicError, NotFoundError
from quotations.services.cart_notifier import emit_cart_updated, emit_cart_suggestions
from quotations.services.price_list_selector import select_best_price_list, calculate_price_list_progress
from quotations.services.price_list_service import get_default_price_list
from quotations.services.product_price_service import get_product_by_id, find_price
from quotations.utils.number_format import parse_quantity, quantize_money

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ('full_name', 'document_type', 'document_number', 'customer_type', 'conversation_id')


# ---------------------------------------------------------------------------
# Repository helpers
# ---------------------------------------------------------------------------

def find_by_id_with_items(session: Session, cart_id: str, organization_id: Optional[int] = None,
                          lock: bool = False) -> Cart:
    """
    Load a cart with its items.

    Args:
        lock: take a row lock on the cart (SELECT ... FOR UPDATE)

    Raises:
        NotFoundError: if the cart does not exist (for the organization).
    """
    query = session.query(Cart).options(selectinload(Cart.items)).filter(Cart.id == str(cart_id))
    if organization_id is not None:
        query = query.filter(Cart.organization_id == organization_id)
    if lock:
        query = query.with_for_update()
    cart = query.first()
    if not cart:
        raise NotFoundError(f'Carrito {cart_id} no encontrado')
    return cart


def calculate_cart_totals(cart: Cart) -> Tuple[int, Decimal]:
    """(total_items, total_price) aggregated from the current items."""
    total_items = sum(item.quantity for item in cart.items)
    total_price = sum((Decimal(item.price) * item.quantity for item in cart.items), Decimal('0'))
    return total_items, quantize_money(total_price)


def recalculate_totals(cart: Cart) -> None:
    cart.total_items, cart.total_price = calculate_cart_totals(cart)


def update_cart_item(item: CartItem, **fields) -> CartItem:
    for key, value in fields.items():
        setattr(item, key, value)
    return item


def delete_cart_items_by_cart_id(session: Session, cart: Cart) -> int:
    removed = len(cart.items)
    for item in list(cart.items):
        cart.items.remove(item)
        session.delete(item)
    return removed


def clamp_quantity(quantity: int, max_stock: Optional[int]) -> int:
    """Never exceed the available stock."""
    if max_stock is None:
        return quantity
    return min(quantity, max_stock)


def _ensure_editable(cart: Cart) -> None:
    if not cart.is_quote_open:
        raise BusinessLogicError(f"La cotización no admite cambios en estado '{cart.status}'")


def _log_change(session: Session, cart: Cart, product_id, name, delta: int, price) -> None:
    if delta == 0:
        return
    session.add(CartChangelog(
        cart_id=cart.id,
        product_id=product_id,
        name=name,
        operation=ChangelogOperation.ADD.value if delta > 0 else ChangelogOperation.REMOVE.value,
        quantity=abs(delta),
        price=price,
    ))


def _next_position(cart: Cart) -> int:
    return max((item.position for item in cart.items), default=-1) + 1


def _commit_and_notify(session: Session, cart: Cart) -> Cart:
    session.commit()
    session.refresh(cart)
    emit_cart_updated(cart.id, cart.to_dict())
    return cart


def _normalize_items(raw_items) -> List[Dict[str, Any]]:
    """Validate request items and merge duplicates by product id (first occurrence keeps its slot)."""
    if not isinstance(raw_items, list):
        raise BusinessLogicError('items debe ser una lista')

    merged: Dict[int, Dict[str, Any]] = {}
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise BusinessLogicError('Cada item debe ser un objeto')
        product_id = raw.get('product_id', raw.get('productId'))
        if product_id is None:
            raise BusinessLogicError('product_id es obligatorio')
        try:
            product_id = int(product_id)
            quantity = parse_quantity(raw.get('quantity', 1), allow_zero=True)
        except (TypeError, ValueError) as e:
            raise BusinessLogicError(str(e))
        if quantity == 0:
            continue

        customization = raw.get('customization_values', raw.get('customizationValues'))
        if product_id in merged:
            merged[product_id]['quantity'] += quantity
        else:
            merged[product_id] = {
                'product_id': product_id,
                'quantity': quantity,
                'customization_values': customization,
            }
    return list(merged.values())


def _build_item(cart: Cart, processed: Dict[str, Any], position: int) -> CartItem:
    max_stock = processed['max_stock'] or processed['quantity']
    return CartItem(
        cart_id=cart.id,
        position=position,
        product_id=processed['product_id'],
        name=processed['name'],
        sku=processed['sku'],
        size=processed.get('size'),
        color=processed.get('color'),
        price=quantize_money(processed['price']),
        quantity=clamp_quantity(processed['quantity'], max_stock),
        max_stock=max_stock,
        image_url=processed.get('image_url'),
        customization_values=processed.get('customization_values'),
    )


def _reprice_items(session: Session, cart: Cart, organization_id: int,
                   new_items: Optional[List[Dict[str, Any]]] = None) -> Dict[int, Dict[str, Any]]:
    """
    Re-run price list selection over the quantities the cart holds (plus
    `new_items` about to be added) and rewrite every item price and the
    cart's price list. Returns the processed entries keyed by product id.
    """
    requested = [{'product_id': item.product_id, 'quantity': item.quantity} for item in cart.items]
    requested.extend(new_items or [])
    if not requested:
        cart.price_list_id = None
        return {}

    selection = select_best_price_list(session, requested, cart, organization_id, clamp_to_stock=False)
    processed = {entry['product_id']: entry for entry in selection['processed_items']}
    for item in cart.items:
        item.price = quantize_money(processed[item.product_id]['price'])

    applied = selection['applied_price_list']
    if cart.price_list_id != applied.id:
        logger.info(f"[CART] Cart {cart.id} now priced with list '{applied.name}' (ID: {applied.id})")
    cart.price_list_id = applied.id
    return processed


def _apply_customer_fields(cart: Cart, data: Dict[str, Any]) -> None:
    for field in CUSTOMER_FIELDS:
        if field in data:
            setattr(cart, field, data[field])


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def list_carts(session: Session, organization_id: int, status: Optional[str] = None,
               conversation_id: Optional[str] = None) -> List[Cart]:
    query = session.query(Cart).filter(Cart.organization_id == organization_id)
    if status:
        query = query.filter(Cart.status == status)
    if conversation_id:
        query = query.filter(Cart.conversation_id == conversation_id)
    return query.order_by(Cart.created_at.desc()).all()


def create_cart(session: Session, organization_id: int, data: Dict[str, Any]) -> Cart:
    """
    Create a draft cart, optionally with items priced under the best price list.

    Raises:
        BusinessLogicError: invalid items payload.
        NotFoundError: unknown product or missing default price.
    """
    items = _normalize_items(data.get('items') or [])

    cart = Cart(organization_id=organization_id, status=CartStatus.DRAFT.value)
    _apply_customer_fields(cart, data)
    session.add(cart)
    session.flush()

    try:
        if items:
            selection = select_best_price_list(session, items, cart, organization_id)
            for position, processed in enumerate(selection['processed_items']):
                item = _build_item(cart, processed, position)
                cart.items.append(item)
                _log_change(session, cart, item.product_id, item.name, item.quantity, item.price)
            cart.price_list_id = selection['applied_price_list'].id
        recalculate_totals(cart)
    except Exception:
        session.rollback()
        raise

    logger.info(f"[CART] Cart {cart.id} created with {len(items)} products (org {organization_id})")
    return _commit_and_notify(session, cart)


def replace_cart_items(session: Session, cart_id: str, organization_id: int, data: Dict[str, Any]) -> Cart:
    """
    Replace the cart contents (PUT): re-run price list selection over the new
    item set, rebuild the items with the winning prices and log per-product
    quantity deltas. Customer fields in `data` are updated too; a new
    customer_type re-prices the current items.
    """
    cart = find_by_id_with_items(session, cart_id, organization_id, lock=True)
    _ensure_editable(cart)

    try:
        _apply_customer_fields(cart, data)

        if 'items' in data:
            items = _normalize_items(data.get('items') or [])
            previous = {}
            for item in cart.items:
                name, quantity, price = previous.get(item.product_id, (item.name, 0, item.price))
                previous[item.product_id] = (name, quantity + item.quantity, price)

            delete_cart_items_by_cart_id(session, cart)
            session.flush()

            new_quantities = {}
            if items:
                selection = select_best_price_list(session, items, cart, organization_id)
                for position, processed in enumerate(selection['processed_items']):
                    item = _build_item(cart, processed, position)
                    cart.items.append(item)
                    new_quantities[item.product_id] = (item.name, item.quantity, item.price)
                cart.price_list_id = selection['applied_price_list'].id
                logger.info(
                    f"[CART] Applying price list '{selection['applied_price_list'].name}' "
                    f"(ID: {cart.price_list_id}) to cart {cart.id}"
                )
            else:
                cart.price_list_id = None

            for product_id in list(previous) + [p for p in new_quantities if p not in previous]:
                old_name, old_qty, old_price = previous.get(product_id, (None, 0, None))
                new_name, new_qty, new_price = new_quantities.get(product_id, (old_name, 0, old_price))
                _log_change(session, cart, product_id, new_name, new_qty - old_qty, new_price)
        elif 'customer_type' in data:
            _reprice_items(session, cart, organization_id)

        recalculate_totals(cart)
    except Exception:
        session.rollback()
        raise

    return _commit_and_notify(session, cart)


def add_item(session: Session, cart_id: str, organization_id: int, product_id, quantity,
             customization_values=None) -> Cart:
    """
    Add units of a product. Adding a product already in the cart increases its
    line. The whole cart is re-priced afterwards, so crossing a quantity or
    amount threshold moves every item to the list it unlocks.
    """
    try:
        product_id = int(product_id)
        quantity = parse_quantity(quantity)
    except (TypeError, ValueError) as e:
        raise BusinessLogicError(str(e))

    cart = find_by_id_with_items(session, cart_id, organization_id, lock=True)
    _ensure_editable(cart)

    try:
        product = get_product_by_id(session, product_id, organization_id)

        existing = next((i for i in cart.items if i.product_id == product_id), None)
        if existing:
            before = existing.quantity
            update_cart_item(existing, quantity=clamp_quantity(before + quantity, existing.max_stock))
            if customization_values is not None:
                update_cart_item(existing, customization_values=customization_values)
            _reprice_items(session, cart, organization_id)
            _log_change(session, cart, product_id, existing.name, existing.quantity - before, existing.price)
        else:
            quantity = clamp_quantity(quantity, product.stock_qty or quantity)
            processed = _reprice_items(session, cart, organization_id, [{
                'product_id': product.id,
                'quantity': quantity,
                'customization_values': customization_values,
            }])
            item = _build_item(cart, processed[product.id], _next_position(cart))
            cart.items.append(item)
            _log_change(session, cart, product_id, item.name, item.quantity, item.price)

        recalculate_totals(cart)
    except Exception:
        session.rollback()
        raise

    return _commit_and_notify(session, cart)


def _get_item(cart: Cart, item_id: str) -> CartItem:
    item = next((i for i in cart.items if i.id == str(item_id)), None)
    if not item:
        raise NotFoundError(f'Item {item_id} no encontrado en el carrito')
    return item


def update_item_quantity(session: Session, cart_id: str, organization_id: int, item_id: str, quantity) -> Cart:
    """
    Set an item's quantity (clamped to max_stock); 0 removes the item.

    The remaining items are re-priced: a cart that drops below a list's
    conditions goes back to the list it still qualifies for.
    """
    try:
        quantity = parse_quantity(quantity, allow_zero=True)
    except ValueError as e:
        raise BusinessLogicError(str(e))

    cart = find_by_id_with_items(session, cart_id, organization_id, lock=True)
    _ensure_editable(cart)
    item = _get_item(cart, item_id)

    try:
        before = item.quantity
        if quantity == 0:
            cart.items.remove(item)
            session.delete(item)
            _log_change(session, cart, item.product_id, item.name, -before, item.price)
            _reprice_items(session, cart, organization_id)
        else:
            update_cart_item(item, quantity=clamp_quantity(quantity, item.max_stock))
            _reprice_items(session, cart, organization_id)
            _log_change(session, cart, item.product_id, item.name, item.quantity - before, item.price)

        recalculate_totals(cart)
    except Exception:
        session.rollback()
        raise

    return _commit_and_notify(session, cart)


def remove_item(session: Session, cart_id: str, organization_id: int, item_id: str) -> Cart:
    return update_item_quantity(session, cart_id, organization_id, item_id, 0)


def update_customization(session: Session, cart_id: str, organization_id: int,
                         selected_item_ids: List[str], customization_values: Dict[str, Any]) -> Cart:
    """Set the same customization values on every selected item."""
    if not isinstance(selected_item_ids, list):
        raise BusinessLogicError('selectedProductIds debe ser una lista')
    if not isinstance(customization_values, dict):
        raise BusinessLogicError('customizationValues debe ser un objeto')

    cart = find_by_id_with_items(session, cart_id, organization_id, lock=True)
    selected = {str(i) for i in selected_item_ids}
    for item in cart.items:
        if item.id in selected:
            update_cart_item(item, customization_values=dict(customization_values))

    return _commit_and_notify(session, cart)


def suggest_items(session: Session, cart_id: str, organization_id: int, raw_suggestions) -> List[Dict[str, Any]]:
    """
    Price suggested products for a cart without adding them.

    Suggestions are priced under the list the cart would get with them added
    and quantities are capped at stock. The result is published as a
    cart_suggestions event; the cart itself is not modified.

    Raises:
        BusinessLogicError: invalid suggestions payload.
        ProductNotFoundError: unknown product or missing default price.
    """
    cart = find_by_id_with_items(session, cart_id, organization_id)
    suggestions = _normalize_items(raw_suggestions or [])
    if not suggestions:
        return []

    held = [{'product_id': item.product_id, 'quantity': item.quantity} for item in cart.items]
    selection = select_best_price_list(session, held + suggestions, cart, organization_id)

    result = []
    for processed in selection['processed_items'][len(held):]:
        result.append({
            'productId': processed['product_id'],
            'name': processed['name'],
            'sku': processed['sku'],
            'size': processed.get('size'),
            'color': processed.get('color'),
            'description': processed.get('description'),
            'imageUrl': processed.get('image_url'),
            'price': quantize_money(processed['price']),
            'quantity': processed['quantity'],
            'priceListId': selection['applied_price_list'].id,
        })

    emit_cart_suggestions(cart.id, result)
    logger.info(f"[CART] {len(result)} suggestions sent for cart {cart.id}")
    return result


def get_changelog(session: Session, cart_id: str, organization_id: int,
                  operation: Optional[str] = None, limit: Optional[int] = None) -> List[CartChangelog]:
    """Change history, newest first."""
    find_by_id_with_items(session, cart_id, organization_id)
    if operation and operation not in {op.value for op in ChangelogOperation}:
        raise BusinessLogicError(f'Operación inválida: {operation}')

    query = session.query(CartChangelog).filter(CartChangelog.cart_id == str(cart_id))
    if operation:
        query = query.filter(CartChangelog.operation == operation)
    query = query.order_by(CartChangelog.created_at.desc(), CartChangelog.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_price_list_progress(session: Session, cart_id: str, organization_id: int) -> List[Dict[str, Any]]:
    """Progress toward conditional price lists, measured on default-list totals."""
    cart = find_by_id_with_items(session, cart_id, organization_id)
    default_list = get_default_price_list(session, organization_id)

    total_price = Decimal('0')
    for item in cart.items:
        product = get_product_by_id(session, item.product_id, organization_id)
        price = find_price(product, default_list.id)
        unit_price = Decimal(price.amount) if price is not None else Decimal(item.price)
        total_price += unit_price * item.quantity

    return calculate_price_list_progress(session, {
        'total_price': total_price,
        'total_quantity': cart.total_items,
        'cart': cart,
    }, organization_id)
