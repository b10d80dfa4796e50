"""
Checkout price validation.

Re-prices a cart against the live price of every product under the price
list the selector picks at validation time, classifies the drift and either
applies it or reports that the customer must approve it.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from quotations.models import Cart
from quotations.exceptions import QuotationsError
from quotations.services.cart_service import find_by_id_with_items, recalculate_totals
from quotations.services.cart_notifier import emit_cart_updated
from quotations.services.price_list_selector import select_best_price_list
from quotations.services.quote_config import QuoteConfig
from quotations.services.quote_lifecycle_service import QuoteLifecycleService
from quotations.utils.dates import utcnow
from quotations.utils.formatters import jsonable
from quotations.utils.number_format import quantize_money

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')


def percentage_change(old, new) -> Decimal:
    """
    (new - old) / old * 100 rounded to 2 decimals.

    Zero baseline: 0.00 when both are zero, 100.00 when only the new value is not.
    """
    old, new = Decimal(old), Decimal(new)
    if old == 0:
        return Decimal('0.00') if new == 0 else Decimal('100.00')
    return ((new - old) / old * HUNDRED).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Pre-payment outcomes
# ---------------------------------------------------------------------------

class Applied:
    """Payment may proceed; any drift was within policy and has been applied."""

    def __init__(self, cart: Cart, validation: Dict[str, Any]):
        self.cart = cart
        self.validation = validation

    def __repr__(self):
        return f"<Applied(cart_id='{self.cart.id}', changes={len(self.validation['changes'])})>"


class RequiresApproval:
    """The customer must accept the new prices before paying."""

    def __init__(self, cart: Cart, validation: Dict[str, Any]):
        self.cart = cart
        self.validation = validation

    def __repr__(self):
        return f"<RequiresApproval(cart_id='{self.cart.id}', change={self.validation['total_percentage_change']}%)>"


class Blocked:
    """The quote cannot be paid (expired or wrong status)."""

    def __init__(self, cart: Cart, error: QuotationsError):
        self.cart = cart
        self.error = error

    def __repr__(self):
        return f"<Blocked(cart_id='{self.cart.id}', error={self.error.error})>"


def serialize_validation(validation: Dict[str, Any]) -> Dict[str, Any]:
    """Validation result in the camelCase shape returned by the API."""
    return jsonable({
        'isValid': validation['is_valid'],
        'priceListId': validation.get('price_list_id'),
        'changes': [
            {
                'itemId': c['item_id'],
                'productId': c['product_id'],
                'name': c['name'],
                'oldPrice': c['old_price'],
                'newPrice': c['new_price'],
                'difference': c['difference'],
                'percentageChange': c['percentage_change'],
            }
            for c in validation['changes']
        ],
        'totalOldPrice': validation['total_old_price'],
        'totalNewPrice': validation['total_new_price'],
        'totalDifference': validation['total_difference'],
        'totalPercentageChange': validation['total_percentage_change'],
    })


class PriceValidationService:
    """Price drift detection and resolution for one request."""

    def __init__(self, session: Session, config: Optional[QuoteConfig] = None):
        self.session = session
        self.config = config or QuoteConfig()
        self.lifecycle = QuoteLifecycleService(session, self.config)

    def _current_prices(self, cart: Cart, now) -> Tuple[Optional[int], Dict[int, Decimal]]:
        """
        Live unit prices for the quantities the cart holds, under the list the
        selector picks today. A list whose conditions no longer hold (expired
        promotion, deactivated condition) is not applied.
        """
        if not cart.items:
            return cart.price_list_id, {}
        selection = select_best_price_list(
            self.session,
            [{'product_id': item.product_id, 'quantity': item.quantity} for item in cart.items],
            cart, cart.organization_id, now=now, clamp_to_stock=False,
        )
        prices = {entry['product_id']: entry['price'] for entry in selection['processed_items']}
        return selection['applied_price_list'].id, prices

    def _validate_loaded_cart(self, cart: Cart, now=None) -> Dict[str, Any]:
        now = now or utcnow()
        price_list_id, current_prices = self._current_prices(cart, now)

        changes: List[Dict[str, Any]] = []
        total_new_price = Decimal('0')

        for item in cart.items:
            current_price = quantize_money(current_prices[item.product_id])
            snapshot_price = Decimal(item.price)
            total_new_price += current_price * item.quantity

            if current_price != snapshot_price:
                change = {
                    'item_id': item.id,
                    'product_id': item.product_id,
                    'name': item.name,
                    'old_price': snapshot_price,
                    'new_price': current_price,
                    'difference': quantize_money(current_price - snapshot_price),
                    'percentage_change': percentage_change(snapshot_price, current_price),
                }
                changes.append(change)
                logger.info(
                    f"[PRICING] Price change for {item.name}: {snapshot_price} -> {current_price} "
                    f"({change['percentage_change']}%)"
                )

        total_old_price = Decimal(cart.total_price or 0)
        total_new_price = quantize_money(total_new_price)

        result = {
            'is_valid': not changes,
            'changes': changes,
            'price_list_id': price_list_id,
            'total_old_price': total_old_price,
            'total_new_price': total_new_price,
            'total_difference': quantize_money(total_new_price - total_old_price),
            'total_percentage_change': percentage_change(total_old_price, total_new_price),
        }
        logger.info(
            f"[PRICING] Cart {cart.id} validation: "
            f"{'valid' if result['is_valid'] else f'{len(changes)} changes detected'}"
        )
        return result

    def validate_cart_prices(self, cart_id: str, organization_id: Optional[int] = None, now=None) -> Dict[str, Any]:
        """
        Compare every item's snapshot price with its live price.

        All-or-nothing: one missing product or price aborts the whole validation.
        Read-only: nothing is written.

        Raises:
            NotFoundError: cart not found.
            ProductNotFoundError: a product or its price is gone.
        """
        cart = find_by_id_with_items(self.session, cart_id, organization_id)
        return self._validate_loaded_cart(cart, now)

    def requires_approval(self, validation: Dict[str, Any]) -> bool:
        if validation['is_valid']:
            return False

        change = Decimal(validation['total_percentage_change'])
        threshold = Decimal(str(self.config.price_change_threshold))

        if abs(change) < threshold:
            return False
        if change < 0 and self.config.apply_lower_price_automatically:
            return False
        if change > threshold and self.config.requires_approval_on_increase:
            return True
        return False

    def update_cart_prices(self, cart: Cart, changes: List[Dict[str, Any]], approved: bool = True,
                           now=None, price_list_id: Optional[int] = None) -> Cart:
        """Write new item prices, recompute totals and stamp the validation audit (caller commits)."""
        now = now or utcnow()
        if price_list_id is not None:
            cart.price_list_id = price_list_id
        by_id = {item.id: item for item in cart.items}
        for change in changes:
            item = by_id.get(change['item_id'])
            if item is not None:
                item.price = change['new_price']

        recalculate_totals(cart)
        cart.price_validated_at = now
        if approved:
            cart.price_change_approved = True
            cart.price_change_approved_at = now
        logger.info(f"[PRICING] Cart {cart.id} prices updated ({len(changes)} items), total {cart.total_price}")
        return cart

    def validate_before_payment(self, cart_id: str, organization_id: Optional[int] = None, now=None):
        """
        Pre-payment check: expiration, status, price drift.

        Returns:
            Applied(cart, validation): payment may proceed (small drift auto-applied)
            RequiresApproval(cart, validation): customer must approve new prices
            Blocked(cart, error): expired or not payable

        Raises:
            NotFoundError / ProductNotFoundError: missing cart, product or price.
        """
        cart = find_by_id_with_items(self.session, cart_id, organization_id, lock=True)

        try:
            self.lifecycle.validate_quote_expiration(cart, now)
            self.lifecycle.validate_quote_status(cart)
        except QuotationsError as e:
            logger.info(f"[PRICING] Payment blocked for cart {cart.id}: {e.message}")
            self.session.rollback()
            return Blocked(cart, e)

        validation = self._validate_loaded_cart(cart, now)

        if validation['is_valid']:
            cart.price_list_id = validation['price_list_id']
            cart.price_validated_at = now or utcnow()
            self.session.commit()
            return Applied(cart, validation)

        if self.requires_approval(validation):
            # Drop the row lock; nothing was written.
            self.session.rollback()
            logger.info(
                f"[PRICING] Cart {cart_id} requires approval ({validation['total_percentage_change']}%)"
            )
            return RequiresApproval(cart, validation)

        logger.info(f"[PRICING] Auto-updating prices for cart {cart.id} (within policy)")
        self.update_cart_prices(
            cart, validation['changes'], approved=True, now=now, price_list_id=validation['price_list_id']
        )
        self.session.commit()
        emit_cart_updated(cart.id, cart.to_dict())
        return Applied(cart, dict(validation, is_valid=True))

    def approve_price_changes(self, cart_id: str, organization_id: Optional[int] = None, now=None) -> Dict[str, Any]:
        """
        Customer accepted the current prices: apply every pending change.

        Returns the validation that was applied.
        """
        cart = find_by_id_with_items(self.session, cart_id, organization_id, lock=True)
        self.lifecycle.validate_quote_status(cart)

        validation = self._validate_loaded_cart(cart, now)
        self.update_cart_prices(
            cart, validation['changes'], approved=True, now=now, price_list_id=validation['price_list_id']
        )
        self.session.commit()
        emit_cart_updated(cart.id, cart.to_dict())
        logger.info(f"[PRICING] Customer approved {len(validation['changes'])} price changes on cart {cart.id}")
        return validation
