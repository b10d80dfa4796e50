"""
Quote lifecycle: draft -> active -> expired / paid / cancelled.

Expiration is two-phase: `check_expiration` only reads, `mark_expired`
writes. `validate_quote_expiration` runs both, so calling it on an overdue
quote persists the `expired` status even when it then raises.
"""
import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from quotations.models import Cart, CartStatus
from quotations.exceptions import BusinessLogicError, QuoteExpiredError, InvalidQuoteStatusError
from quotations.services.cart_service import find_by_id_with_items
from quotations.services.cart_notifier import emit_cart_updated
from quotations.services.quote_config import QuoteConfig
from quotations.utils.dates import utcnow

logger = logging.getLogger(__name__)

VALID = 'valid'
EXPIRED = 'expired'

PAYABLE_STATUSES = (CartStatus.ACTIVE.value, CartStatus.DRAFT.value)


class QuoteLifecycleService:
    """Activation, expiration, status checks and cancellation of quotes."""

    def __init__(self, session: Session, config: Optional[QuoteConfig] = None):
        self.session = session
        self.config = config or QuoteConfig()

    def activate_quote(self, cart_id: str, organization_id: Optional[int] = None, now=None) -> Cart:
        """
        Open the validity window: status=active, valid_until=now+validity_days.
        original_total_price is frozen on the first activation only.
        """
        now = now or utcnow()
        cart = find_by_id_with_items(self.session, cart_id, organization_id, lock=True)

        if cart.status in (CartStatus.PAID.value, CartStatus.CANCELLED.value):
            raise InvalidQuoteStatusError(cart.id, cart.status, 'draft, active or expired')

        cart.status = CartStatus.ACTIVE.value
        cart.valid_until = now + timedelta(days=self.config.validity_days)
        if cart.original_total_price is None:
            cart.original_total_price = cart.total_price or Decimal('0')

        self.session.commit()
        logger.info(f"[QUOTES] Quote {cart.id} activated, valid until {cart.valid_until.isoformat()}")
        emit_cart_updated(cart.id, cart.to_dict())
        return cart

    def check_expiration(self, cart: Cart, now=None) -> str:
        """'expired' once now > valid_until; quotes without valid_until never expire."""
        if cart.valid_until is None:
            return VALID
        now = now or utcnow()
        return EXPIRED if now > cart.valid_until else VALID

    def mark_expired(self, cart: Cart) -> Cart:
        """Persist the expired status (paid/cancelled quotes are left untouched)."""
        if cart.status in (CartStatus.PAID.value, CartStatus.CANCELLED.value, CartStatus.EXPIRED.value):
            return cart
        cart.status = CartStatus.EXPIRED.value
        self.session.commit()
        logger.info(f"[QUOTES] Quote {cart.id} expired (valid until {cart.valid_until})")
        return cart

    def validate_quote_expiration(self, cart: Cart, now=None) -> None:
        """
        Check expiration and persist it when overdue.

        Raises:
            QuoteExpiredError: if overdue and expired quotes are not payable.
        """
        if self.check_expiration(cart, now) != EXPIRED:
            return
        self.mark_expired(cart)
        if not self.config.allow_expired_quotes:
            raise QuoteExpiredError(cart.id, cart.valid_until)
        logger.info(f"[QUOTES] Quote {cart.id} is expired but expired quotes are payable")

    def validate_quote_status(self, cart: Cart) -> None:
        """
        Raises:
            InvalidQuoteStatusError: unless the quote is active or draft
            (or expired while expired quotes are payable).
        """
        allowed = PAYABLE_STATUSES
        if self.config.allow_expired_quotes:
            allowed = allowed + (CartStatus.EXPIRED.value,)
        if cart.status not in allowed:
            raise InvalidQuoteStatusError(cart.id, cart.status, ' or '.join(allowed))

    def cancel_quote(self, cart_id: str, organization_id: Optional[int] = None) -> Cart:
        cart = find_by_id_with_items(self.session, cart_id, organization_id, lock=True)
        if cart.status == CartStatus.PAID.value:
            raise BusinessLogicError('No se puede cancelar una cotización pagada')
        if cart.status == CartStatus.CANCELLED.value:
            return cart

        cart.status = CartStatus.CANCELLED.value
        self.session.commit()
        logger.info(f"[QUOTES] Quote {cart.id} cancelled")
        emit_cart_updated(cart.id, cart.to_dict())
        return cart

    def expire_overdue_quotes(self, organization_id: Optional[int] = None, now=None) -> int:
        """Batch flip of active quotes past valid_until. Returns how many expired."""
        now = now or utcnow()
        query = self.session.query(Cart).filter(
            Cart.status == CartStatus.ACTIVE.value,
            Cart.valid_until.isnot(None),
            Cart.valid_until < now,
        )
        if organization_id is not None:
            query = query.filter(Cart.organization_id == organization_id)

        expired = 0
        for cart in query.with_for_update().all():
            cart.status = CartStatus.EXPIRED.value
            expired += 1

        self.session.commit()
        if expired:
            logger.info(f"[QUOTES] {expired} overdue quotes expired")
        return expired
