"""
Real-time cart notifications.

Cart updates and item suggestions are published as JSON on the Redis channel
`cart_<id>`; the WebSocket gateway subscribes and relays them to the browser
room of that cart.
Publishing is best effort: failures are logged and never reach the caller.
"""
import json
import logging
from typing import Any, Dict, Optional

import redis
from redis.exceptions import RedisError
from flask import Flask

from quotations.utils.formatters import jsonable

logger = logging.getLogger(__name__)


class CartNotifier:
    """Publishes `cart_updated` and `cart_suggestions` events to Redis pub/sub."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self._enabled = False
        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self._enabled = app.config.get('CART_EVENTS_ENABLED', True)
        if not self._enabled:
            logger.info("[CART] Cart events DISABLED via config")
            return
        self.client = redis.from_url(
            app.config.get('REDIS_URL', 'redis://localhost:6379/0'),
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )

    @staticmethod
    def channel_for(cart_id: str) -> str:
        return f"cart_{cart_id}"

    def publish(self, cart_id: str, event: str, data: Any) -> bool:
        if not self._enabled or self.client is None:
            return False
        message = json.dumps({'event': event, 'cartId': cart_id, 'data': jsonable(data)})
        try:
            receivers = self.client.publish(self.channel_for(cart_id), message)
            logger.debug(f"[CART] {event} for cart {cart_id} delivered to {receivers} subscribers")
            return True
        except (RedisError, TypeError, ValueError) as e:
            logger.warning(f"[CART] Could not publish {event} for cart {cart_id}: {e}")
            return False


_notifier: Optional[CartNotifier] = None


def init_cart_notifier(app: Flask) -> None:
    global _notifier
    _notifier = CartNotifier(app)
    app.extensions['cart_notifier'] = _notifier


def emit_cart_updated(cart_id: str, cart_data: Dict[str, Any]) -> bool:
    """Publish the full cart after a mutation. No-op when notifications are not initialized."""
    if _notifier is None:
        return False
    return _notifier.publish(cart_id, 'cart_updated', cart_data)


def emit_cart_suggestions(cart_id: str, suggestions) -> bool:
    """Publish suggested items for a cart (they are not added to it)."""
    if _notifier is None:
        return False
    return _notifier.publish(cart_id, 'cart_suggestions', suggestions)
