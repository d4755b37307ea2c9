"""Request-scoped cart handling: lock, load, operate, save."""
import logging
from typing import Any, Callable, NamedTuple, Optional

from cartapi.domain import Cart
from cartapi.errors import CartNotFound
from cartapi.services.keys import generate_guest_key, is_user_key
from cartapi.services.locks import cart_locks
from cartapi.telemetry import tracer
from cartapi.utils import clock

logger = logging.getLogger(__name__)

MAX_PROCESSED_REQUESTS = 50
SOURCES = ("woocommerce", "cocart", "other")


class Outcome(NamedTuple):
    cart: Cart
    result: Any = None
    replayed: bool = False


class CartService:
    def __init__(self, store, engine, locks=cart_locks):
        self.store = store
        self.engine = engine
        self.locks = locks

    def new_cart(self, cart_key: str = None, source: str = "cocart") -> Cart:
        now = clock.now()
        cart = Cart(
            cart_key=cart_key or generate_guest_key(),
            source=source if source in SOURCES else "other",
            created_at=now,
            expires_at=now + self.store.cart_ttl,
        )
        self.engine.recompute(cart)
        return cart

    def _open(self, cart_key: str, source: str) -> Cart:
        if self.store.is_retired(cart_key):
            raise CartNotFound(cart_key=cart_key)
        cart = self.store.load(cart_key)
        if cart is not None:
            return cart
        # Guest keys are never revived once expired; user keys are stable.
        fresh_key = cart_key if is_user_key(cart_key) else None
        if fresh_key is None:
            logger.info("No live cart for %s; starting a new one", cart_key)
        return self.new_cart(fresh_key, source)

    def read(self, cart_key: Optional[str], source: str = "cocart") -> Cart:
        """Load a cart without writing anything back."""
        if not cart_key:
            return self.new_cart(source=source)
        with self.locks.hold(cart_key):
            return self._open(cart_key, source)

    def mutate(
        self,
        cart_key: Optional[str],
        operation: Callable[[Cart], Any],
        request_id: str = None,
        source: str = "cocart",
    ) -> Outcome:
        """Run ``operation`` on the cart under its key lock and persist the result.

        A ``request_id`` already recorded on the cart is not applied twice.
        """
        if not cart_key:
            cart_key = generate_guest_key()
        with tracer.start_as_current_span("cart.mutate"), self.locks.hold(cart_key):
            # Observers only hear about changes that were saved.
            with self.engine.deferred_events():
                cart = self._open(cart_key, source)
                if request_id and request_id in cart.processed_requests:
                    logger.info("Request %s already applied to cart %s", request_id, cart.cart_key)
                    return Outcome(cart, None, True)
                result = operation(cart)
                if request_id:
                    cart.processed_requests = (cart.processed_requests + [request_id])[-MAX_PROCESSED_REQUESTS:]
                self.store.save(cart)
            return Outcome(cart, result, False)
