"""Guest to customer cart hand-over at login, and the logout policy."""
import logging
import threading
from contextlib import ExitStack

from cartapi.errors import Conflict
from cartapi.services.keys import generate_guest_key, is_user_key
from cartapi.services.locks import cart_locks
from cartapi.utils import clock

logger = logging.getLogger(__name__)

LOGIN_DEDUP_WINDOW = 5


class IdentityService:
    def __init__(self, store, engine, locks=cart_locks, preserve_on_logout=True, dedup_window=LOGIN_DEDUP_WINDOW):
        self.store = store
        self.engine = engine
        self.locks = locks
        self.preserve_on_logout = preserve_on_logout
        self.dedup_window = dedup_window
        self._recent = {}
        self._recent_guard = threading.Lock()

    def login(self, user_id, guest_key=None, client_ip=None) -> dict:
        """Make the guest cart (if any) belong to ``user_id``.

        An empty user cart takes the guest cart by rename; otherwise the guest
        lines are merged in and the guest cart is deleted. Repeated calls for the
        same user and address inside the dedup window return the first result.
        """
        user_key = str(user_id)
        marker = (user_key, client_ip or "", clock.now() // self.dedup_window)
        with self._recent_guard:
            self._prune()
            cached = self._recent.get(marker)
        if cached is not None:
            logger.info("Duplicate login for user %s answered from cache", user_key)
            return dict(cached, duplicate=True)

        result = {"cart_key": user_key, "warnings": [], "transition": "none"}
        if guest_key and guest_key != user_key and not is_user_key(guest_key):
            with ExitStack() as stack:
                for key in sorted((guest_key, user_key)):
                    stack.enter_context(self.locks.hold(key))
                result.update(self._hand_over(guest_key, user_key))

        with self._recent_guard:
            self._recent[marker] = result
        return result

    def _hand_over(self, guest_key, user_key) -> dict:
        guest = self.store.load(guest_key)
        if guest is None:
            return {"transition": "none"}
        if guest.is_empty():
            self.store.hand_over(guest_key, user_key)
            return {"transition": "discarded"}

        user_cart = self.store.load(user_key)
        if user_cart is None or user_cart.is_empty():
            try:
                cart = self.store.rename(guest_key, user_key)
            except Conflict:
                user_cart = self.store.load(user_key)
            else:
                self.engine.recompute(cart)
                self.store.save(cart)
                logger.info("Guest cart %s now belongs to user %s", guest_key, user_key)
                return {"transition": "renamed"}

        with self.engine.deferred_events():
            warnings = self.engine.merge(user_cart, guest)
            self.store.hand_over(guest_key, user_key, user_cart)
        logger.info(
            "Merged guest cart %s into user %s with %d warnings", guest_key, user_key, len(warnings)
        )
        return {"transition": "merged", "warnings": warnings}

    def logout(self, user_id) -> str:
        """Forget the session for ``user_id`` and hand back a fresh guest key."""
        user_key = str(user_id)
        if not self.preserve_on_logout:
            with self.locks.hold(user_key):
                self.store.delete(user_key)
            logger.info("Cart for user %s deleted at logout", user_key)
        return generate_guest_key()

    def _prune(self):
        current = clock.now() // self.dedup_window
        for marker in [m for m in self._recent if m[2] < current - 1]:
            del self._recent[marker]
