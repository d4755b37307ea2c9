"""Persistence of carts in the session table and the durable cart table.

Every save writes both rows in one transaction. Reads prefer the session row
and fall back to the durable row, promoting it back into the session table.
"""
import logging
from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from cartapi.domain import Cart
from cartapi.errors import CartNotFound, Conflict, StorageUnavailable
from cartapi.services import serialization
from cartapi.services.keys import content_hash
from cartapi.utils import clock
from cartapi.utils.db import storage_retry, transactional
from models import db
from models.cart import CartRecord, RetiredCartKey, SessionRecord
from models.legacy import LegacySession
from models.option import Option

logger = logging.getLogger(__name__)

TRANSFER_DONE_OPTION = "cart_sessions_transferred"
TRANSFER_CURSOR_OPTION = "cart_sessions_transfer_cursor"
EXPIRING_WINDOW = 6 * 60 * 60


class SessionStore:
    def __init__(self, session_ttl: int, cart_ttl: int):
        self.cart_ttl = int(cart_ttl)
        self.session_ttl = min(int(session_ttl), self.cart_ttl)

    # ------------------------------------------------------------------ reads

    def load(self, cart_key: str) -> Optional[Cart]:
        """Return the live cart for ``cart_key`` or None if absent or expired."""
        now = clock.now()
        try:
            row = SessionRecord.query.filter_by(cart_key=cart_key).first()
            if row is not None and row.cart_expiry >= now:
                return self._decode(row)

            durable = CartRecord.query.filter_by(cart_key=cart_key).first()
            if durable is None or durable.cart_expiry < now:
                return None
            cart = self._decode(durable)
            if cart is not None:
                self._promote(durable, now)
            return cart
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Failed to load cart %s: %s", cart_key, e)
            raise StorageUnavailable() from e

    def is_retired(self, cart_key: str) -> bool:
        row = db.session.get(RetiredCartKey, cart_key)
        return row is not None and row.expires_at >= clock.now()

    def get_rows(self, cart_key: str):
        return (
            SessionRecord.query.filter_by(cart_key=cart_key).first(),
            CartRecord.query.filter_by(cart_key=cart_key).first(),
        )

    def list_carts(self, page: int = 1, per_page: int = 20):
        query = CartRecord.query.order_by(CartRecord.cart_id.desc())
        total = query.count()
        rows = query.offset((page - 1) * per_page).limit(per_page).all()
        return rows, total

    def stats(self) -> dict:
        now = clock.now()
        by_source = dict(
            db.session.query(CartRecord.cart_source, func.count(CartRecord.cart_id))
            .group_by(CartRecord.cart_source)
            .all()
        )
        return {
            "in_session": SessionRecord.query.count(),
            "total": CartRecord.query.count(),
            "active": CartRecord.query.filter(CartRecord.cart_expiry > now).count(),
            "expiring": CartRecord.query.filter(
                CartRecord.cart_expiry.between(now, now + EXPIRING_WINDOW)
            ).count(),
            "expired": CartRecord.query.filter(CartRecord.cart_expiry < now).count(),
            "source": {
                "woocommerce": by_source.get("woocommerce", 0),
                "cocart": by_source.get("cocart", 0),
                "other": sum(v for k, v in by_source.items() if k not in ("woocommerce", "cocart")),
            },
        }

    # ----------------------------------------------------------------- writes

    def save(self, cart: Cart) -> Cart:
        """Upsert the session row and the durable row atomically."""
        now = clock.now()
        self._stamp(cart, now)
        try:
            self._write_rows(cart, now)
        except SQLAlchemyError as e:
            logger.error("Failed to save cart %s: %s", cart.cart_key, e)
            raise StorageUnavailable() from e
        return cart

    def delete(self, cart_key: str) -> bool:
        try:
            with transactional("Failed to delete cart"):
                removed = SessionRecord.query.filter_by(cart_key=cart_key).delete()
                removed += CartRecord.query.filter_by(cart_key=cart_key).delete()
        except SQLAlchemyError as e:
            raise StorageUnavailable() from e
        if removed:
            logger.info("Cart %s deleted", cart_key)
        return bool(removed)

    def rename(self, old_key: str, new_key: str) -> Cart:
        """Move the cart stored under ``old_key`` to ``new_key``.

        Fails with Conflict if ``new_key`` already holds a non-empty cart.
        """
        existing = self.load(new_key)
        if existing is not None and not existing.is_empty():
            raise Conflict(cart_key=new_key)
        cart = self.load(old_key)
        if cart is None:
            raise CartNotFound(cart_key=old_key)

        now = clock.now()
        cart.cart_key = new_key
        cart.expires_at = now + self.cart_ttl
        cart.content_hash = content_hash(cart)
        try:
            with transactional("Failed to rename cart"):
                for model in (SessionRecord, CartRecord):
                    model.query.filter_by(cart_key=new_key).delete()
                    model.query.filter_by(cart_key=old_key).delete()
                db.session.flush()
                self._stage_rows(cart, now)
                self._stage_retired(old_key, new_key, now)
        except SQLAlchemyError as e:
            raise StorageUnavailable() from e
        logger.info("Cart %s renamed to %s", old_key, new_key)
        return cart

    def hand_over(self, guest_key: str, replaced_by: str, cart: Cart = None) -> None:
        """Drop the guest cart and retire its key in favour of ``replaced_by``.

        When ``cart`` is given it is saved in the same transaction, so a failure
        leaves both carts as they were.
        """
        now = clock.now()
        try:
            with transactional("Failed to hand over cart"):
                if cart is not None:
                    self._stamp(cart, now)
                    self._stage_rows(cart, now)
                for model in (SessionRecord, CartRecord):
                    model.query.filter_by(cart_key=guest_key).delete()
                self._stage_retired(guest_key, replaced_by, now)
        except SQLAlchemyError as e:
            raise StorageUnavailable() from e
        logger.info("Cart %s handed over to %s", guest_key, replaced_by)

    def sweep_expired(self, now: int = None) -> int:
        """Delete every row whose expiry is in the past. Returns rows removed."""
        now = clock.now() if now is None else now
        with transactional("Failed to sweep expired carts"):
            removed = SessionRecord.query.filter(SessionRecord.cart_expiry < now).delete(
                synchronize_session=False
            )
            removed += CartRecord.query.filter(CartRecord.cart_expiry < now).delete(
                synchronize_session=False
            )
            RetiredCartKey.query.filter(RetiredCartKey.expires_at < now).delete(
                synchronize_session=False
            )
        logger.info("Swept %d expired cart rows", removed)
        return removed

    def transfer(self, rebuild: Callable[[Cart], Cart] = None, batch_size: int = 100, force: bool = False) -> int:
        """Copy valid legacy session rows into the durable cart table.

        Runs once per install. Progress is committed per batch so an interrupted
        transfer resumes where it stopped, and keys already present are skipped.
        """
        if Option.get_value(TRANSFER_DONE_OPTION) == "yes" and not force:
            logger.info("Session transfer already completed")
            return 0

        now = clock.now()
        cursor = int(Option.get_value(TRANSFER_CURSOR_OPTION, "0") or 0)
        moved = 0
        while True:
            rows = (
                LegacySession.query.filter(LegacySession.session_id > cursor)
                .order_by(LegacySession.session_id)
                .limit(batch_size)
                .all()
            )
            if not rows:
                break
            with transactional("Failed to transfer legacy sessions"):
                for row in rows:
                    cursor = row.session_id
                    if row.session_expiry < now:
                        continue
                    if CartRecord.query.filter_by(cart_key=row.session_key).first():
                        continue
                    try:
                        cart = serialization.from_legacy_session(row.session_key, row.session_value)
                    except serialization.SerializationError as e:
                        logger.warning("Skipping legacy session %s: %s", row.session_key, e)
                        continue
                    if rebuild is not None:
                        cart = rebuild(cart)
                    if cart.is_empty():
                        continue
                    cart.created_at = now
                    cart.expires_at = row.session_expiry
                    cart.content_hash = content_hash(cart)
                    db.session.add(self._new_row(CartRecord, cart))
                    moved += 1
                Option.set_value(TRANSFER_CURSOR_OPTION, str(cursor))

        with transactional("Failed to mark session transfer"):
            Option.set_value(TRANSFER_DONE_OPTION, "yes")
        logger.info("Transferred %d legacy sessions", moved)
        return moved

    # -------------------------------------------------------------- internals

    def _stamp(self, cart: Cart, now: int) -> None:
        if not cart.created_at:
            cart.created_at = now
        cart.expires_at = now + self.cart_ttl
        cart.content_hash = content_hash(cart)

    @storage_retry()
    def _write_rows(self, cart: Cart, now: int) -> None:
        with transactional("Failed to save cart"):
            self._stage_rows(cart, now)

    def _stage_rows(self, cart: Cart, now: int) -> None:
        value = serialization.dumps(cart)
        expiries = (
            (SessionRecord, min(now + self.session_ttl, cart.expires_at)),
            (CartRecord, cart.expires_at),
        )
        for model, expiry in expiries:
            row = model.query.filter_by(cart_key=cart.cart_key).with_for_update().first()
            if row is None:
                row = model(cart_key=cart.cart_key, cart_created=cart.created_at)
                db.session.add(row)
            row.cart_value = value
            row.cart_expiry = expiry
            row.cart_source = cart.source
            row.cart_hash = cart.content_hash

    def _stage_retired(self, cart_key: str, replaced_by: str, now: int) -> None:
        row = db.session.get(RetiredCartKey, cart_key)
        if row is None:
            row = RetiredCartKey(cart_key=cart_key)
            db.session.add(row)
        row.replaced_by = replaced_by
        row.retired_at = now
        row.expires_at = now + self.cart_ttl

    def _new_row(self, model, cart: Cart):
        return model(
            cart_key=cart.cart_key,
            cart_value=serialization.dumps(cart),
            cart_created=cart.created_at,
            cart_expiry=cart.expires_at,
            cart_source=cart.source,
            cart_hash=cart.content_hash,
        )

    def _promote(self, durable: CartRecord, now: int) -> None:
        try:
            with transactional("Failed to promote cart into session"):
                SessionRecord.query.filter_by(cart_key=durable.cart_key).delete()
                db.session.add(
                    SessionRecord(
                        cart_key=durable.cart_key,
                        cart_value=durable.cart_value,
                        cart_created=durable.cart_created,
                        cart_expiry=min(now + self.session_ttl, durable.cart_expiry),
                        cart_source=durable.cart_source,
                        cart_hash=durable.cart_hash,
                    )
                )
        except SQLAlchemyError:
            # The durable row is still authoritative; the next save recreates the session row.
            logger.warning("Could not promote cart %s into session", durable.cart_key)

    def _decode(self, row) -> Optional[Cart]:
        try:
            cart = serialization.loads(row.cart_value)
        except serialization.SerializationError as e:
            logger.error("Discarding unreadable cart %s: %s", row.cart_key, e)
            return None
        cart.cart_key = row.cart_key
        cart.created_at = row.cart_created
        cart.source = row.cart_source
        return cart
