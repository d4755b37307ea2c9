"""The cart state machine.

Every public mutation leaves the cart satisfying its invariants: positive
quantities, keys matching line content, unique coupons and totals recomputed
from the current content. Operations raise a CartError subclass and leave the
cart untouched when they are refused.
"""
import logging
import threading
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Dict, List

from cartapi.catalog.gateway import CatalogGateway
from cartapi.domain import Cart, CartItem, Customer, Fee
from cartapi.errors import (
    CartError,
    CartFull,
    CouponIneligible,
    CouponNotFound,
    InvalidRequest,
    InvalidVariation,
    ItemNotInCart,
    ItemNotInRemovedBuffer,
    MissingItemKey,
    NotPurchasable,
    ProductNotFound,
)
from cartapi.services import events
from cartapi.services.coupons import check_eligibility
from cartapi.services.keys import attribute_name, canonical_attributes, generate_item_key
from cartapi.services.pricing import TAX_EXCLUSIVE, TAX_MODES, PricingEngine, to_money
from cartapi.services.stock import admit

logger = logging.getLogger(__name__)


def _quantity(value, allow_zero=False) -> int:
    try:
        qty = int(value)
    except (TypeError, ValueError):
        raise InvalidRequest("Quantity must be a whole number.", param="quantity")
    if isinstance(value, float) and value != qty:
        raise InvalidRequest("Quantity must be a whole number.", param="quantity")
    if qty < 0 or (qty == 0 and not allow_zero):
        raise InvalidRequest("Quantity must be a positive number.", param="quantity")
    return qty


class CartEngine:
    def __init__(
        self,
        catalog: CatalogGateway,
        pricing: PricingEngine,
        sink=None,
        max_line_items: int = 100,
        tax_mode: str = TAX_EXCLUSIVE,
    ):
        if tax_mode not in TAX_MODES:
            raise ValueError(f"unknown tax mode {tax_mode!r}")
        self.catalog = catalog
        self.pricing = pricing
        self.sink = sink or events.LoggingEventSink()
        self.max_line_items = max_line_items
        self.tax_mode = tax_mode
        self._held = threading.local()

    # ---------------------------------------------------------- resolution

    def _resolve(self, product_id, variation_id=0, variation=None):
        """Find the purchasable view for an add request.

        Returns ``(view, product_id, variation_id, variation)`` with the ids and
        attributes normalized to the parent/variation pair.
        """
        try:
            product_id = int(product_id)
            variation_id = int(variation_id or 0)
        except (TypeError, ValueError):
            raise InvalidRequest("Product ID must be numeric.", param="id")
        product = self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFound(product_id=product_id)

        if product.type == "grouped":
            raise NotPurchasable(
                f'"{product.name}" is a grouped product; add its products individually.',
                product_id=product_id,
            )

        if product.type == "variation":
            variation_id = product.id
            product_id = product.parent_id
            product = self.catalog.get_product(product_id)
            if product is None:
                raise ProductNotFound(product_id=product_id)

        if product.type == "variable":
            chosen = canonical_attributes(variation)
            if not variation_id:
                variation_id = self.catalog.resolve_variation(product.id, chosen)
            view = self.catalog.get_variation(variation_id)
            if view is None or view.parent_id != product.id:
                raise InvalidVariation(product_id=product_id, variation_id=variation_id)
            variation = self._complete_attributes(product, view, chosen)
        else:
            if variation_id:
                raise InvalidVariation(
                    f'"{product.name}" has no variations.', product_id=product_id, variation_id=variation_id
                )
            view = product
            variation = {}

        if not view.purchasable or view.price is None:
            raise NotPurchasable(
                f'Sorry, "{view.name}" cannot be purchased.', product_id=view.id
            )
        return view, product_id, variation_id, variation

    def _complete_attributes(self, parent, view, chosen: Dict[str, str]) -> Dict[str, str]:
        result = {}
        missing = []
        for name, wanted in view.variation_attributes.items():
            value = chosen.get(attribute_name(name), "")
            if wanted:
                if value and value.lower() != wanted.lower():
                    raise InvalidVariation(
                        f'Invalid value posted for "{name}".', attribute=name, value=value
                    )
                result[name] = wanted
                continue
            if not value:
                missing.append(name)
                continue
            options = parent.attributes.get(name) or []
            if options and value.lower() not in {o.lower() for o in options}:
                raise InvalidVariation(
                    f'Invalid value posted for "{name}".', attribute=name, value=value
                )
            result[name] = value
        if missing:
            raise InvalidVariation(
                f"Missing attributes: {', '.join(missing)}.", missing=missing
            )
        return dict(sorted(result.items()))

    def _view_for(self, item: CartItem):
        if item.variation_id:
            view = self.catalog.get_variation(item.variation_id)
        else:
            view = self.catalog.get_product(item.product_id)
        if view is None:
            raise ProductNotFound(product_id=item.variation_id or item.product_id)
        return view

    @staticmethod
    def _snapshot(item: CartItem, view) -> None:
        item.name = view.name
        item.price = to_money(view.price or 0)
        item.tax_class = view.tax_class
        item.needs_shipping = view.needs_shipping
        item.categories = list(view.categories)
        item.slug = view.slug
        item.sku = view.sku
        item.image_url = view.image_url
        item.weight = view.weight
        item.min_purchase = view.min_purchase or 1
        item.max_purchase = view.max_purchase if view.max_purchase is not None else -1
        if view.sold_individually:
            item.max_purchase = 1

    def _emit(self, event) -> None:
        buffer = getattr(self._held, "events", None)
        if buffer is not None:
            buffer.append(event)
        else:
            self.sink.emit(event)

    @contextmanager
    def deferred_events(self):
        """Hold events raised on this thread until the block exits cleanly.

        Events are dropped when the block raises.
        """
        outer = getattr(self._held, "events", None)
        held = []
        self._held.events = held
        try:
            yield held
        finally:
            self._held.events = outer
        for event in held:
            self._emit(event)

    # ------------------------------------------------------------- items

    def _add_line(self, cart: Cart, product_id, quantity=1, variation_id=0, variation=None, cart_item_data=None):
        quantity = _quantity(quantity)
        view, product_id, variation_id, variation = self._resolve(product_id, variation_id, variation)
        item_data = dict(cart_item_data or {})
        key = generate_item_key(product_id, variation_id, variation, item_data)

        existing = cart.items.get(key)
        if existing is None and len(cart.items) >= self.max_line_items:
            raise CartFull(max_line_items=self.max_line_items)
        new_qty = quantity + (existing.quantity if existing else 0)
        admission = admit(
            self.catalog,
            view,
            new_qty,
            held_elsewhere=cart.quantity_in_cart(view.id, exclude_key=key),
            draft_order_id=cart.draft_order_id,
        )

        line = existing or CartItem(
            item_key=key,
            product_id=product_id,
            variation_id=variation_id,
            quantity=new_qty,
            variation=variation,
            cart_item_data=item_data,
        )
        line.quantity = admission.quantity
        line.backordered = admission.backordered
        self._snapshot(line, view)
        cart.items[key] = line
        return line, events.ItemAdded(cart.cart_key, key, product_id, variation_id, quantity)

    def add_item(self, cart: Cart, product_id, quantity=1, variation_id=0, variation=None, cart_item_data=None) -> CartItem:
        line, event = self._add_line(cart, product_id, quantity, variation_id, variation, cart_item_data)
        self._emit(event)
        self.recompute(cart)
        return line

    def add_items(self, cart: Cart, items: List[dict], grouped_id=None) -> List[CartItem]:
        """Add several lines at once; nothing is added unless every line is admitted.

        With ``grouped_id`` every entry must be a child of that grouped product.
        """
        if not items:
            raise InvalidRequest("No items to add.", param="items")
        if grouped_id is not None:
            grouped = self.catalog.get_product(int(grouped_id))
            if grouped is None:
                raise ProductNotFound(product_id=grouped_id)
            if grouped.type != "grouped":
                raise InvalidRequest(f'"{grouped.name}" is not a grouped product.', product_id=grouped.id)
            strays = [entry.get("id") for entry in items if int(entry.get("id", 0)) not in grouped.children]
            if strays:
                raise InvalidRequest("Products are not part of this group.", product_ids=strays)

        working = cart.model_copy(deep=True)
        added = []
        for entry in items:
            if entry.get("id") is None:
                raise InvalidRequest("Product ID is required.", param="id")
            added.append(
                self._add_line(
                    working,
                    entry["id"],
                    entry.get("quantity", 1),
                    entry.get("variation_id", 0),
                    entry.get("variation"),
                    entry.get("item_data") or entry.get("cart_item_data"),
                )
            )
        cart.items = working.items
        for _, event in added:
            self._emit(event)
        self.recompute(cart)
        return [cart.items[line.item_key] for line, _ in added]

    def _require_line(self, cart: Cart, item_key) -> CartItem:
        if not item_key:
            raise MissingItemKey()
        item = cart.items.get(item_key)
        if item is None:
            raise ItemNotInCart(item_key=item_key)
        return item

    def update_item(self, cart: Cart, item_key, quantity) -> dict:
        """Set a line's absolute quantity and report how it changed."""
        item = self._require_line(cart, item_key)
        quantity = _quantity(quantity, allow_zero=True)
        if quantity == 0:
            self.remove_item(cart, item_key)
            return {
                "verdict": "removed",
                "item_key": item_key,
                "quantity": 0,
                "message": f'"{item.name}" has been removed from cart.',
            }

        old_qty = item.quantity
        if quantity != old_qty:
            view = self._view_for(item)
            admission = admit(
                self.catalog,
                view,
                quantity,
                held_elsewhere=cart.quantity_in_cart(item.stock_id, exclude_key=item_key),
                draft_order_id=cart.draft_order_id,
            )
            item.quantity = admission.quantity
            item.backordered = admission.backordered
            self._emit(events.ItemQuantityChanged(cart.cart_key, item_key, old_qty, quantity))

        if quantity > old_qty:
            verdict = "increased"
            message = f'The quantity for "{item.name}" has increased to "{quantity}".'
        elif quantity < old_qty:
            verdict = "decreased"
            message = f'The quantity for "{item.name}" has decreased to "{quantity}".'
        else:
            verdict = "unchanged"
            message = f'The quantity for "{item.name}" has not changed.'
        self.recompute(cart)
        return {"verdict": verdict, "item_key": item_key, "quantity": quantity, "message": message}

    def remove_item(self, cart: Cart, item_key) -> CartItem:
        item = self._require_line(cart, item_key)
        cart.removed_positions[item_key] = list(cart.items).index(item_key)
        cart.removed_items[item_key] = item
        del cart.items[item_key]
        self._emit(events.ItemRemoved(cart.cart_key, item_key, item.product_id))
        self.recompute(cart)
        return item

    def restore_item(self, cart: Cart, item_key) -> CartItem:
        """Put a removed line back at its old position if stock still admits it."""
        if not item_key:
            raise MissingItemKey()
        removed = cart.removed_items.get(item_key)
        if removed is None:
            raise ItemNotInRemovedBuffer(item_key=item_key)

        view = self._view_for(removed)
        if not view.purchasable:
            raise NotPurchasable(f'Sorry, "{view.name}" cannot be purchased.', product_id=view.id)
        current = cart.items.get(item_key)
        if current is None and len(cart.items) >= self.max_line_items:
            raise CartFull(max_line_items=self.max_line_items)
        new_qty = removed.quantity + (current.quantity if current else 0)
        admission = admit(
            self.catalog,
            view,
            new_qty,
            held_elsewhere=cart.quantity_in_cart(removed.stock_id, exclude_key=item_key),
            draft_order_id=cart.draft_order_id,
        )

        line = removed.model_copy()
        line.quantity = admission.quantity
        line.backordered = admission.backordered
        self._snapshot(line, view)
        if current is not None:
            cart.items[item_key] = line
        else:
            ordered = list(cart.items.items())
            position = min(cart.removed_positions.get(item_key, len(ordered)), len(ordered))
            ordered.insert(position, (item_key, line))
            cart.items = dict(ordered)
        del cart.removed_items[item_key]
        cart.removed_positions.pop(item_key, None)
        self._emit(events.ItemRestored(cart.cart_key, item_key, line.product_id))
        self.recompute(cart)
        return line

    def clear(self, cart: Cart) -> Cart:
        cart.items = {}
        cart.removed_items = {}
        cart.removed_positions = {}
        cart.applied_coupons = []
        cart.chosen_shipping_methods = {}
        cart.fees = []
        self._emit(events.CartCleared(cart.cart_key))
        self.recompute(cart)
        return cart

    # ----------------------------------------------------------- coupons

    def _coupon(self, code):
        code = (code or "").strip().lower()
        if not code:
            raise InvalidRequest("Coupon code is required.", param="code")
        coupon = self.catalog.get_coupon(code)
        if coupon is None:
            raise CouponNotFound(f'Coupon "{code}" does not exist!', coupon=code)
        return coupon

    def _attach_coupon(self, cart: Cart, code) -> str:
        coupon = self._coupon(code)
        if coupon.code in cart.applied_coupons:
            return coupon.code
        applied = {} if coupon.individual_use else {c: self.catalog.get_coupon(c) for c in cart.applied_coupons}
        check_eligibility(coupon, cart, applied)
        if coupon.individual_use:
            for other in cart.applied_coupons:
                self._emit(events.CouponRemoved(cart.cart_key, other, reason="individual_use"))
            cart.applied_coupons = []
        cart.applied_coupons.append(coupon.code)
        self._emit(events.CouponApplied(cart.cart_key, coupon.code))
        return coupon.code

    def apply_coupon(self, cart: Cart, code) -> str:
        code = self._attach_coupon(cart, code)
        self.recompute(cart)
        return code

    def remove_coupon(self, cart: Cart, code) -> str:
        code = (code or "").strip().lower()
        if not code:
            raise InvalidRequest("Coupon code is required.", param="code")
        if code not in cart.applied_coupons:
            raise CouponNotFound(f'Coupon "{code}" is not applied to this cart.', coupon=code)
        cart.applied_coupons.remove(code)
        self._emit(events.CouponRemoved(cart.cart_key, code))
        self.recompute(cart)
        return code

    # ------------------------------------------------ shipping, fees, customer

    def set_shipping_method(self, cart: Cart, method_id, package_id=0) -> None:
        try:
            package_id = int(package_id or 0)
        except (TypeError, ValueError):
            raise InvalidRequest("Package must be numeric.", param="package")
        if method_id not in self.pricing.shipping_methods:
            raise InvalidRequest(f'Shipping method "{method_id}" is not available.', param="method")
        packages = {p["package_id"] for p in self.pricing.shipping_packages(cart)}
        if package_id not in packages:
            raise InvalidRequest("No shipping package matches the request.", package=package_id)
        cart.chosen_shipping_methods[package_id] = method_id
        self.recompute(cart)

    def add_fee(self, cart: Cart, name, amount, taxable=False, tax_class="standard") -> Fee:
        name = (name or "").strip()
        if not name:
            raise InvalidRequest("Fee name is required.", param="name")
        try:
            amount = to_money(Decimal(str(amount)))
        except (InvalidOperation, ValueError):
            raise InvalidRequest("Fee amount must be numeric.", param="amount")
        fee = Fee(name=name, amount=amount, taxable=bool(taxable), tax_class=tax_class or "standard")
        cart.fees = [f for f in cart.fees if f.name != name] + [fee]
        self.recompute(cart)
        return fee

    def remove_fees(self, cart: Cart) -> None:
        cart.fees = []
        self.recompute(cart)

    def set_customer(self, cart: Cart, **location) -> Customer:
        data = cart.customer.model_dump()
        data.update({k: str(v).strip() for k, v in location.items() if k in data and v is not None})
        data["country"] = data["country"].upper()
        cart.customer = Customer(**data)
        self.recompute(cart)
        return cart.customer

    # ------------------------------------------------------------ derived

    def merge(self, target: Cart, source: Cart) -> List[dict]:
        """Fold ``source`` lines and coupons into ``target``.

        Lines or coupons that fail admission are skipped and reported.
        """
        warnings = []
        for key, item in source.items.items():
            try:
                _, event = self._add_line(
                    target,
                    item.product_id,
                    item.quantity,
                    item.variation_id,
                    item.variation,
                    item.cart_item_data,
                )
                self._emit(event)
            except CartError as e:
                logger.info("Dropped line %s while merging %s: %s", key, source.cart_key, e.code)
                warnings.append({"item_key": key, "product_id": item.product_id, "code": e.code, "message": e.message})
        for code in source.applied_coupons:
            try:
                self._attach_coupon(target, code)
            except CartError as e:
                warnings.append({"coupon": code, "code": e.code, "message": e.message})
        self.recompute(target)
        return warnings

    def refresh(self, cart: Cart) -> Cart:
        """Reload line snapshots from the catalog, dropping lines that can no longer be bought."""
        for key, item in list(cart.items.items()):
            try:
                view = self._view_for(item)
            except ProductNotFound:
                view = None
            if view is None or not view.purchasable or view.price is None:
                del cart.items[key]
                cart.notices.append(
                    f'"{item.name or item.product_id}" has been removed from your cart because it can no longer be purchased.'
                )
                continue
            self._snapshot(item, view)
        return cart

    def recompute(self, cart: Cart) -> None:
        """Drop coupons that no longer qualify, then reprice the cart."""
        coupons = {}
        for code in list(cart.applied_coupons):
            coupon = self.catalog.get_coupon(code)
            if coupon is None:
                cart.applied_coupons.remove(code)
                cart.notices.append(f'Coupon "{code}" has been removed because it no longer exists.')
                self._emit(events.CouponRemoved(cart.cart_key, code, reason="missing"))
                continue
            coupons[code] = coupon
        for code, coupon in list(coupons.items()):
            try:
                check_eligibility(coupon, cart)
            except CouponIneligible as e:
                cart.applied_coupons.remove(code)
                del coupons[code]
                cart.notices.append(e.message)
                self._emit(events.CouponRemoved(cart.cart_key, code, reason=e.data.get("reason", "ineligible")))

        result = self.pricing.recalculate(cart, self.tax_mode, cart.customer, coupons)
        for key, line in result.lines.items():
            item = cart.items[key]
            item.line_subtotal = line.line_subtotal
            item.line_subtotal_tax = line.line_subtotal_tax
            item.line_total = line.line_total
            item.line_total_tax = line.line_total_tax
        cart.totals = result.totals
        self._emit(events.TotalsRecalculated(cart.cart_key, result.totals.total, result.totals.total_tax))

    def rebuild(self, cart: Cart) -> Cart:
        """Refresh snapshots and reprice; used for forced recalculation and migrated carts."""
        self.refresh(cart)
        self.recompute(cart)
        return cart

    def calculate(self, cart: Cart):
        return self.rebuild(cart).totals

    def shipping_packages(self, cart: Cart) -> List[dict]:
        return self.pricing.shipping_packages(cart)
