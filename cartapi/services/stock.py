from typing import NamedTuple

from cartapi.errors import (
    AboveMaxPurchase,
    BelowMinPurchase,
    InsufficientStock,
    SoldIndividuallyExceeded,
)


class Admission(NamedTuple):
    quantity: int
    backordered: bool


def remaining_stock(catalog, product, draft_order_id: int = 0):
    """Stock left after reservations held by other draft orders, or None if untracked."""
    if not product.manage_stock or product.stock_qty is None:
        return None
    return product.stock_qty - catalog.reserved_stock(product.id, exclude_draft_order=draft_order_id)


def admit(catalog, product, requested_qty: int, held_elsewhere: int = 0, draft_order_id: int = 0) -> Admission:
    """Check whether ``requested_qty`` of ``product`` may sit on one cart line.

    ``held_elsewhere`` is the quantity of the same stock already taken by other
    lines of the cart. Raises the matching CartError when the line is refused.
    """
    backordered = False
    if not product.manage_stock:
        if not product.in_stock:
            raise InsufficientStock(
                f'You cannot add "{product.name}" to the cart because the product is out of stock.',
                product_id=product.id,
                available=0,
                requested=requested_qty,
            )
    else:
        available = remaining_stock(catalog, product, draft_order_id) - held_elsewhere
        if requested_qty > available:
            if not product.backorders_allowed:
                raise InsufficientStock(
                    f'You cannot add that amount of "{product.name}" to the cart because there is not enough stock ({max(available, 0)} remaining).',
                    product_id=product.id,
                    available=max(available, 0),
                    requested=requested_qty,
                )
            backordered = True

    if product.min_purchase and requested_qty < product.min_purchase:
        raise BelowMinPurchase(
            f'The minimum quantity that can be added to the cart for "{product.name}" is {product.min_purchase}.',
            product_id=product.id,
            min_purchase=product.min_purchase,
            requested=requested_qty,
        )
    max_purchase = product.max_purchase
    if max_purchase is not None and max_purchase >= 0 and requested_qty > max_purchase:
        raise AboveMaxPurchase(
            f'The maximum quantity that can be added to the cart for "{product.name}" is {max_purchase}.',
            product_id=product.id,
            max_purchase=max_purchase,
            requested=requested_qty,
        )
    if product.sold_individually and requested_qty > 1:
        raise SoldIndividuallyExceeded(
            f'You cannot add another "{product.name}" to your cart.',
            product_id=product.id,
        )
    return Admission(requested_qty, backordered)
