"""Translate between the v1 wire format and the v2 operations."""
from typing import Any, Dict

from pydantic import BaseModel, Field

from cartapi.routes.v2.serializers import money


class V1AddItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1)
    variation_id: int = 0
    variation: Dict[str, str] = Field(default_factory=dict)
    cart_item_data: Dict[str, Any] = Field(default_factory=dict)
    return_cart: bool = False

    def to_v2(self) -> dict:
        return {
            "id": self.product_id,
            "quantity": self.quantity,
            "variation_id": self.variation_id,
            "variation": self.variation,
            "item_data": self.cart_item_data,
        }


class V1ItemRequest(BaseModel):
    cart_item_key: str = ""
    quantity: int = Field(default=1, ge=0)
    return_cart: bool = False


def v1_item(item) -> dict:
    return {
        "key": item.item_key,
        "product_id": item.product_id,
        "variation_id": item.variation_id,
        "variation": item.variation,
        "quantity": item.quantity,
        "data_hash": item.item_key,
        "line_tax_data": {"subtotal": money(item.line_subtotal_tax), "total": money(item.line_total_tax)},
        "line_subtotal": money(item.line_subtotal),
        "line_subtotal_tax": money(item.line_subtotal_tax),
        "line_total": money(item.line_total),
        "line_tax": money(item.line_total_tax),
        "product_name": item.name,
        "product_price": money(item.price),
        **({"cart_item_data": item.cart_item_data} if item.cart_item_data else {}),
    }


def v1_cart(cart):
    if cart.is_empty():
        return []
    return {key: v1_item(item) for key, item in cart.items.items()}


def v1_totals(cart) -> dict:
    totals = cart.totals
    lines = cart.items.values()
    return {
        "subtotal": money(totals.subtotal),
        "subtotal_tax": money(totals.subtotal_tax),
        "shipping_total": money(totals.shipping_total),
        "shipping_tax": money(totals.shipping_tax),
        "discount_total": money(totals.discount_total),
        "discount_tax": money(totals.discount_tax),
        "cart_contents_total": money(sum(i.line_total for i in lines)),
        "cart_contents_tax": money(sum(i.line_total_tax for i in lines)),
        "fee_total": money(totals.fee_total),
        "fee_tax": money(totals.fee_tax),
        "total": money(totals.total),
        "total_tax": money(totals.total_tax),
    }
