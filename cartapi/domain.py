"""Cart state held in memory while a request operates on it.

Everything here is plain data: the engine mutates it, the pricing engine reads
it, and the session store serializes it.
"""
from decimal import Decimal
from typing import Any, Dict, List

from pydantic import BaseModel, Field

ZERO = Decimal("0.00")


class Fee(BaseModel):
    name: str
    amount: Decimal
    taxable: bool = False
    tax_class: str = "standard"


class Customer(BaseModel):
    country: str = ""
    state: str = ""
    postcode: str = ""
    city: str = ""


class CartItem(BaseModel):
    item_key: str
    product_id: int
    variation_id: int = 0
    quantity: int
    variation: Dict[str, str] = Field(default_factory=dict)
    cart_item_data: Dict[str, Any] = Field(default_factory=dict)

    # Snapshot taken from the catalog when the line was admitted.
    name: str = ""
    price: Decimal = ZERO
    tax_class: str = "standard"
    needs_shipping: bool = True
    backordered: bool = False
    categories: List[str] = Field(default_factory=list)
    slug: str = ""
    sku: str = ""
    image_url: str = ""
    weight: str = ""
    min_purchase: int = 1
    max_purchase: int = -1

    line_subtotal: Decimal = ZERO
    line_subtotal_tax: Decimal = ZERO
    line_total: Decimal = ZERO
    line_total_tax: Decimal = ZERO

    @property
    def stock_id(self) -> int:
        """Id whose stock this line consumes."""
        return self.variation_id or self.product_id


class CartTotals(BaseModel):
    subtotal: Decimal = ZERO
    subtotal_tax: Decimal = ZERO
    discount_total: Decimal = ZERO
    discount_tax: Decimal = ZERO
    shipping_total: Decimal = ZERO
    shipping_tax: Decimal = ZERO
    fee_total: Decimal = ZERO
    fee_tax: Decimal = ZERO
    total: Decimal = ZERO
    total_tax: Decimal = ZERO
    coupon_discounts: Dict[str, Decimal] = Field(default_factory=dict)


class Cart(BaseModel):
    cart_key: str
    items: Dict[str, CartItem] = Field(default_factory=dict)
    removed_items: Dict[str, CartItem] = Field(default_factory=dict)
    removed_positions: Dict[str, int] = Field(default_factory=dict)
    applied_coupons: List[str] = Field(default_factory=list)
    chosen_shipping_methods: Dict[int, str] = Field(default_factory=dict)
    fees: List[Fee] = Field(default_factory=list)
    customer: Customer = Field(default_factory=Customer)
    totals: CartTotals = Field(default_factory=CartTotals)

    created_at: int = 0
    expires_at: int = 0
    source: str = "cocart"
    content_hash: str = ""
    draft_order_id: int = 0
    processed_requests: List[str] = Field(default_factory=list)

    # Messages for the current response only; never persisted.
    notices: List[str] = Field(default_factory=list, exclude=True)

    def is_empty(self) -> bool:
        return not self.items

    def item_count(self) -> int:
        return sum(item.quantity for item in self.items.values())

    def quantity_in_cart(self, stock_id: int, exclude_key: str = None) -> int:
        """Quantity of ``stock_id`` held by lines other than ``exclude_key``."""
        return sum(
            item.quantity
            for key, item in self.items.items()
            if item.stock_id == stock_id and key != exclude_key
        )
