"""Read-only view of the product catalog consumed by the cart engine."""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from cartapi.errors import InvalidVariation


class AmbiguousVariation(InvalidVariation):
    message = "More than one variation matches the selected attributes."


class _ProductBase(BaseModel):
    id: int
    name: str
    slug: str = ""
    sku: str = ""
    price: Optional[Decimal] = None
    tax_class: str = "standard"
    manage_stock: bool = False
    stock_qty: Optional[int] = None
    in_stock: bool = True
    backorders_allowed: bool = False
    sold_individually: bool = False
    purchasable: bool = True
    min_purchase: Optional[int] = None
    max_purchase: Optional[int] = None
    needs_shipping: bool = True
    weight: str = ""
    dimensions: Dict[str, str] = Field(default_factory=dict)
    image_url: str = ""
    categories: List[str] = Field(default_factory=list)
    modified_at: Optional[datetime] = None


class SimpleProduct(_ProductBase):
    type: Literal["simple"] = "simple"


class VariableProduct(_ProductBase):
    type: Literal["variable"] = "variable"
    variations: List[int] = Field(default_factory=list)
    attributes: Dict[str, List[str]] = Field(default_factory=dict)


class VariationProduct(_ProductBase):
    type: Literal["variation"] = "variation"
    parent_id: int
    variation_attributes: Dict[str, str] = Field(default_factory=dict)


class GroupedProduct(_ProductBase):
    type: Literal["grouped"] = "grouped"
    children: List[int] = Field(default_factory=list)


ProductView = Annotated[
    Union[SimpleProduct, VariableProduct, VariationProduct, GroupedProduct],
    Field(discriminator="type"),
]


class CouponView(BaseModel):
    code: str
    discount_type: Literal["percent", "fixed_cart", "fixed_product"] = "fixed_cart"
    amount: Decimal = Decimal("0")
    minimum_amount: Optional[Decimal] = None
    maximum_amount: Optional[Decimal] = None
    product_ids: List[int] = Field(default_factory=list)
    excluded_product_ids: List[int] = Field(default_factory=list)
    product_categories: List[str] = Field(default_factory=list)
    excluded_product_categories: List[str] = Field(default_factory=list)
    usage_limit: Optional[int] = None
    usage_count: int = 0
    date_expires: Optional[datetime] = None
    individual_use: bool = False


class CatalogGateway(ABC):
    """Catalog lookups. Implementations return None for a miss."""

    @abstractmethod
    def get_product(self, product_id: int) -> Optional[ProductView]:
        ...

    @abstractmethod
    def get_variation(self, variation_id: int) -> Optional[VariationProduct]:
        ...

    @abstractmethod
    def resolve_variation(self, product_id: int, attributes: Dict[str, str]) -> int:
        """Return the variation id matching ``attributes``.

        Raises AmbiguousVariation when several match and InvalidVariation when none do.
        """

    @abstractmethod
    def get_coupon(self, code: str) -> Optional[CouponView]:
        ...

    @abstractmethod
    def reserved_stock(self, product_id: int, exclude_draft_order: int = 0) -> int:
        """Quantity held by draft orders other than ``exclude_draft_order``."""

    def list_products(self, page: int = 1, per_page: int = 10) -> List[ProductView]:
        return []


def match_variation(variations, attributes):
    """Pick the variation ids whose attributes agree with ``attributes``.

    A variation attribute with an empty value accepts any selection.
    """
    matches = []
    for variation in variations:
        if all(
            _accepts(value, attributes.get(name, ""))
            for name, value in variation.variation_attributes.items()
        ):
            matches.append(variation.id)
    return matches


def _accepts(wanted, chosen):
    if wanted == "":
        return chosen != ""
    return chosen.lower() == wanted.lower()
