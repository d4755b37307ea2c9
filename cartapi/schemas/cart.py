from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


class AddItemRequest(BaseModel):
    id: Union[int, str]
    quantity: int = Field(default=1, ge=1)
    variation: Dict[str, str] = Field(default_factory=dict)
    variation_id: int = 0
    item_data: Dict[str, Any] = Field(default_factory=dict)
    return_item: bool = False

    @field_validator("id")
    @classmethod
    def _numeric_id(cls, value):
        if isinstance(value, str) and not value.strip().isdigit():
            raise ValueError("Product ID must be numeric")
        return int(value)


class BatchLine(BaseModel):
    id: int
    quantity: int = Field(default=1, ge=1)
    variation: Dict[str, str] = Field(default_factory=dict)
    variation_id: int = 0
    item_data: Dict[str, Any] = Field(default_factory=dict)


class AddItemsRequest(BaseModel):
    """Either ``items`` or a grouped product ``id`` with a ``quantity`` map."""

    id: Optional[int] = None
    quantity: Dict[int, int] = Field(default_factory=dict)
    items: List[BatchLine] = Field(default_factory=list)

    def lines(self) -> List[dict]:
        if self.items:
            return [line.model_dump() for line in self.items]
        return [{"id": child, "quantity": qty} for child, qty in self.quantity.items() if qty > 0]


class ItemKeyRequest(BaseModel):
    item_key: str = ""


class UpdateItemRequest(BaseModel):
    item_key: str = ""
    quantity: int = Field(ge=0)


class QuantityRequest(BaseModel):
    quantity: int = Field(ge=0)


class CouponRequest(BaseModel):
    code: str = Field(min_length=1)


class ShippingRequest(BaseModel):
    method: str = Field(min_length=1)
    package: int = 0


class FeeRequest(BaseModel):
    name: str = Field(min_length=1)
    amount: str
    taxable: bool = False
    tax_class: str = "standard"


class CustomerRequest(BaseModel):
    country: Optional[str] = None
    state: Optional[str] = None
    postcode: Optional[str] = None
    city: Optional[str] = None


class CouponPatch(BaseModel):
    apply: List[str] = Field(default_factory=list)
    remove: List[str] = Field(default_factory=list)


class BulkUpdateRequest(BaseModel):
    quantities: Dict[str, int] = Field(default_factory=dict)
    coupons: CouponPatch = Field(default_factory=CouponPatch)
    shipping_method: Optional[ShippingRequest] = None
    customer: Optional[CustomerRequest] = None
