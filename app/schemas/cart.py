from __future__ import annotations

from pydantic import BaseModel, Field


class CartItemAdd(BaseModel):
    product_id: int
    variant_id: int
    size_id: int
    quantity: int = Field(..., ge=1)
    additional_service_ids: list[int] = Field(default_factory=list)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1)


class ApplyDiscountPayload(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
