from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class AddressPayload(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    company: Optional[str] = Field(default=None, max_length=200)
    address_line1: str = Field(..., min_length=1, max_length=255)
    address_line2: Optional[str] = Field(default=None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state_province: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=1, max_length=40)


class CheckoutRequest(BaseModel):
    email: EmailStr
    phone: str = Field(..., min_length=1, max_length=40)
    shipping_address: AddressPayload
    billing_address: Optional[AddressPayload] = None
    same_as_shipping: bool = False
    payment_method: Optional[str] = Field(default=None, max_length=30)
    notes: Optional[str] = None
    requires_invoice: bool = False
    nip: Optional[str] = Field(default=None, max_length=20)

    @model_validator(mode="after")
    def _billing_required(self) -> "CheckoutRequest":
        if not self.same_as_shipping and self.billing_address is None:
            raise ValueError("billing_address is required unless same_as_shipping is true")
        if self.requires_invoice and not (self.nip or "").strip():
            raise ValueError("nip is required when requires_invoice is true")
        return self

    def resolved_billing_address(self) -> AddressPayload:
        if self.same_as_shipping or self.billing_address is None:
            return self.shipping_address
        return self.billing_address


class OrderStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)
    payment_status: Optional[str] = None
