from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

DiscountType = Literal["percentage", "fixed_amount"]
UsageType = Literal["one_time", "once_per_user", "unlimited"]


class DiscountCodeCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0)
    min_order_amount: Decimal = Field(default=Decimal("0"), ge=0)
    usage_type: UsageType = "unlimited"
    max_uses: Optional[int] = Field(default=None, ge=1)
    active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class DiscountCodeUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(default=None, gt=0)
    min_order_amount: Optional[Decimal] = Field(default=None, ge=0)
    usage_type: Optional[UsageType] = None
    max_uses: Optional[int] = Field(default=None, ge=1)
    active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
