from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class StockQuantityUpdate(BaseModel):
    stock_quantity: int = Field(..., ge=0)
    use_stock: Optional[bool] = None


class StockRestock(BaseModel):
    quantity: int = Field(..., ge=1)
