from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from binwahab.models.inventory import InventoryTransactionType


class StockAdjustmentRequest(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: int = Field(..., description="Signed change to on-hand stock")
    reason: str = Field(..., min_length=3, max_length=255)

    @field_validator("quantity")
    @classmethod
    def non_zero(cls, v):
        if v == 0:
            raise ValueError("quantity must not be zero")
        return v


class StockLevelOut(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    stock: int
    reserved_stock: int
    available: int


class InventoryTransactionOut(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    type: InventoryTransactionType
    quantity: int
    reason: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DashboardOut(BaseModel):
    total_orders: int = 0
    paid_revenue: Decimal = Decimal("0.00")
    pending_orders: int = 0
    pending_returns: int = 0
    low_stock_items: int = 0
    error: Optional[str] = None
