from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from binwahab.models.returns import (
    ItemCondition, RefundMethod, RefundStatus, ReturnStatus
)


class ReturnItemCreate(BaseModel):
    order_item_id: int = Field(..., description="Order item being returned")
    quantity: int
    reason: Optional[str] = Field(None, max_length=255)
    condition: ItemCondition = ItemCondition.NEW


class ReturnCreate(BaseModel):
    order_id: int
    reason: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = None
    items: List[ReturnItemCreate] = Field(..., min_length=1)


class ReturnItemError(BaseModel):
    order_item_id: Optional[int] = None
    message: str


class ReturnItemOut(BaseModel):
    id: int
    order_item_id: int
    product_id: int
    variant_id: Optional[int] = None
    quantity: int
    reason: str
    condition: ItemCondition

    model_config = ConfigDict(from_attributes=True)


class RefundOut(BaseModel):
    id: int
    amount: Decimal
    method: Optional[RefundMethod] = None
    status: RefundStatus

    model_config = ConfigDict(from_attributes=True)


class ReturnOut(BaseModel):
    id: int
    order_id: int
    user_id: int
    status: ReturnStatus
    reason: str
    notes: Optional[str] = None
    decided_by: Optional[int] = None
    decided_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[ReturnItemOut] = []
    refund: Optional[RefundOut] = None

    model_config = ConfigDict(from_attributes=True)


class ReturnApprove(BaseModel):
    refund_amount: Decimal = Field(..., gt=0)
    refund_method: RefundMethod


class ReturnReject(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)


class ReturnFilter(BaseModel):
    order_id: Optional[int] = None
    status: Optional[ReturnStatus] = None
