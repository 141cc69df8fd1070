from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List
from decimal import Decimal
from datetime import datetime

from binwahab.models.ecommerce import (
    OrderStatus, PaymentStatus, PaymentMethod, PaymentGatewayName
)
from binwahab.models.catalog import ZoneType


# --- ADDRESS ---
class AddressBase(BaseModel):
    full_name: Optional[str] = Field(None, max_length=120)
    street: str = Field(..., min_length=3, max_length=255)
    city: str = Field(..., min_length=2, max_length=120)
    state: str = Field(..., min_length=2, max_length=120)
    postal_code: str = Field(..., min_length=4, max_length=20)
    country: str = Field("MY", min_length=2, max_length=2)
    phone: Optional[str] = Field(None, max_length=40)


class AddressCreate(AddressBase):
    is_default: bool = False


class AddressOut(AddressBase):
    id: int
    is_default: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ShippingInfo(BaseModel):
    """Either an existing address id, or the fields of a new address."""
    address_id: Optional[int] = None
    address: Optional[AddressBase] = None

    @model_validator(mode="after")
    def check_one_source(self):
        if self.address_id is None and self.address is None:
            raise ValueError("address_id or address is required")
        return self


# --- CART ITEM ---
class CartItemCreate(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: int = Field(..., ge=1, le=999)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=0, le=999)


class CartItemOut(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    quantity: int
    unit_price: Decimal

    model_config = ConfigDict(from_attributes=True)


# --- CART ---
class CartOut(BaseModel):
    id: Optional[int] = None
    items: List[CartItemOut] = []
    subtotal: Decimal = Decimal("0.00")


# --- SHIPPING ---
class ShippingQuoteRequest(BaseModel):
    state: str = Field(..., min_length=2)
    order_value: Decimal = Field(..., ge=0)


class ShippingQuoteOut(BaseModel):
    zone: ZoneType
    cost: Decimal


# --- ORDER ITEM ---
class OrderItemOut(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    quantity: int
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


# --- ORDER ---
class OrderCreate(BaseModel):
    shipping: ShippingInfo
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY


class OrderOut(BaseModel):
    id: int
    user_id: int
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    payment_gateway: Optional[PaymentGatewayName] = None
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    total: Decimal
    currency: str
    shipping_address_id: int
    gateway_session_id: Optional[str] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[OrderItemOut] = []

    model_config = ConfigDict(from_attributes=True)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


# --- CHECKOUT ---
class CheckoutRequest(BaseModel):
    gateway: PaymentGatewayName
    shipping: ShippingInfo


class CheckoutResponse(BaseModel):
    order_id: int
    gateway: PaymentGatewayName
    session_id: str
    checkout_url: Optional[str] = None
    amount: int = Field(..., description="Amount in the smallest currency unit")
    currency: str


class PaymentRedirectOut(BaseModel):
    order_id: int
    status: OrderStatus
    payment_status: PaymentStatus
