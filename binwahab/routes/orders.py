from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from binwahab.core.auth_dependencies import get_current_user
from binwahab.core.database import get_db
from binwahab.models.ecommerce import OrderStatus, PaymentStatus
from binwahab.models.users import User
from binwahab.schemas.ecommerce import OrderCreate, OrderOut
from binwahab.schemas.users import PaginatedResponse, PaginationParams
from binwahab.services.order_service import OrderService


order_router = APIRouter(prefix="/orders", tags=["Orders"])


@order_router.post("",
    response_model=OrderOut,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
    description="Create an order from the current cart"
)
def create_order(
    data: OrderCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Create an order from the server-side cart.

    - **shipping.address_id**: one of your saved addresses, or
    - **shipping.address**: a new address, saved with the order
    - **payment_method**: defaults to cash on delivery

    Stock is reserved for every tracked item and the cart is emptied.
    Fails with `EMPTY_CART` or `INSUFFICIENT_STOCK` without writing anything.
    """
    return OrderService.create_order(db, current_user, data)


@order_router.get("", response_model=PaginatedResponse[OrderOut])
def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status", description="Filter by order status"),
    payment_status: Optional[PaymentStatus] = Query(None, description="Filter by payment status"),
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Your orders, newest first. Admins see every order."""
    orders, total = OrderService.list_orders(db, current_user, pagination, status_filter, payment_status)
    return PaginatedResponse[OrderOut](
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
        items=[OrderOut.model_validate(o) for o in orders],
    )


@order_router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int = Path(..., description="Order ID"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return OrderService.get_order(db, current_user, order_id)


@order_router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int = Path(..., description="Order ID"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Cancel an unpaid order that is still PENDING. Reserved stock is released.
    """
    return OrderService.cancel_order(db, current_user, order_id)
