from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from binwahab.core.auth_dependencies import require_admin
from binwahab.core.database import get_db
from binwahab.models.inventory import InventoryTransactionType
from binwahab.models.users import User
from binwahab.schemas.ecommerce import OrderOut, OrderStatusUpdate
from binwahab.schemas.inventory import (
    DashboardOut, InventoryTransactionOut, StockAdjustmentRequest, StockLevelOut
)
from binwahab.schemas.users import PaginatedResponse, PaginationParams
from binwahab.services.dashboard_service import DashboardService
from binwahab.services.inventory import InventoryService
from binwahab.services.order_service import OrderService


admin_router = APIRouter(prefix="/admin", tags=["Admin"])


# ================================
# ORDERS
# ================================

@admin_router.patch("/orders/{order_id}", response_model=OrderOut)
def update_order_status(
    data: OrderStatusUpdate,
    order_id: int = Path(..., description="Order ID"),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Move an order along PENDING -> PROCESSING -> SHIPPED -> DELIVERED, or cancel it.

    - Cancelling an unpaid order releases its reservations
    - Cancelling a paid order puts its stock back on hand
    - DELIVERED starts the return window
    """
    return OrderService.update_status(db, order_id, data.status, current_user)


# ================================
# INVENTORY
# ================================

@admin_router.post("/inventory/adjust", response_model=StockLevelOut)
def adjust_stock(
    data: StockAdjustmentRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Manual stock correction.

    - **quantity**: signed change to on-hand stock
    - Stock can never drop below what is reserved for open orders
    """
    return InventoryService.adjust_stock(db, data, current_user.id)


@admin_router.get("/inventory/transactions", response_model=PaginatedResponse[InventoryTransactionOut])
def list_inventory_transactions(
    product_id: Optional[int] = Query(None, description="Filter by product"),
    tx_type: Optional[InventoryTransactionType] = Query(None, alias="type", description="Filter by type"),
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    items, total = InventoryService.list_transactions(db, pagination, product_id, tx_type)
    return PaginatedResponse[InventoryTransactionOut](
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
        items=[InventoryTransactionOut.model_validate(t) for t in items],
    )


@admin_router.get("/inventory/{product_id}", response_model=StockLevelOut)
def get_stock_level(
    product_id: int = Path(..., description="Product ID"),
    variant_id: Optional[int] = Query(None, description="Variant ID"),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return InventoryService.stock_level(db, product_id, variant_id)


# ================================
# DASHBOARD
# ================================

@admin_router.get("/dashboard", response_model=DashboardOut)
def dashboard(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return DashboardService.summary(db)
