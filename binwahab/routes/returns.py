from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from binwahab.core.auth_dependencies import get_current_user, require_admin
from binwahab.core.database import get_db
from binwahab.models.returns import ReturnStatus
from binwahab.models.users import User
from binwahab.schemas.returns import ReturnApprove, ReturnCreate, ReturnFilter, ReturnOut, ReturnReject
from binwahab.schemas.users import PaginatedResponse, PaginationParams
from binwahab.services.return_service import ReturnService


return_router = APIRouter(prefix="/returns", tags=["Returns"])


@return_router.post("", response_model=ReturnOut, status_code=status.HTTP_201_CREATED)
def create_return(
    data: ReturnCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Request a return for a delivered order.

    Every problem is reported at once under `errors`, each with the
    `order_item_id` it concerns (or null for order-level problems).
    """
    return ReturnService.create_return(db, current_user, data)


@return_router.get("", response_model=PaginatedResponse[ReturnOut])
def list_returns(
    order_id: Optional[int] = Query(None, description="Filter by order"),
    status_filter: Optional[ReturnStatus] = Query(None, alias="status", description="Filter by status"),
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    filters = ReturnFilter(order_id=order_id, status=status_filter)
    returns, total = ReturnService.list_returns(db, current_user, filters, pagination)
    return PaginatedResponse[ReturnOut](
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
        items=[ReturnOut.model_validate(r) for r in returns],
    )


@return_router.get("/{return_id}", response_model=ReturnOut)
def get_return(
    return_id: int = Path(..., description="Return ID"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ReturnService.get_return(db, current_user, return_id)


@return_router.post("/{return_id}/approve", response_model=ReturnOut)
def approve_return(
    data: ReturnApprove,
    return_id: int = Path(..., description="Return ID"),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Approve a pending return (admin).

    - **refund_amount**: positive, at most the order total
    - **refund_method**: CREDIT_CARD, BANK_TRANSFER, STORE_CREDIT or E_WALLET

    Returned units go back on hand.
    """
    return ReturnService.approve_return(db, return_id, data, current_user)


@return_router.post("/{return_id}/reject", response_model=ReturnOut)
def reject_return(
    data: ReturnReject,
    return_id: int = Path(..., description="Return ID"),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return ReturnService.reject_return(db, return_id, data, current_user)
