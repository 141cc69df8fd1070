# binwahab/services/return_service.py
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from binwahab.core.audit import audit_log
from binwahab.core.config import settings
from binwahab.core.exceptions import (
    ConflictException, ForbiddenException, NotFoundException,
    ShopException, ValidationException
)
from binwahab.models.ecommerce import Order, OrderItem, OrderStatus
from binwahab.models.inventory import InventoryTransactionType
from binwahab.models.returns import (
    ItemCondition, Refund, RefundStatus, Return, ReturnItem, ReturnStatus
)
from binwahab.models.users import User
from binwahab.schemas.returns import (
    ReturnApprove, ReturnCreate, ReturnFilter, ReturnItemError, ReturnReject
)
from binwahab.schemas.users import PaginationParams
from binwahab.services.inventory import InventoryService
from binwahab.services.pricing import quantize

logger = logging.getLogger(__name__)

# Share of the line value kept back, by item condition
RESTOCKING_FEE_RATES = {
    ItemCondition.USED: Decimal("0.15"),
}

OPEN_RETURN_STATUSES = (ReturnStatus.PENDING, ReturnStatus.APPROVED)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ReturnService:

    # ================================
    # VALIDATION
    # ================================

    @staticmethod
    def _returned_quantity(db: Session, order_item_id: int) -> int:
        """Units of an order item already claimed by pending or approved returns"""
        return (
            db.query(func.coalesce(func.sum(ReturnItem.quantity), 0))
            .select_from(ReturnItem)
            .join(Return, ReturnItem.return_id == Return.id)
            .filter(
                ReturnItem.order_item_id == order_item_id,
                Return.status.in_(OPEN_RETURN_STATUSES),
            )
            .scalar()
        )

    @staticmethod
    def validate(db: Session, order: Order, data: ReturnCreate, now: Optional[datetime] = None) -> List[ReturnItemError]:
        """Collect every problem with the request instead of stopping at the first"""
        errors: List[ReturnItemError] = []
        now = now or datetime.now(timezone.utc)

        if order.status != OrderStatus.DELIVERED:
            errors.append(ReturnItemError(message="Order must be delivered before initiating a return"))
        else:
            delivered_at = order.delivered_at or order.updated_at or order.created_at
            if delivered_at and now > _as_utc(delivered_at) + timedelta(days=settings.RETURN_WINDOW_DAYS):
                errors.append(ReturnItemError(
                    message=f"Return window of {settings.RETURN_WINDOW_DAYS} days has expired"
                ))

        if len(data.items) > settings.RETURN_MAX_ITEMS:
            errors.append(ReturnItemError(
                message=f"Cannot return more than {settings.RETURN_MAX_ITEMS} items in one request"
            ))

        order_items = {item.id: item for item in order.items}
        requested = {}

        for line in data.items:
            order_item = order_items.get(line.order_item_id)
            if not order_item:
                errors.append(ReturnItemError(
                    order_item_id=line.order_item_id,
                    message=f"Order item {line.order_item_id} does not belong to order {order.id}",
                ))
                continue

            if line.quantity <= 0:
                errors.append(ReturnItemError(
                    order_item_id=line.order_item_id,
                    message="Return quantity must be greater than 0",
                ))
            else:
                # Duplicate lines for the same item count together
                requested[order_item.id] = requested.get(order_item.id, 0) + line.quantity
                remaining = order_item.quantity - ReturnService._returned_quantity(db, order_item.id)
                if requested[order_item.id] > remaining:
                    errors.append(ReturnItemError(
                        order_item_id=line.order_item_id,
                        message=(
                            f"Return quantity exceeds returnable quantity ({remaining}) "
                            f"for order item {order_item.id}"
                        ),
                    ))

            reason = line.reason or data.reason
            if len(reason.strip()) < settings.RETURN_MIN_REASON_LENGTH:
                errors.append(ReturnItemError(
                    order_item_id=line.order_item_id,
                    message=f"Return reason must be at least {settings.RETURN_MIN_REASON_LENGTH} characters",
                ))

        return errors

    @staticmethod
    def estimate_refund(order_items: dict, data: ReturnCreate) -> Decimal:
        total = Decimal("0")
        for line in data.items:
            line_value = order_items[line.order_item_id].price * line.quantity
            fee = line_value * RESTOCKING_FEE_RATES.get(line.condition, Decimal("0"))
            total += line_value - fee
        return quantize(total)

    # ================================
    # CREATE
    # ================================

    @staticmethod
    def create_return(db: Session, user: User, data: ReturnCreate) -> Return:
        try:
            order = (
                db.query(Order)
                .filter(Order.id == data.order_id)
                .with_for_update()
                .first()
            )
            if not order:
                raise NotFoundException("Order not found")

            if order.user_id != user.id and not user.is_admin:
                raise ForbiddenException("You do not have access to this order")

            errors = ReturnService.validate(db, order, data)
            if errors:
                raise ValidationException(
                    "Return validation failed",
                    code="RETURN_VALIDATION_FAILED",
                    details={"errors": [e.model_dump() for e in errors]},
                )

            order_items = {item.id: item for item in order.items}
            return_request = Return(
                order_id=order.id,
                user_id=order.user_id,
                status=ReturnStatus.PENDING,
                reason=data.reason,
                notes=data.notes,
                items=[
                    ReturnItem(
                        order_item_id=line.order_item_id,
                        product_id=order_items[line.order_item_id].product_id,
                        variant_id=order_items[line.order_item_id].variant_id,
                        quantity=line.quantity,
                        reason=line.reason or data.reason,
                        condition=line.condition,
                    )
                    for line in data.items
                ],
                refund=Refund(
                    amount=ReturnService.estimate_refund(order_items, data),
                    status=RefundStatus.PENDING,
                ),
            )

            db.add(return_request)
            db.commit()
            db.refresh(return_request)

            logger.info(f"Return {return_request.id} opened for order {order.id}")
            audit_log("RETURN_REQUESTED", "return", return_request.id, user.id, {"order": order.id})
            return return_request

        except ShopException:
            db.rollback()
            raise

        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Creating return for order {data.order_id} failed")
            raise

    # ================================
    # READ
    # ================================

    @staticmethod
    def get_return(db: Session, user: User, return_id: int) -> Return:
        return_request = db.get(Return, return_id)
        if not return_request:
            raise NotFoundException("Return not found")
        if return_request.user_id != user.id and not user.is_admin:
            raise ForbiddenException("You do not have access to this return")
        return return_request

    @staticmethod
    def list_returns(
        db: Session,
        user: User,
        filters: ReturnFilter,
        pagination: PaginationParams,
    ) -> Tuple[List[Return], int]:
        query = db.query(Return)

        if not user.is_admin:
            query = query.filter(Return.user_id == user.id)

        if filters.order_id:
            query = query.filter(Return.order_id == filters.order_id)

        if filters.status:
            query = query.filter(Return.status == filters.status)

        total = query.count()
        items = (
            query.order_by(Return.created_at.desc(), Return.id.desc())
            .offset(pagination.offset)
            .limit(pagination.page_size)
            .all()
        )
        return items, total

    # ================================
    # DECISIONS
    # ================================

    @staticmethod
    def _decide(db: Session, return_id: int, new_status: ReturnStatus, actor: User) -> Return:
        return_request = db.get(Return, return_id)
        if not return_request:
            raise NotFoundException("Return not found")

        rows = (
            db.query(Return)
            .filter(Return.id == return_id, Return.status == ReturnStatus.PENDING)
            .update(
                {
                    Return.status: new_status,
                    Return.decided_by: actor.id,
                    Return.decided_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
        )
        if rows != 1:
            raise ConflictException(
                f"Return {return_id} has already been decided",
                code="RETURN_ALREADY_DECIDED",
            )
        db.expire(return_request, ["status", "decided_by", "decided_at"])
        return return_request

    @staticmethod
    def _refunded_amount(db: Session, order_id: int, exclude_return_id: int) -> Decimal:
        """Refunds granted by other approved returns of the order"""
        total = (
            db.query(func.coalesce(func.sum(Refund.amount), 0))
            .select_from(Refund)
            .join(Return, Refund.return_id == Return.id)
            .filter(
                Return.order_id == order_id,
                Return.id != exclude_return_id,
                Return.status == ReturnStatus.APPROVED,
                Refund.status != RefundStatus.CANCELLED,
            )
            .scalar()
        )
        return quantize(Decimal(str(total)))

    @staticmethod
    def approve_return(db: Session, return_id: int, data: ReturnApprove, actor: User) -> Return:
        """
        Approve a pending return: record the refund and put the goods back on
        hand. Order status and payment status are left alone.
        """
        try:
            return_request = ReturnService._decide(db, return_id, ReturnStatus.APPROVED, actor)

            # Serialize approvals on the same order
            order = (
                db.query(Order)
                .filter(Order.id == return_request.order_id)
                .with_for_update()
                .one()
            )
            already_refunded = ReturnService._refunded_amount(db, order.id, return_request.id)
            if already_refunded + data.refund_amount > order.total:
                raise ValidationException(
                    f"Refund amount {data.refund_amount} plus {already_refunded} already refunded "
                    f"exceeds order total {order.total}",
                    code="REFUND_EXCEEDS_TOTAL",
                )

            if return_request.refund:
                return_request.refund.amount = data.refund_amount
                return_request.refund.method = data.refund_method
                return_request.refund.status = RefundStatus.PENDING
            else:
                return_request.refund = Refund(
                    amount=data.refund_amount,
                    method=data.refund_method,
                    status=RefundStatus.PENDING,
                )

            for item in return_request.items:
                InventoryService.restock(
                    db, item.product_id, item.variant_id, item.quantity,
                    InventoryTransactionType.RETURN,
                    f"Return {return_request.id} approved",
                    "return", return_request.id, actor.id,
                )

            db.commit()
            db.refresh(return_request)

            logger.info(f"Return {return_request.id} approved, refund {data.refund_amount}")
            audit_log(
                "RETURN_APPROVED", "return", return_request.id, actor.id,
                {"amount": data.refund_amount, "method": data.refund_method.value},
            )
            return return_request

        except ShopException:
            db.rollback()
            raise

        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Approving return {return_id} failed")
            raise

    @staticmethod
    def reject_return(db: Session, return_id: int, data: ReturnReject, actor: User) -> Return:
        try:
            return_request = ReturnService._decide(db, return_id, ReturnStatus.REJECTED, actor)

            if return_request.refund:
                return_request.refund.status = RefundStatus.CANCELLED

            note = f"Rejected: {data.reason}"
            return_request.notes = f"{return_request.notes}\n{note}" if return_request.notes else note

            db.commit()
            db.refresh(return_request)

            audit_log("RETURN_REJECTED", "return", return_request.id, actor.id, {"reason": data.reason})
            return return_request

        except ShopException:
            db.rollback()
            raise

        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Rejecting return {return_id} failed")
            raise
