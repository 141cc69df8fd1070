# binwahab/services/order_service.py
from datetime import datetime, timezone
from typing import List, Optional, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from binwahab.core.audit import audit_log
from binwahab.core.config import settings
from binwahab.core.exceptions import (
    ConflictException, EmptyCartException, ForbiddenException,
    NotFoundException, ShopException, ValidationException
)
from binwahab.models.ecommerce import (
    CartItem, Order, OrderItem, OrderStatus, PaymentGatewayName, PaymentStatus
)
from binwahab.models.inventory import InventoryTransactionType
from binwahab.models.users import User
from binwahab.schemas.ecommerce import OrderCreate
from binwahab.schemas.users import PaginationParams
from binwahab.services.address_service import AddressService
from binwahab.services.cart_service import CartService
from binwahab.services.inventory import InventoryService
from binwahab.services.pricing import PriceLine, PricingService

logger = logging.getLogger(__name__)


ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


class OrderService:

    # ================================
    # CREATE
    # ================================

    @staticmethod
    def create_order(
        db: Session,
        user: User,
        data: OrderCreate,
        gateway: Optional[PaymentGatewayName] = None,
    ) -> Order:
        """
        Turn the user's server-side cart into an order.

        Steps, all in one transaction:
          1. Reject an empty cart
          2. Resolve or create the shipping address
          3. Price the cart (tax + zone shipping)
          4. Insert the order with price snapshots
          5. Reserve stock for tracked lines
          6. Empty the cart
        """
        try:
            cart = CartService.get_cart(db, user)
            if not cart or not cart.items:
                raise EmptyCartException()

            address = AddressService.resolve_for_order(db, user, data.shipping)

            lines = []
            order_items = []
            for item in cart.items:
                if not item.product.is_active:
                    raise ValidationException(
                        f"Product {item.product_id} is no longer available",
                        code="PRODUCT_UNAVAILABLE",
                    )
                unit_price = item.unit_price
                lines.append(PriceLine(unit_price=unit_price, quantity=item.quantity))
                order_items.append(
                    OrderItem(
                        product_id=item.product_id,
                        variant_id=item.variant_id,
                        quantity=item.quantity,
                        price=unit_price,
                    )
                )

            totals = PricingService.quote(db, lines, address.state)

            order = Order(
                user_id=user.id,
                shipping_address_id=address.id,
                status=OrderStatus.PENDING,
                payment_status=PaymentStatus.PENDING,
                payment_method=data.payment_method,
                payment_gateway=gateway,
                subtotal=totals.subtotal,
                tax=totals.tax,
                shipping_cost=totals.shipping_cost,
                total=totals.total,
                currency=settings.CURRENCY,
                items=order_items,
            )
            db.add(order)
            db.flush()

            for item in order.items:
                InventoryService.reserve(
                    db, item.product_id, item.variant_id, item.quantity, "order", order.id
                )

            db.query(CartItem).filter(CartItem.cart_id == cart.id).delete(synchronize_session=False)
            db.expire(cart, ["items"])

            db.commit()
            db.refresh(order)

            logger.info(f"Order {order.id} created for user {user.id}: total {order.total} {order.currency}")
            audit_log("ORDER_CREATED", "order", order.id, user.id, {"total": order.total})
            return order

        except ShopException:
            db.rollback()
            raise

        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Order creation failed for user {user.id}")
            raise

    # ================================
    # READ
    # ================================

    @staticmethod
    def get_order(db: Session, user: User, order_id: int) -> Order:
        order = db.get(Order, order_id)
        if not order:
            raise NotFoundException("Order not found")
        if order.user_id != user.id and not user.is_admin:
            raise ForbiddenException("You do not have access to this order")
        return order

    @staticmethod
    def list_orders(
        db: Session,
        user: User,
        pagination: PaginationParams,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> Tuple[List[Order], int]:
        query = db.query(Order)

        if not user.is_admin:
            query = query.filter(Order.user_id == user.id)

        if status:
            query = query.filter(Order.status == status)

        if payment_status:
            query = query.filter(Order.payment_status == payment_status)

        total = query.count()
        orders = (
            query.order_by(Order.created_at.desc(), Order.id.desc())
            .offset(pagination.offset)
            .limit(pagination.page_size)
            .all()
        )
        return orders, total

    # ================================
    # STATUS CHANGES
    # ================================

    @staticmethod
    def _lock(db: Session, order_id: int) -> Order:
        order = (
            db.query(Order)
            .filter(Order.id == order_id)
            .with_for_update()
            .first()
        )
        if not order:
            raise NotFoundException("Order not found")
        return order

    @staticmethod
    def _apply_cancellation(db: Session, order: Order, actor_id: Optional[int]):
        """
        Move the order to CANCELLED and give its stock back.

        The status flip is conditional on the payment status we saw, so a
        payment landing concurrently makes this fail instead of leaking stock.
        """
        observed_payment = order.payment_status
        rows = (
            db.query(Order)
            .filter(
                Order.id == order.id,
                Order.status.in_([OrderStatus.PENDING, OrderStatus.PROCESSING]),
                Order.payment_status == observed_payment,
            )
            .update({Order.status: OrderStatus.CANCELLED}, synchronize_session=False)
        )
        if rows != 1:
            raise ConflictException("Order changed while cancelling, retry", code="ORDER_CONFLICT")
        db.expire(order, ["status"])

        sold = observed_payment in (PaymentStatus.PAID, PaymentStatus.REFUNDED)
        for item in order.items:
            if sold:
                InventoryService.restock(
                    db, item.product_id, item.variant_id, item.quantity,
                    InventoryTransactionType.RETURN, f"Order {order.id} cancelled",
                    "order", order.id, actor_id,
                )
            else:
                InventoryService.release(
                    db, item.product_id, item.variant_id, item.quantity, "order", order.id
                )

    @staticmethod
    def _advance(db: Session, order: Order, previous: OrderStatus, new_status: OrderStatus):
        """
        Forward transition, conditional on the status we read.

        Orders without a gateway (cash on delivery) never receive a payment
        event, so their reservations become sales when they ship.
        """
        values = {Order.status: new_status}
        if new_status == OrderStatus.DELIVERED:
            values[Order.delivered_at] = datetime.now(timezone.utc)

        rows = (
            db.query(Order)
            .filter(Order.id == order.id, Order.status == previous)
            .update(values, synchronize_session=False)
        )
        if rows != 1:
            raise ConflictException("Order changed while updating, retry", code="ORDER_CONFLICT")
        db.expire(order, ["status", "delivered_at"])

        if new_status == OrderStatus.SHIPPED and order.payment_gateway is None:
            for item in order.items:
                InventoryService.commit_sale(
                    db, item.product_id, item.variant_id, item.quantity, "order", order.id
                )

    @staticmethod
    def cancel_order(db: Session, user: User, order_id: int) -> Order:
        """Customer cancellation of an unpaid order that has not started processing"""
        try:
            order = OrderService._lock(db, order_id)
            if order.user_id != user.id and not user.is_admin:
                raise ForbiddenException("You do not have access to this order")

            if order.status != OrderStatus.PENDING:
                raise ConflictException(
                    f"Order in status {order.status.value} cannot be cancelled",
                    code="INVALID_STATUS_TRANSITION",
                )
            if order.payment_status == PaymentStatus.PAID:
                raise ConflictException(
                    "Paid orders can only be cancelled by support",
                    code="INVALID_STATUS_TRANSITION",
                )

            OrderService._apply_cancellation(db, order, user.id)
            db.commit()
            db.refresh(order)

            audit_log("ORDER_CANCELLED", "order", order.id, user.id, {"by": "customer"})
            return order

        except ShopException:
            db.rollback()
            raise

        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Cancelling order {order_id} failed")
            raise

    @staticmethod
    def update_status(db: Session, order_id: int, new_status: OrderStatus, actor: User) -> Order:
        try:
            order = OrderService._lock(db, order_id)
            previous = order.status

            if new_status not in ORDER_TRANSITIONS[previous]:
                raise ConflictException(
                    f"Cannot change order status from {previous.value} to {new_status.value}",
                    code="INVALID_STATUS_TRANSITION",
                )

            if new_status == OrderStatus.CANCELLED:
                OrderService._apply_cancellation(db, order, actor.id)
            else:
                OrderService._advance(db, order, previous, new_status)

            db.commit()
            db.refresh(order)

            logger.info(f"Order {order.id} status {previous.value} -> {new_status.value}")
            audit_log(
                "ORDER_STATUS_CHANGED", "order", order.id, actor.id,
                {"from": previous.value, "to": new_status.value},
            )
            return order

        except ShopException:
            db.rollback()
            raise

        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Status update failed for order {order_id}")
            raise

    @staticmethod
    def cancel_unpaid(db: Session, order: Order, reason: str):
        """Used when a gateway session could not be opened for a fresh order."""
        try:
            OrderService._apply_cancellation(db, order, None)
            db.commit()
            audit_log("ORDER_CANCELLED", "order", order.id, None, {"reason": reason})
        except ShopException:
            db.rollback()
            raise
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Could not cancel order {order.id} after gateway failure")
            raise
