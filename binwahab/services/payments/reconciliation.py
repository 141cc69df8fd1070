# binwahab/services/payments/reconciliation.py
import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from binwahab.core.audit import audit_log
from binwahab.core.exceptions import InsufficientStockException
from binwahab.models.ecommerce import Order, OrderStatus, PaymentStatus
from binwahab.schemas.payments import PaymentEvent, PaymentEventKind
from binwahab.services.inventory import InventoryService
from binwahab.services.payments.gateways import PaymentGateway

logger = logging.getLogger(__name__)


class ReconciliationOutcome(str, enum.Enum):
    APPLIED = "applied"
    ALREADY_PROCESSED = "already_processed"
    ORDER_NOT_FOUND = "order_not_found"
    ORDER_CANCELLED = "order_cancelled"
    STOCK_CONFLICT = "stock_conflict"
    IGNORED = "ignored"


@dataclass(frozen=True)
class ReconciliationResult:
    outcome: ReconciliationOutcome
    order_id: Optional[int] = None


class ReconciliationService:
    """
    Applies normalized gateway events to orders.

    Gateways retry and reorder deliveries, so every transition is a
    compare-and-swap on ``payment_status``: the UPDATE only matches rows
    still in the expected state and the affected-row count tells us
    whether this delivery is the one that won.
    """

    @staticmethod
    def handle_webhook(
        db: Session,
        gateway: PaymentGateway,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> ReconciliationResult:
        # Signature first; nothing in the body is trusted before this
        gateway.verify_webhook(raw_body, headers)

        event_name, event = gateway.parse_event(raw_body)
        if event is None:
            logger.info(f"Ignoring {gateway.name.value} event {event_name}")
            return ReconciliationResult(ReconciliationOutcome.IGNORED)

        return ReconciliationService.apply(db, event)

    @staticmethod
    def find_order(db: Session, event: PaymentEvent) -> Optional[Order]:
        order = None
        if event.session_id:
            order = (
                db.query(Order)
                .filter(Order.gateway_session_id == event.session_id)
                .first()
            )
        # Refund notifications may only carry the payment reference
        if order is None and event.payment_id and event.kind == PaymentEventKind.REFUNDED:
            order = (
                db.query(Order)
                .filter(Order.gateway_payment_id == event.payment_id)
                .first()
            )
        return order

    @staticmethod
    def _swap_payment_status(
        db: Session,
        order_id: int,
        expected: Iterable[PaymentStatus],
        values: dict,
        extra_filters: tuple = (),
    ) -> bool:
        rows = (
            db.query(Order)
            .filter(
                Order.id == order_id,
                Order.payment_status.in_(list(expected)),
                *extra_filters,
            )
            .update(values, synchronize_session=False)
        )
        return rows == 1

    @staticmethod
    def apply(db: Session, event: PaymentEvent) -> ReconciliationResult:
        order = ReconciliationService.find_order(db, event)
        if not order:
            logger.warning(
                f"{event.gateway.value} {event.event_name}: no order for session "
                f"{event.session_id} / payment {event.payment_id}"
            )
            return ReconciliationResult(ReconciliationOutcome.ORDER_NOT_FOUND)

        if event.kind == PaymentEventKind.SUCCEEDED:
            return ReconciliationService._apply_success(db, order, event)
        if event.kind == PaymentEventKind.FAILED:
            return ReconciliationService._apply_simple(
                db, order, event, [PaymentStatus.PENDING], PaymentStatus.FAILED, "PAYMENT_FAILED"
            )
        return ReconciliationService._apply_simple(
            db, order, event, [PaymentStatus.PAID], PaymentStatus.REFUNDED, "PAYMENT_REFUNDED"
        )

    @staticmethod
    def _apply_success(db: Session, order: Order, event: PaymentEvent) -> ReconciliationResult:
        """
        PENDING/FAILED -> PAID, then settle every reservation as a sale.
        Both happen in one transaction or not at all.
        """
        values = {
            Order.payment_status: PaymentStatus.PAID,
            Order.gateway_payment_id: event.payment_id,
        }
        if event.payment_method:
            values[Order.payment_method] = event.payment_method

        try:
            swapped = ReconciliationService._swap_payment_status(
                db, order.id,
                [PaymentStatus.PENDING, PaymentStatus.FAILED],
                values,
                (Order.status != OrderStatus.CANCELLED,),
            )
            if not swapped:
                db.rollback()
                db.refresh(order)
                if order.status == OrderStatus.CANCELLED and order.payment_status != PaymentStatus.PAID:
                    logger.error(
                        f"Payment {event.payment_id} captured for cancelled order {order.id}; "
                        f"needs a manual refund"
                    )
                    return ReconciliationResult(ReconciliationOutcome.ORDER_CANCELLED, order.id)

                logger.info(f"Order {order.id} already {order.payment_status.value}; {event.event_name} is a replay")
                return ReconciliationResult(ReconciliationOutcome.ALREADY_PROCESSED, order.id)

            for item in order.items:
                InventoryService.commit_sale(
                    db, item.product_id, item.variant_id, item.quantity, "order", order.id
                )

            db.commit()
            db.expire(order)

        except InsufficientStockException as e:
            db.rollback()
            logger.error(f"Stock conflict settling order {order.id} ({event.event_name}): {e.message}")
            return ReconciliationResult(ReconciliationOutcome.STOCK_CONFLICT, order.id)

        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Reconciliation failed for order {order.id}")
            raise

        logger.info(f"Order {order.id} paid via {event.gateway.value} ({event.event_name})")
        audit_log(
            "PAYMENT_CAPTURED", "order", order.id, None,
            {"gateway": event.gateway.value, "payment_id": event.payment_id},
        )
        return ReconciliationResult(ReconciliationOutcome.APPLIED, order.id)

    @staticmethod
    def _apply_simple(
        db: Session,
        order: Order,
        event: PaymentEvent,
        expected: list,
        new_status: PaymentStatus,
        audit_action: str,
    ) -> ReconciliationResult:
        try:
            swapped = ReconciliationService._swap_payment_status(
                db, order.id, expected, {Order.payment_status: new_status}
            )
            if not swapped:
                db.rollback()
                logger.info(
                    f"Order {order.id}: {event.event_name} does not apply to "
                    f"payment status {order.payment_status.value}"
                )
                return ReconciliationResult(ReconciliationOutcome.ALREADY_PROCESSED, order.id)

            db.commit()
            db.expire(order)

        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Reconciliation failed for order {order.id}")
            raise

        logger.info(f"Order {order.id} payment -> {new_status.value} ({event.event_name})")
        audit_log(audit_action, "order", order.id, None, {"gateway": event.gateway.value})
        return ReconciliationResult(ReconciliationOutcome.APPLIED, order.id)
