# binwahab/services/checkout_service.py
import logging
from typing import Dict

from sqlalchemy.orm import Session

from binwahab.core.exceptions import NotFoundException, PaymentGatewayError, ValidationException
from binwahab.models.ecommerce import Order, PaymentGatewayName
from binwahab.models.users import User
from binwahab.schemas.ecommerce import CheckoutRequest, CheckoutResponse, OrderCreate, PaymentRedirectOut
from binwahab.services.order_service import OrderService
from binwahab.services.payments.gateways import PaymentGateway

logger = logging.getLogger(__name__)


class CheckoutService:

    @staticmethod
    def _gateway(gateways: Dict[PaymentGatewayName, PaymentGateway], name: PaymentGatewayName) -> PaymentGateway:
        gateway = gateways.get(name)
        if gateway is None:
            raise ValidationException(f"Payment gateway {name.value} is not configured", code="GATEWAY_UNAVAILABLE")
        return gateway

    @staticmethod
    def start_checkout(
        db: Session,
        user: User,
        data: CheckoutRequest,
        gateways: Dict[PaymentGatewayName, PaymentGateway],
    ) -> CheckoutResponse:
        """
        Create the order from the cart and open a hosted payment session for it.

        If the gateway call fails the fresh order is cancelled so its
        reservations go back to stock, and the caller gets a 502.
        """
        gateway = CheckoutService._gateway(gateways, data.gateway)

        order = OrderService.create_order(
            db,
            user,
            OrderCreate(shipping=data.shipping, payment_method=gateway.payment_method),
            gateway=gateway.name,
        )

        try:
            session = gateway.create_session(order)
        except PaymentGatewayError:
            logger.warning(f"Cancelling order {order.id}: {gateway.name.value} session could not be opened")
            OrderService.cancel_unpaid(db, order, f"{gateway.name.value} session failed")
            raise

        order.gateway_session_id = session.session_id
        db.commit()

        return CheckoutResponse(
            order_id=order.id,
            gateway=gateway.name,
            session_id=session.session_id,
            checkout_url=session.checkout_url,
            amount=session.amount,
            currency=session.currency,
        )

    @staticmethod
    def payment_redirect(db: Session, user: User, order_id: int) -> PaymentRedirectOut:
        """Read-only landing after the gateway redirect; the webhook is what pays the order."""
        order = OrderService.get_order(db, user, order_id)
        return PaymentRedirectOut(
            order_id=order.id,
            status=order.status,
            payment_status=order.payment_status,
        )

    @staticmethod
    def find_by_session(db: Session, session_id: str) -> Order:
        order = db.query(Order).filter(Order.gateway_session_id == session_id).first()
        if not order:
            raise NotFoundException("Order not found")
        return order
