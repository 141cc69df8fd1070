from typing import Dict

from fastapi import APIRouter, Depends, Form, Path, Query, status
from sqlalchemy.orm import Session

from binwahab.core.auth_dependencies import get_current_user
from binwahab.core.database import get_db
from binwahab.core.exceptions import ConflictException, ForbiddenException, NotFoundException
from binwahab.models.ecommerce import PaymentGatewayName
from binwahab.models.users import User
from binwahab.schemas.ecommerce import CheckoutRequest, CheckoutResponse, PaymentRedirectOut
from binwahab.schemas.payments import CurlecVerifyOut, GatewaySessionStatus
from binwahab.services.checkout_service import CheckoutService
from binwahab.services.payments.gateways import PaymentGateway, get_gateways
from binwahab.services.payments.reconciliation import ReconciliationOutcome, ReconciliationService


checkout_router = APIRouter(tags=["Checkout"])


@checkout_router.post("/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start checkout",
)
def start_checkout(
    data: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    gateways: Dict[PaymentGatewayName, PaymentGateway] = Depends(get_gateways),
    db: Session = Depends(get_db)
):
    """
    Create an order from the cart and open a payment session.

    - **gateway**: `stripe` returns a hosted `checkout_url`; `curlec` returns
      the gateway order id for the client-side widget
    - A gateway failure cancels the new order and answers 502
    """
    return CheckoutService.start_checkout(db, current_user, data, gateways)


@checkout_router.post("/checkout/curlec/verify", response_model=CurlecVerifyOut)
def verify_curlec_payment(
    razorpay_order_id: str = Form(...),
    razorpay_payment_id: str = Form(...),
    razorpay_signature: str = Form(...),
    current_user: User = Depends(get_current_user),
    gateways: Dict[PaymentGatewayName, PaymentGateway] = Depends(get_gateways),
    db: Session = Depends(get_db)
):
    """
    Signed callback posted by the Curlec widget after a successful payment.
    Applied exactly like a `payment.captured` webhook.
    """
    gateway = gateways[PaymentGatewayName.CURLEC]
    event = gateway.verify_callback(razorpay_order_id, razorpay_payment_id, razorpay_signature)

    order = CheckoutService.find_by_session(db, razorpay_order_id)
    if order.user_id != current_user.id and not current_user.is_admin:
        raise ForbiddenException("You do not have access to this order")

    result = ReconciliationService.apply(db, event)

    if result.outcome == ReconciliationOutcome.ORDER_NOT_FOUND:
        raise NotFoundException("Order not found")
    if result.outcome in (ReconciliationOutcome.STOCK_CONFLICT, ReconciliationOutcome.ORDER_CANCELLED):
        raise ConflictException(
            "Payment received but the order could not be completed; support will contact you",
            code=result.outcome.value.upper(),
        )

    message = "Payment verified"
    if result.outcome == ReconciliationOutcome.ALREADY_PROCESSED:
        message = "Payment already processed"
    return CurlecVerifyOut(success=True, message=message, order_id=result.order_id)


@checkout_router.get("/checkout/stripe/session/{session_id}", response_model=GatewaySessionStatus)
def get_stripe_session(
    session_id: str = Path(..., description="Stripe checkout session ID"),
    current_user: User = Depends(get_current_user),
    gateways: Dict[PaymentGatewayName, PaymentGateway] = Depends(get_gateways),
    db: Session = Depends(get_db)
):
    """Read-only status straight from Stripe; never changes the order."""
    order = CheckoutService.find_by_session(db, session_id)
    if order.user_id != current_user.id and not current_user.is_admin:
        raise ForbiddenException("You do not have access to this order")
    return gateways[PaymentGatewayName.STRIPE].retrieve_session(session_id)


@checkout_router.get("/payment-redirect", response_model=PaymentRedirectOut)
def payment_redirect(
    order_id: int = Query(..., description="Order ID"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Landing endpoint after the gateway redirect. Reports the current
    payment status; the webhook is what marks the order paid.
    """
    return CheckoutService.payment_redirect(db, current_user, order_id)
