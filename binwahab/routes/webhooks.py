import logging
from typing import Dict

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from binwahab.core.database import get_db
from binwahab.models.ecommerce import PaymentGatewayName
from binwahab.schemas.payments import WebhookAck
from binwahab.services.payments.gateways import PaymentGateway, get_gateways
from binwahab.services.payments.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def raw_body(request: Request) -> bytes:
    # Signatures cover the exact bytes sent
    return await request.body()


def _handle(
    name: PaymentGatewayName,
    request: Request,
    body: bytes,
    gateways: Dict[PaymentGatewayName, PaymentGateway],
    db: Session,
) -> WebhookAck:
    result = ReconciliationService.handle_webhook(db, gateways[name], body, request.headers)
    logger.info(f"{name.value} webhook handled: {result.outcome.value} (order {result.order_id})")
    return WebhookAck(outcome=result.outcome.value, order_id=result.order_id)


@webhook_router.post("/curlec", response_model=WebhookAck)
def curlec_webhook(
    request: Request,
    body: bytes = Depends(raw_body),
    gateways: Dict[PaymentGatewayName, PaymentGateway] = Depends(get_gateways),
    db: Session = Depends(get_db)
):
    """
    Curlec (Razorpay-compatible) notifications, signed with
    `X-Razorpay-Signature`. Answers 200 for every verified delivery so the
    gateway stops retrying; 401 for bad signatures, 400 for bad payloads.
    """
    return _handle(PaymentGatewayName.CURLEC, request, body, gateways, db)


@webhook_router.post("/stripe", response_model=WebhookAck)
def stripe_webhook(
    request: Request,
    body: bytes = Depends(raw_body),
    gateways: Dict[PaymentGatewayName, PaymentGateway] = Depends(get_gateways),
    db: Session = Depends(get_db)
):
    """Stripe notifications, signed with `Stripe-Signature`."""
    return _handle(PaymentGatewayName.STRIPE, request, body, gateways, db)
