"""
Webhook payload schemas.

Each gateway event we act on has its own model; the unions below are
discriminated on the event name so a payload is rejected before any field
is read. Every model knows how to reduce itself to a ``PaymentEvent``,
the gateway-neutral shape the reconciliation service consumes.
"""
import enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from binwahab.models.ecommerce import PaymentGatewayName, PaymentMethod


class PaymentEventKind(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentEvent(BaseModel):
    kind: PaymentEventKind
    gateway: PaymentGatewayName
    event_name: str
    session_id: Optional[str] = None
    payment_id: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None


CURLEC_METHODS = {
    "card": PaymentMethod.CREDIT_CARD,
    "fpx": PaymentMethod.FPX,
    "netbanking": PaymentMethod.FPX,
    "wallet": PaymentMethod.E_WALLET,
    "bank_transfer": PaymentMethod.BANK_TRANSFER,
    "emandate": PaymentMethod.BANK_TRANSFER,
}

STRIPE_METHODS = {
    "card": PaymentMethod.CREDIT_CARD,
    "fpx": PaymentMethod.FPX,
    "grabpay": PaymentMethod.E_WALLET,
}


# ---------------- CURLEC (Razorpay-compatible) ----------------

class CurlecPaymentEntity(BaseModel):
    id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)
    status: str
    method: Optional[str] = None
    amount: Optional[int] = None
    error_code: Optional[str] = None
    error_description: Optional[str] = None


class CurlecPaymentWrapper(BaseModel):
    entity: CurlecPaymentEntity


class CurlecPaymentPayload(BaseModel):
    payment: CurlecPaymentWrapper


class CurlecRefundEntity(BaseModel):
    id: str = Field(..., min_length=1)
    payment_id: str = Field(..., min_length=1)
    amount: Optional[int] = None


class CurlecRefundWrapper(BaseModel):
    entity: CurlecRefundEntity


class CurlecRefundPayload(BaseModel):
    refund: CurlecRefundWrapper
    payment: Optional[CurlecPaymentWrapper] = None


class CurlecPaymentSucceeded(BaseModel):
    event: Literal["payment.authorized", "payment.captured"]
    payload: CurlecPaymentPayload

    def to_payment_event(self) -> PaymentEvent:
        payment = self.payload.payment.entity
        return PaymentEvent(
            kind=PaymentEventKind.SUCCEEDED,
            gateway=PaymentGatewayName.CURLEC,
            event_name=self.event,
            session_id=payment.order_id,
            payment_id=payment.id,
            payment_method=CURLEC_METHODS.get((payment.method or "").lower()),
        )


class CurlecPaymentFailed(BaseModel):
    event: Literal["payment.failed"]
    payload: CurlecPaymentPayload

    def to_payment_event(self) -> PaymentEvent:
        payment = self.payload.payment.entity
        return PaymentEvent(
            kind=PaymentEventKind.FAILED,
            gateway=PaymentGatewayName.CURLEC,
            event_name=self.event,
            session_id=payment.order_id,
            payment_id=payment.id,
        )


class CurlecRefundProcessed(BaseModel):
    event: Literal["refund.processed"]
    payload: CurlecRefundPayload

    def to_payment_event(self) -> PaymentEvent:
        payment = self.payload.payment.entity if self.payload.payment else None
        return PaymentEvent(
            kind=PaymentEventKind.REFUNDED,
            gateway=PaymentGatewayName.CURLEC,
            event_name=self.event,
            session_id=payment.order_id if payment else None,
            payment_id=self.payload.refund.entity.payment_id,
        )


CurlecWebhookEvent = Annotated[
    Union[CurlecPaymentSucceeded, CurlecPaymentFailed, CurlecRefundProcessed],
    Field(discriminator="event"),
]
curlec_event_adapter = TypeAdapter(CurlecWebhookEvent)

CURLEC_EVENT_NAMES = frozenset({
    "payment.authorized",
    "payment.captured",
    "payment.failed",
    "refund.processed",
})


# ---------------- STRIPE ----------------

class StripeCheckoutSession(BaseModel):
    id: str = Field(..., min_length=1)
    payment_status: str
    payment_intent: Optional[str] = None
    payment_method_types: List[str] = []


class StripeCheckoutSessionData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session: StripeCheckoutSession = Field(..., alias="object")


class StripeCharge(BaseModel):
    id: str = Field(..., min_length=1)
    payment_intent: str = Field(..., min_length=1)
    amount: Optional[int] = None
    amount_refunded: Optional[int] = None
    refunded: Optional[bool] = None

    @property
    def fully_refunded(self) -> bool:
        if self.refunded is not None:
            return self.refunded
        if self.amount is None or self.amount_refunded is None:
            return True
        return self.amount_refunded >= self.amount


class StripeChargeData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    charge: StripeCharge = Field(..., alias="object")


def _stripe_method(session: StripeCheckoutSession) -> Optional[PaymentMethod]:
    for method in session.payment_method_types:
        if method in STRIPE_METHODS:
            return STRIPE_METHODS[method]
    return None


class StripeCheckoutCompleted(BaseModel):
    id: str
    type: Literal["checkout.session.completed", "checkout.session.async_payment_succeeded"]
    data: StripeCheckoutSessionData

    def to_payment_event(self) -> Optional[PaymentEvent]:
        session = self.data.session
        # Delayed methods complete the session before the money arrives
        if session.payment_status != "paid":
            return None
        return PaymentEvent(
            kind=PaymentEventKind.SUCCEEDED,
            gateway=PaymentGatewayName.STRIPE,
            event_name=self.type,
            session_id=session.id,
            payment_id=session.payment_intent,
            payment_method=_stripe_method(session),
        )


class StripeCheckoutFailed(BaseModel):
    id: str
    type: Literal["checkout.session.async_payment_failed", "checkout.session.expired"]
    data: StripeCheckoutSessionData

    def to_payment_event(self) -> PaymentEvent:
        return PaymentEvent(
            kind=PaymentEventKind.FAILED,
            gateway=PaymentGatewayName.STRIPE,
            event_name=self.type,
            session_id=self.data.session.id,
            payment_id=self.data.session.payment_intent,
        )


class StripeChargeRefunded(BaseModel):
    id: str
    type: Literal["charge.refunded"]
    data: StripeChargeData

    def to_payment_event(self) -> Optional[PaymentEvent]:
        # Partial refunds leave the order PAID
        if not self.data.charge.fully_refunded:
            return None
        return PaymentEvent(
            kind=PaymentEventKind.REFUNDED,
            gateway=PaymentGatewayName.STRIPE,
            event_name=self.type,
            payment_id=self.data.charge.payment_intent,
        )


StripeWebhookEvent = Annotated[
    Union[StripeCheckoutCompleted, StripeCheckoutFailed, StripeChargeRefunded],
    Field(discriminator="type"),
]
stripe_event_adapter = TypeAdapter(StripeWebhookEvent)

STRIPE_EVENT_NAMES = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
    "charge.refunded",
})


# ---------------- RESPONSES ----------------

class WebhookAck(BaseModel):
    received: bool = True
    outcome: str
    order_id: Optional[int] = None


class CurlecVerifyOut(BaseModel):
    success: bool
    message: str
    order_id: Optional[int] = None


class GatewaySessionStatus(BaseModel):
    session_id: str
    status: Optional[str] = None
    payment_status: Optional[str] = None
    customer_email: Optional[str] = None
