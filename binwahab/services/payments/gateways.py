"""
Payment gateway adapters.

Each adapter opens hosted payment sessions over HTTP (httpx), checks the
signature on inbound webhooks and reduces a webhook body to a
``PaymentEvent``. Adapters carry their own ``httpx.Client`` and are built
once per process by ``build_gateways``; tests swap the transport for an
``httpx.MockTransport``.
"""
import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Mapping, Optional, Tuple

import httpx
from fastapi import Request
from pydantic import TypeAdapter, ValidationError

from binwahab.core.config import Settings
from binwahab.core.exceptions import (
    InvalidPayloadException, InvalidSignatureException, PaymentGatewayError
)
from binwahab.core.security import SecurityUtils
from binwahab.models.ecommerce import Order, PaymentGatewayName, PaymentMethod
from binwahab.schemas.payments import (
    CURLEC_EVENT_NAMES, STRIPE_EVENT_NAMES, GatewaySessionStatus, PaymentEvent,
    PaymentEventKind, curlec_event_adapter, stripe_event_adapter
)

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Ringgit to sen."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class GatewaySession:
    session_id: str
    checkout_url: Optional[str]
    amount: int
    currency: str


class PaymentGateway:
    name: PaymentGatewayName
    payment_method: PaymentMethod
    event_key: str
    known_events: frozenset
    event_adapter: TypeAdapter

    def __init__(self, client: httpx.Client):
        self.client = client

    # ---------------- outbound ----------------

    def create_session(self, order: Order) -> GatewaySession:
        raise NotImplementedError

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self.client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"{self.name.value} returned {e.response.status_code} for {method} {path}: "
                f"{e.response.text[:500]}"
            )
            raise PaymentGatewayError(f"{self.name.value} rejected the request") from e
        except httpx.HTTPError as e:
            logger.error(f"{self.name.value} unreachable for {method} {path}: {e}")
            raise PaymentGatewayError(f"{self.name.value} is unavailable") from e
        except ValueError as e:
            logger.error(f"{self.name.value} sent a non-JSON response for {method} {path}")
            raise PaymentGatewayError(f"{self.name.value} sent an invalid response") from e

    # ---------------- inbound ----------------

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        raise NotImplementedError

    def parse_event(self, raw_body: bytes) -> Tuple[Optional[str], Optional[PaymentEvent]]:
        """
        Returns the event name and its normalized form.

        Unknown event names come back with no event; malformed JSON or a
        known event with the wrong shape raise ``InvalidPayloadException``.
        """
        try:
            payload = json.loads(raw_body)
        except ValueError:
            raise InvalidPayloadException("Webhook body is not valid JSON")

        if not isinstance(payload, dict):
            raise InvalidPayloadException("Webhook body must be a JSON object")

        event_name = payload.get(self.event_key)
        if event_name not in self.known_events:
            return event_name, None

        try:
            parsed = self.event_adapter.validate_python(payload)
        except ValidationError as e:
            logger.warning(f"Malformed {self.name.value} {event_name} payload: {e.error_count()} errors")
            raise InvalidPayloadException(f"Malformed {event_name} payload")

        return event_name, parsed.to_payment_event()

    def close(self):
        self.client.close()


# ---------------- STRIPE ----------------

class StripeGateway(PaymentGateway):
    name = PaymentGatewayName.STRIPE
    payment_method = PaymentMethod.CREDIT_CARD
    event_key = "type"
    known_events = STRIPE_EVENT_NAMES
    event_adapter = stripe_event_adapter

    def __init__(
        self,
        config: Settings,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(
            httpx.Client(
                base_url=config.STRIPE_API_URL,
                headers={"Authorization": f"Bearer {config.STRIPE_SECRET_KEY}"},
                timeout=config.GATEWAY_TIMEOUT_SECONDS,
                transport=transport,
            )
        )
        self.webhook_secret = config.STRIPE_WEBHOOK_SECRET
        self.tolerance = config.STRIPE_WEBHOOK_TOLERANCE_SECONDS
        self.app_url = config.APP_URL.rstrip("/")
        self.clock = clock

    def _line_items(self, order: Order) -> Dict[str, str]:
        currency = order.currency.lower()
        lines = []
        for item in order.items:
            name = item.product.name
            if item.variant is not None and item.variant.name:
                name = f"{name} ({item.variant.name})"
            lines.append((name, to_minor_units(item.price), item.quantity))

        if order.tax > 0:
            lines.append(("Tax (SST)", to_minor_units(order.tax), 1))
        if order.shipping_cost > 0:
            lines.append(("Shipping", to_minor_units(order.shipping_cost), 1))

        form = {}
        for i, (name, unit_amount, quantity) in enumerate(lines):
            prefix = f"line_items[{i}]"
            form[f"{prefix}[price_data][currency]"] = currency
            form[f"{prefix}[price_data][product_data][name]"] = name
            form[f"{prefix}[price_data][unit_amount]"] = str(unit_amount)
            form[f"{prefix}[quantity]"] = str(quantity)
        return form

    def create_session(self, order: Order) -> GatewaySession:
        form = {
            "mode": "payment",
            "payment_method_types[0]": "card",
            "payment_method_types[1]": "fpx",
            "client_reference_id": str(order.id),
            "metadata[order_id]": str(order.id),
            "success_url": f"{self.app_url}/api/v1/payment-redirect?order_id={order.id}&session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{self.app_url}/cart?cancelled={order.id}",
            **self._line_items(order),
        }
        data = self._request("POST", "/checkout/sessions", data=form)

        session_id = data.get("id")
        if not session_id:
            raise PaymentGatewayError("stripe did not return a session id")

        logger.info(f"Stripe session {session_id} opened for order {order.id}")
        return GatewaySession(
            session_id=session_id,
            checkout_url=data.get("url"),
            amount=to_minor_units(order.total),
            currency=order.currency,
        )

    def retrieve_session(self, session_id: str) -> GatewaySessionStatus:
        data = self._request("GET", f"/checkout/sessions/{session_id}")
        return GatewaySessionStatus(
            session_id=data.get("id", session_id),
            status=data.get("status"),
            payment_status=data.get("payment_status"),
            customer_email=(data.get("customer_details") or {}).get("email"),
        )

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        header = headers.get("Stripe-Signature") or headers.get("stripe-signature")
        if not header:
            raise InvalidSignatureException("Missing Stripe-Signature header")

        timestamp = None
        signatures = []
        for part in header.split(","):
            key, _, value = part.strip().partition("=")
            if key == "t":
                timestamp = value
            elif key == "v1":
                signatures.append(value)

        if not timestamp or not signatures:
            raise InvalidSignatureException("Malformed Stripe-Signature header")

        try:
            sent_at = int(timestamp)
        except ValueError:
            raise InvalidSignatureException("Malformed Stripe-Signature timestamp")

        if abs(self.clock() - sent_at) > self.tolerance:
            raise InvalidSignatureException("Stripe-Signature timestamp outside tolerance")

        signed_payload = timestamp.encode() + b"." + raw_body
        if not any(
            SecurityUtils.verify_hmac_signature(self.webhook_secret, signed_payload, signature)
            for signature in signatures
        ):
            raise InvalidSignatureException()


# ---------------- CURLEC ----------------

class CurlecGateway(PaymentGateway):
    name = PaymentGatewayName.CURLEC
    payment_method = PaymentMethod.FPX
    event_key = "event"
    known_events = CURLEC_EVENT_NAMES
    event_adapter = curlec_event_adapter

    def __init__(self, config: Settings, transport: Optional[httpx.BaseTransport] = None):
        super().__init__(
            httpx.Client(
                base_url=config.CURLEC_API_URL,
                auth=(config.CURLEC_KEY_ID, config.CURLEC_KEY_SECRET),
                timeout=config.GATEWAY_TIMEOUT_SECONDS,
                transport=transport,
            )
        )
        self.key_secret = config.CURLEC_KEY_SECRET
        self.webhook_secret = config.CURLEC_WEBHOOK_SECRET

    def create_session(self, order: Order) -> GatewaySession:
        amount = to_minor_units(order.total)
        data = self._request(
            "POST",
            "/orders",
            json={
                "amount": amount,
                "currency": order.currency,
                "receipt": f"order_{order.id}",
                "notes": {"order_id": str(order.id), "source": "BINWAHAB Shop"},
            },
        )

        gateway_order_id = data.get("id")
        if not gateway_order_id:
            raise PaymentGatewayError("curlec did not return an order id")

        logger.info(f"Curlec order {gateway_order_id} opened for order {order.id}")
        return GatewaySession(
            session_id=gateway_order_id,
            checkout_url=None,
            amount=amount,
            currency=order.currency,
        )

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        signature = headers.get("X-Razorpay-Signature") or headers.get("x-razorpay-signature")
        if not signature:
            raise InvalidSignatureException("Missing X-Razorpay-Signature header")
        if not SecurityUtils.verify_hmac_signature(self.webhook_secret, raw_body, signature):
            raise InvalidSignatureException()

    def verify_callback(self, gateway_order_id: str, payment_id: str, signature: str) -> PaymentEvent:
        """Signed browser callback after checkout; equivalent to a captured payment."""
        message = f"{gateway_order_id}|{payment_id}"
        if not SecurityUtils.verify_hmac_signature(self.key_secret, message, signature):
            raise InvalidSignatureException("Invalid payment signature")

        return PaymentEvent(
            kind=PaymentEventKind.SUCCEEDED,
            gateway=self.name,
            event_name="checkout.verify",
            session_id=gateway_order_id,
            payment_id=payment_id,
            payment_method=self.payment_method,
        )


# ---------------- REGISTRY ----------------

def build_gateways(
    config: Settings,
    transport: Optional[httpx.BaseTransport] = None,
) -> Dict[PaymentGatewayName, PaymentGateway]:
    return {
        PaymentGatewayName.STRIPE: StripeGateway(config, transport=transport),
        PaymentGatewayName.CURLEC: CurlecGateway(config, transport=transport),
    }


def close_gateways(gateways: Dict[PaymentGatewayName, PaymentGateway]):
    for gateway in gateways.values():
        try:
            gateway.close()
        except Exception as e:
            logger.error(f"Failed to close {gateway.name.value} client: {e}")


def get_gateways(request: Request) -> Dict[PaymentGatewayName, PaymentGateway]:
    return request.app.state.gateways
