import json
import time

import pytest

from binwahab.models.catalog import Product
from binwahab.models.ecommerce import Order, PaymentGatewayName, PaymentMethod, PaymentStatus
from binwahab.models.inventory import InventoryTransaction, InventoryTransactionType

from factories import (
    attach_session, auth_headers, curlec_headers, curlec_payment_event, curlec_refund_event, place_order,
    stripe_headers, stripe_refund_event, stripe_session_event
)

CURLEC_URL = "/api/v1/webhooks/curlec"
STRIPE_URL = "/api/v1/webhooks/stripe"


@pytest.fixture
def curlec_order(db, customer, address, product):
    order = place_order(db, customer, address, (product, 2), gateway=PaymentGatewayName.CURLEC)
    return attach_session(db, order, "order_curlec_1", PaymentGatewayName.CURLEC)


@pytest.fixture
def stripe_order(db, customer, address, product):
    order = place_order(db, customer, address, (product, 2), gateway=PaymentGatewayName.STRIPE)
    return attach_session(db, order, "cs_test_abc", PaymentGatewayName.STRIPE)


def _post(client, url, body, headers):
    return client.post(url, content=body, headers=headers)


# ---------------- CURLEC ----------------

def test_captured_payment_marks_order_paid_and_settles_stock(client, db, curlec_order, product):
    body = curlec_payment_event("payment.captured", "order_curlec_1", method="fpx")

    response = _post(client, CURLEC_URL, body, curlec_headers(body))

    assert response.status_code == 200
    assert response.json()["outcome"] == "applied"
    db.expire_all()
    assert curlec_order.payment_status == PaymentStatus.PAID
    assert curlec_order.gateway_payment_id == "pay_test_1"
    assert curlec_order.payment_method == PaymentMethod.FPX
    assert product.stock == 8
    assert product.reserved_stock == 0


def test_replayed_success_does_not_decrement_twice(client, db, curlec_order, product):
    body = curlec_payment_event("payment.captured", "order_curlec_1")

    first = _post(client, CURLEC_URL, body, curlec_headers(body))
    second = _post(client, CURLEC_URL, body, curlec_headers(body))

    assert first.json()["outcome"] == "applied"
    assert second.status_code == 200
    assert second.json()["outcome"] == "already_processed"

    db.expire_all()
    assert product.stock == 8
    assert db.query(Order).count() == 1
    sales = db.query(InventoryTransaction).filter_by(type=InventoryTransactionType.SALE).all()
    assert len(sales) == 1


def test_authorized_then_captured_applies_once(client, db, curlec_order, product):
    authorized = curlec_payment_event("payment.authorized", "order_curlec_1")
    captured = curlec_payment_event("payment.captured", "order_curlec_1")

    _post(client, CURLEC_URL, authorized, curlec_headers(authorized))
    response = _post(client, CURLEC_URL, captured, curlec_headers(captured))

    assert response.json()["outcome"] == "already_processed"
    db.expire_all()
    assert product.stock == 8


@pytest.mark.parametrize("headers", [
    {},
    {"X-Razorpay-Signature": "deadbeef"},
    {"X-Razorpay-Signature": ""},
])
def test_bad_signature_is_rejected_without_state_change(client, db, curlec_order, product, headers):
    body = curlec_payment_event("payment.captured", "order_curlec_1")

    response = _post(client, CURLEC_URL, body, headers)

    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_SIGNATURE"
    db.expire_all()
    assert curlec_order.payment_status == PaymentStatus.PENDING
    assert product.stock == 10


def test_signature_from_wrong_secret_is_rejected(client, db, curlec_order):
    body = curlec_payment_event("payment.captured", "order_curlec_1")

    response = _post(client, CURLEC_URL, body, curlec_headers(body, secret="not-the-secret"))

    assert response.status_code == 401


def test_tampered_body_is_rejected(client, db, curlec_order):
    signed = curlec_payment_event("payment.failed", "order_curlec_1")
    tampered = curlec_payment_event("payment.captured", "order_curlec_1")

    response = _post(client, CURLEC_URL, tampered, curlec_headers(signed))

    assert response.status_code == 401


def test_failed_payment_keeps_reservation(client, db, curlec_order, product):
    body = curlec_payment_event("payment.failed", "order_curlec_1")

    response = _post(client, CURLEC_URL, body, curlec_headers(body))

    assert response.json()["outcome"] == "applied"
    db.expire_all()
    assert curlec_order.payment_status == PaymentStatus.FAILED
    assert product.stock == 10
    assert product.reserved_stock == 2


def test_retry_after_failure_can_still_pay(client, db, curlec_order, product):
    failed = curlec_payment_event("payment.failed", "order_curlec_1", payment_id="pay_failed")
    captured = curlec_payment_event("payment.captured", "order_curlec_1", payment_id="pay_ok")

    _post(client, CURLEC_URL, failed, curlec_headers(failed))
    response = _post(client, CURLEC_URL, captured, curlec_headers(captured))

    assert response.json()["outcome"] == "applied"
    db.expire_all()
    assert curlec_order.payment_status == PaymentStatus.PAID
    assert product.stock == 8


def test_failure_after_payment_is_ignored(client, db, curlec_order):
    captured = curlec_payment_event("payment.captured", "order_curlec_1")
    failed = curlec_payment_event("payment.failed", "order_curlec_1")

    _post(client, CURLEC_URL, captured, curlec_headers(captured))
    response = _post(client, CURLEC_URL, failed, curlec_headers(failed))

    assert response.json()["outcome"] == "already_processed"
    db.expire_all()
    assert curlec_order.payment_status == PaymentStatus.PAID


def test_refund_processed_found_by_payment_id(client, db, curlec_order):
    captured = curlec_payment_event("payment.captured", "order_curlec_1", payment_id="pay_refundable")
    refund = curlec_refund_event("pay_refundable")

    _post(client, CURLEC_URL, captured, curlec_headers(captured))
    response = _post(client, CURLEC_URL, refund, curlec_headers(refund))

    assert response.json()["outcome"] == "applied"
    db.expire_all()
    assert curlec_order.payment_status == PaymentStatus.REFUNDED


def test_refund_of_unpaid_order_is_a_noop(client, db, curlec_order):
    curlec_order.gateway_payment_id = "pay_pending"
    db.commit()
    refund = curlec_refund_event("pay_pending")

    response = _post(client, CURLEC_URL, refund, curlec_headers(refund))

    assert response.json()["outcome"] == "already_processed"
    db.expire_all()
    assert curlec_order.payment_status == PaymentStatus.PENDING


def test_unknown_order_is_acknowledged(client, db, curlec_order):
    body = curlec_payment_event("payment.captured", "order_does_not_exist")

    response = _post(client, CURLEC_URL, body, curlec_headers(body))

    assert response.status_code == 200
    assert response.json()["outcome"] == "order_not_found"


def test_unknown_event_is_ignored(client, db, curlec_order):
    body = json.dumps({"event": "order.paid", "payload": {}}).encode()

    response = _post(client, CURLEC_URL, body, curlec_headers(body))

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"


def test_malformed_json_is_bad_request(client):
    body = b"{not json"

    response = _post(client, CURLEC_URL, body, curlec_headers(body))

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_PAYLOAD"


def test_known_event_with_missing_fields_is_bad_request(client, db, curlec_order):
    body = json.dumps({"event": "payment.captured", "payload": {"payment": {"entity": {"id": "pay_1"}}}}).encode()

    response = _post(client, CURLEC_URL, body, curlec_headers(body))

    assert response.status_code == 400
    db.expire_all()
    assert curlec_order.payment_status == PaymentStatus.PENDING


def test_stock_conflict_leaves_order_pending(client, db, curlec_order, product):
    # Stock vanished underneath the reservation (manual write-off)
    product.stock = 1
    product.reserved_stock = 1
    db.commit()
    body = curlec_payment_event("payment.captured", "order_curlec_1")

    response = _post(client, CURLEC_URL, body, curlec_headers(body))

    assert response.status_code == 200
    assert response.json()["outcome"] == "stock_conflict"
    db.expire_all()
    assert curlec_order.payment_status == PaymentStatus.PENDING
    assert db.get(Product, product.id).stock == 1


def test_payment_for_cancelled_order_is_flagged(client, db, curlec_order, customer):
    client.post(f"/api/v1/orders/{curlec_order.id}/cancel", headers=auth_headers(customer))
    body = curlec_payment_event("payment.captured", "order_curlec_1")

    response = _post(client, CURLEC_URL, body, curlec_headers(body))

    assert response.json()["outcome"] == "order_cancelled"
    db.expire_all()
    assert curlec_order.payment_status == PaymentStatus.PENDING


# ---------------- STRIPE ----------------

def test_stripe_completed_session_pays_order(client, db, stripe_order, product):
    body = stripe_session_event("checkout.session.completed", "cs_test_abc")

    response = _post(client, STRIPE_URL, body, stripe_headers(body))

    assert response.status_code == 200
    assert response.json()["outcome"] == "applied"
    db.expire_all()
    assert stripe_order.payment_status == PaymentStatus.PAID
    assert stripe_order.gateway_payment_id == "pi_test_1"
    assert stripe_order.payment_method == PaymentMethod.CREDIT_CARD
    assert product.stock == 8


def test_stripe_completed_but_unpaid_session_waits(client, db, stripe_order):
    body = stripe_session_event("checkout.session.completed", "cs_test_abc", payment_status="unpaid")

    response = _post(client, STRIPE_URL, body, stripe_headers(body))

    assert response.json()["outcome"] == "ignored"
    db.expire_all()
    assert stripe_order.payment_status == PaymentStatus.PENDING


def test_stripe_async_success_after_completed(client, db, stripe_order, product):
    completed = stripe_session_event("checkout.session.completed", "cs_test_abc", payment_status="unpaid")
    succeeded = stripe_session_event("checkout.session.async_payment_succeeded", "cs_test_abc")

    _post(client, STRIPE_URL, completed, stripe_headers(completed))
    response = _post(client, STRIPE_URL, succeeded, stripe_headers(succeeded))

    assert response.json()["outcome"] == "applied"
    db.expire_all()
    assert product.stock == 8


def test_stripe_expired_session_fails_payment(client, db, stripe_order):
    body = stripe_session_event("checkout.session.expired", "cs_test_abc", payment_status="unpaid")

    _post(client, STRIPE_URL, body, stripe_headers(body))

    db.expire_all()
    assert stripe_order.payment_status == PaymentStatus.FAILED


def test_stripe_refund_by_payment_intent(client, db, stripe_order):
    paid = stripe_session_event("checkout.session.completed", "cs_test_abc", payment_intent="pi_refund_me")
    refund = stripe_refund_event("pi_refund_me")

    _post(client, STRIPE_URL, paid, stripe_headers(paid))
    response = _post(client, STRIPE_URL, refund, stripe_headers(refund))

    assert response.json()["outcome"] == "applied"
    db.expire_all()
    assert stripe_order.payment_status == PaymentStatus.REFUNDED


def test_stripe_partial_refund_keeps_order_paid(client, db, stripe_order):
    paid = stripe_session_event("checkout.session.completed", "cs_test_abc", payment_intent="pi_partial")
    refund = stripe_refund_event("pi_partial", amount=10600, amount_refunded=5000)

    _post(client, STRIPE_URL, paid, stripe_headers(paid))
    response = _post(client, STRIPE_URL, refund, stripe_headers(refund))

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"
    db.expire_all()
    assert stripe_order.payment_status == PaymentStatus.PAID


def test_stripe_old_timestamp_is_rejected(client, db, stripe_order):
    body = stripe_session_event("checkout.session.completed", "cs_test_abc")

    response = _post(client, STRIPE_URL, body, stripe_headers(body, timestamp=int(time.time()) - 3600))

    assert response.status_code == 401
    db.expire_all()
    assert stripe_order.payment_status == PaymentStatus.PENDING


@pytest.mark.parametrize("header", ["", "t=abc,v1=00", "v1=00", "t=1700000000"])
def test_stripe_malformed_signature_header(client, header):
    body = stripe_session_event("checkout.session.completed", "cs_test_abc")

    response = _post(client, STRIPE_URL, body, {"Stripe-Signature": header})

    assert response.status_code == 401


def test_stripe_signature_checked_before_payload(client):
    response = _post(client, STRIPE_URL, b"garbage", {"Stripe-Signature": "t=1,v1=bad"})

    assert response.status_code == 401
