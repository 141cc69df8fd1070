from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from binwahab.models.inventory import InventoryTransaction, InventoryTransactionType
from binwahab.models.returns import Refund, RefundStatus, Return, ReturnItem

from factories import auth_headers, mark_delivered, place_order

REASON = "Wrong size, too small"


@pytest.fixture
def delivered_order(db, customer, address, product):
    order = place_order(db, customer, address, (product, 2))
    return mark_delivered(db, order)


def _return_payload(order, quantity=1, condition="NEW", order_item_id=None):
    return {
        "order_id": order.id,
        "reason": REASON,
        "items": [{
            "order_item_id": order_item_id or order.items[0].id,
            "quantity": quantity,
            "condition": condition,
        }],
    }


def _open_return(client, user, order, **kwargs):
    return client.post("/api/v1/returns", json=_return_payload(order, **kwargs), headers=auth_headers(user))


def test_return_is_created_with_estimated_refund(client, db, customer, delivered_order):
    response = _open_return(client, customer, delivered_order, quantity=2)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "PENDING"
    assert body["items"][0]["quantity"] == 2
    assert Decimal(body["refund"]["amount"]) == Decimal("100.00")
    assert body["refund"]["status"] == "PENDING"


def test_used_items_carry_restocking_fee(client, customer, delivered_order):
    response = _open_return(client, customer, delivered_order, quantity=1, condition="USED")

    assert Decimal(response.json()["refund"]["amount"]) == Decimal("42.50")


def test_over_quantity_is_reported_per_item_and_nothing_written(client, db, customer, delivered_order):
    item_id = delivered_order.items[0].id

    response = _open_return(client, customer, delivered_order, quantity=3)

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "RETURN_VALIDATION_FAILED"
    assert [e["order_item_id"] for e in body["errors"]] == [item_id]
    assert "exceeds" in body["errors"][0]["message"]

    assert db.query(Return).count() == 0
    assert db.query(ReturnItem).count() == 0
    assert db.query(Refund).count() == 0


def test_duplicate_lines_count_together(client, customer, delivered_order):
    item_id = delivered_order.items[0].id
    payload = {
        "order_id": delivered_order.id,
        "reason": REASON,
        "items": [
            {"order_item_id": item_id, "quantity": 1},
            {"order_item_id": item_id, "quantity": 2},
        ],
    }

    response = client.post("/api/v1/returns", json=payload, headers=auth_headers(customer))

    assert response.status_code == 400
    assert response.json()["errors"][0]["order_item_id"] == item_id


def test_all_problems_are_reported_together(client, customer, delivered_order):
    payload = {
        "order_id": delivered_order.id,
        "reason": "bad",
        "items": [
            {"order_item_id": delivered_order.items[0].id, "quantity": 0},
            {"order_item_id": 9999, "quantity": 1},
        ],
    }

    response = client.post("/api/v1/returns", json=payload, headers=auth_headers(customer))

    errors = response.json()["errors"]
    messages = " | ".join(e["message"] for e in errors)
    assert "greater than 0" in messages
    assert "does not belong" in messages
    assert "at least 10 characters" in messages


def test_order_must_be_delivered(client, db, customer, address, product):
    order = place_order(db, customer, address, (product, 1))

    response = _open_return(client, customer, order)

    assert response.status_code == 400
    errors = response.json()["errors"]
    assert errors[0]["order_item_id"] is None
    assert "delivered" in errors[0]["message"]


def test_return_window_expires(client, db, customer, address, product):
    order = place_order(db, customer, address, (product, 1))
    mark_delivered(db, order, delivered_at=datetime.now(timezone.utc) - timedelta(days=31))

    response = _open_return(client, customer, order)

    assert response.status_code == 400
    assert "expired" in response.json()["errors"][0]["message"]


def test_return_window_is_inclusive_of_recent_delivery(client, db, customer, address, product):
    order = place_order(db, customer, address, (product, 1))
    mark_delivered(db, order, delivered_at=datetime.now(timezone.utc) - timedelta(days=29))

    assert _open_return(client, customer, order).status_code == 201


def test_cannot_return_someone_elses_order(client, other_customer, delivered_order):
    response = _open_return(client, other_customer, delivered_order)
    assert response.status_code == 403


def test_remaining_quantity_across_returns(client, customer, admin, delivered_order):
    first = _open_return(client, customer, delivered_order, quantity=1)
    assert first.status_code == 201

    assert _open_return(client, customer, delivered_order, quantity=2).status_code == 400

    client.post(
        f"/api/v1/returns/{first.json()['id']}/reject",
        json={"reason": "Item shows wear"},
        headers=auth_headers(admin),
    )
    # Rejected returns free their units again
    assert _open_return(client, customer, delivered_order, quantity=2).status_code == 201


def test_approve_restocks_and_records_refund(client, db, customer, admin, delivered_order, product):
    return_id = _open_return(client, customer, delivered_order, quantity=2).json()["id"]
    stock_before = product.stock

    response = client.post(
        f"/api/v1/returns/{return_id}/approve",
        json={"refund_amount": "95.00", "refund_method": "BANK_TRANSFER"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "APPROVED"
    assert body["decided_by"] == admin.id
    assert Decimal(body["refund"]["amount"]) == Decimal("95.00")
    assert body["refund"]["method"] == "BANK_TRANSFER"

    db.expire_all()
    assert product.stock == stock_before + 2
    restock = db.query(InventoryTransaction).filter_by(type=InventoryTransactionType.RETURN).one()
    assert restock.reference_type == "return"
    assert restock.reference_id == return_id


def test_refund_cannot_exceed_order_total(client, db, customer, admin, delivered_order, product):
    return_id = _open_return(client, customer, delivered_order).json()["id"]

    response = client.post(
        f"/api/v1/returns/{return_id}/approve",
        json={"refund_amount": "500.00", "refund_method": "STORE_CREDIT"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "REFUND_EXCEEDS_TOTAL"
    db.expire_all()
    assert db.get(Return, return_id).status.value == "PENDING"
    assert product.stock == 10


def test_reject_cancels_refund(client, db, customer, admin, delivered_order):
    return_id = _open_return(client, customer, delivered_order).json()["id"]

    response = client.post(
        f"/api/v1/returns/{return_id}/reject",
        json={"reason": "Outside policy"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "REJECTED"
    assert body["refund"]["status"] == RefundStatus.CANCELLED.value
    assert "Rejected: Outside policy" in body["notes"]


def test_return_can_only_be_decided_once(client, customer, admin, delivered_order):
    return_id = _open_return(client, customer, delivered_order).json()["id"]
    approve = {"refund_amount": "50.00", "refund_method": "CREDIT_CARD"}

    client.post(f"/api/v1/returns/{return_id}/approve", json=approve, headers=auth_headers(admin))
    response = client.post(
        f"/api/v1/returns/{return_id}/reject",
        json={"reason": "Changed my mind"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "RETURN_ALREADY_DECIDED"


def test_customers_cannot_decide_returns(client, customer, delivered_order):
    return_id = _open_return(client, customer, delivered_order).json()["id"]

    response = client.post(
        f"/api/v1/returns/{return_id}/approve",
        json={"refund_amount": "50.00", "refund_method": "CREDIT_CARD"},
        headers=auth_headers(customer),
    )

    assert response.status_code == 403


def test_customers_only_see_their_returns(client, customer, other_customer, admin, delivered_order):
    return_id = _open_return(client, customer, delivered_order).json()["id"]

    assert client.get(f"/api/v1/returns/{return_id}", headers=auth_headers(other_customer)).status_code == 403
    assert client.get("/api/v1/returns", headers=auth_headers(other_customer)).json()["total"] == 0
    assert client.get("/api/v1/returns", headers=auth_headers(customer)).json()["total"] == 1
    assert client.get("/api/v1/returns", params={"status": "PENDING"}, headers=auth_headers(admin)).json()["total"] == 1


def test_refunds_across_returns_are_capped_by_order_total(client, db, customer, admin, delivered_order):
    first = _open_return(client, customer, delivered_order, quantity=1).json()["id"]
    second = _open_return(client, customer, delivered_order, quantity=1).json()["id"]
    full_refund = {"refund_amount": "106.00", "refund_method": "BANK_TRANSFER"}

    assert client.post(f"/api/v1/returns/{first}/approve", json=full_refund, headers=auth_headers(admin)).status_code == 200
    response = client.post(f"/api/v1/returns/{second}/approve", json=full_refund, headers=auth_headers(admin))

    assert response.status_code == 400
    assert response.json()["code"] == "REFUND_EXCEEDS_TOTAL"
    db.expire_all()
    assert db.get(Return, second).status.value == "PENDING"


def test_partial_refunds_may_add_up_to_order_total(client, customer, admin, delivered_order):
    first = _open_return(client, customer, delivered_order, quantity=1).json()["id"]
    second = _open_return(client, customer, delivered_order, quantity=1).json()["id"]
    headers = auth_headers(admin)

    client.post(f"/api/v1/returns/{first}/approve", json={"refund_amount": "53.00", "refund_method": "E_WALLET"}, headers=headers)
    response = client.post(
        f"/api/v1/returns/{second}/approve",
        json={"refund_amount": "53.00", "refund_method": "E_WALLET"},
        headers=headers,
    )

    assert response.status_code == 200
