from decimal import Decimal

from sqlalchemy.exc import OperationalError

from binwahab.models.ecommerce import PaymentStatus
from binwahab.models.inventory import InventoryTransactionType
from binwahab.services.dashboard_service import DashboardService

from factories import auth_headers, make_product, make_variant, place_order


def _adjust(client, admin, product, quantity, variant=None):
    return client.post(
        "/api/v1/admin/inventory/adjust",
        json={
            "product_id": product.id,
            "variant_id": variant.id if variant else None,
            "quantity": quantity,
            "reason": "Stock take",
        },
        headers=auth_headers(admin),
    )


def test_adjust_stock_up(client, admin, product):
    response = _adjust(client, admin, product, 5)

    assert response.status_code == 200
    assert response.json() == {
        "product_id": product.id,
        "variant_id": None,
        "stock": 15,
        "reserved_stock": 0,
        "available": 15,
    }


def test_adjust_variant_stock(client, db, admin):
    product = make_product(db, name="Kebaya")
    variant = make_variant(db, product, "KBY-L", stock=2)

    response = _adjust(client, admin, product, 3, variant=variant)

    assert response.json()["stock"] == 5
    db.expire_all()
    assert product.stock == 10


def test_adjust_cannot_go_below_reserved(client, db, customer, admin, address, product):
    place_order(db, customer, address, (product, 4))

    response = _adjust(client, admin, product, -7)

    assert response.status_code == 400
    assert response.json()["code"] == "INSUFFICIENT_STOCK"
    db.expire_all()
    assert product.stock == 10

    assert _adjust(client, admin, product, -6).json()["available"] == 0


def test_adjust_rejects_zero(client, admin, product):
    assert _adjust(client, admin, product, 0).status_code == 400


def test_adjust_untracked_product(client, db, admin):
    product = make_product(db, inventory_tracking=False)
    response = _adjust(client, admin, product, 1)
    assert response.status_code == 400


def test_adjust_requires_admin(client, customer, product):
    assert _adjust(client, customer, product, 1).status_code == 403


def test_transactions_are_listed_and_filtered(client, db, customer, admin, address, product):
    place_order(db, customer, address, (product, 2))
    _adjust(client, admin, product, 3)

    everything = client.get("/api/v1/admin/inventory/transactions", headers=auth_headers(admin)).json()
    assert everything["total"] == 2
    # Newest first
    assert everything["items"][0]["type"] == InventoryTransactionType.ADJUSTMENT.value
    assert everything["items"][0]["reference_type"] == "manual"

    reserved = client.get(
        "/api/v1/admin/inventory/transactions",
        params={"type": "RESERVED", "product_id": product.id},
        headers=auth_headers(admin),
    ).json()
    assert reserved["total"] == 1
    assert reserved["items"][0]["quantity"] == 2


def test_stock_level(client, db, customer, admin, address, product):
    place_order(db, customer, address, (product, 3))

    response = client.get(f"/api/v1/admin/inventory/{product.id}", headers=auth_headers(admin))

    assert response.json()["available"] == 7


def test_stock_level_for_unknown_product(client, admin):
    assert client.get("/api/v1/admin/inventory/999", headers=auth_headers(admin)).status_code == 404


def test_dashboard_summary(client, db, customer, admin, address, product):
    order = place_order(db, customer, address, (product, 2))
    order.payment_status = PaymentStatus.PAID
    db.commit()

    make_product(db, name="Capal", stock=3)
    with_variants = make_product(db, name="Kebaya", stock=0)
    make_variant(db, with_variants, "KBY-S", stock=2)
    make_variant(db, with_variants, "KBY-M", stock=20)

    response = client.get("/api/v1/admin/dashboard", headers=auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["total_orders"] == 1
    assert Decimal(body["paid_revenue"]) == Decimal("106.00")
    assert body["pending_orders"] == 1
    assert body["pending_returns"] == 0
    assert body["low_stock_items"] == 2
    assert body["error"] is None


class BrokenSession:
    def __init__(self):
        self.rolled_back = False

    def query(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    def rollback(self):
        self.rolled_back = True


def test_dashboard_degrades_when_database_fails():
    session = BrokenSession()

    summary = DashboardService.summary(session)

    assert session.rolled_back
    assert summary.total_orders == 0
    assert summary.error == "Dashboard data is temporarily unavailable"
