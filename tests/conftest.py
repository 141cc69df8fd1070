import json
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-jwt-signing"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_binwahab"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_binwahab"
os.environ["CURLEC_KEY_ID"] = "rzp_test_binwahab"
os.environ["CURLEC_KEY_SECRET"] = "curlec_key_secret"
os.environ["CURLEC_WEBHOOK_SECRET"] = "curlec_webhook_secret"
os.environ["APP_URL"] = "https://shop.binwahab.test"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from binwahab.core.config import settings
from binwahab.core.database import Database
from binwahab.main import create_app
from binwahab.models.users import UserRole
from binwahab.services.payments.gateways import build_gateways, close_gateways

from factories import make_address, make_product, make_user


class GatewayStub:
    """Answers Stripe and Curlec API calls and keeps every request for inspection."""

    def __init__(self):
        self.requests = []
        self.fail = False
        self.counter = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            return httpx.Response(503, json={"error": {"message": "service unavailable"}})

        path = request.url.path
        if request.method == "POST" and path.endswith("/checkout/sessions"):
            self.counter += 1
            session_id = f"cs_test_{self.counter}"
            return httpx.Response(200, json={
                "id": session_id,
                "url": f"https://checkout.stripe.com/c/pay/{session_id}",
            })

        if request.method == "GET" and "/checkout/sessions/" in path:
            session_id = path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={
                "id": session_id,
                "status": "complete",
                "payment_status": "paid",
                "customer_details": {"email": "buyer@example.com"},
            })

        if request.method == "POST" and path.endswith("/orders"):
            self.counter += 1
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "id": f"order_test_{self.counter}",
                "amount": body["amount"],
                "currency": body["currency"],
                "status": "created",
            })

        return httpx.Response(404, json={"error": "not found"})

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def database():
    database = Database(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def gateway_stub():
    return GatewayStub()


@pytest.fixture
def gateways(gateway_stub):
    registry = build_gateways(settings, transport=httpx.MockTransport(gateway_stub.handler))
    yield registry
    close_gateways(registry)


@pytest.fixture
def client(database, gateways):
    app = create_app(database=database, gateways=gateways)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def customer(db):
    return make_user(db, "aisyah@example.com")


@pytest.fixture
def other_customer(db):
    return make_user(db, "farid@example.com")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def address(db, customer):
    return make_address(db, customer)


@pytest.fixture
def product(db):
    return make_product(db)
