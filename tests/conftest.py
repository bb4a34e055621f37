"""
Shared fixtures for the payments service tests.

Environment variables are set before ``app`` is imported: settings and the
database engine are built at import time. The ledger lives in a throwaway
sqlite+aiosqlite file so concurrent sessions get separate connections.
"""
import hashlib
import os
import tempfile

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="payments-tests-")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/ledger.db"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_fake_key_for_testing"
os.environ["PAYPAL_CLIENT_ID"] = "paypal-test-client"
os.environ["PAYPAL_CLIENT_SECRET"] = "paypal-test-secret"
os.environ["PAYPAL_API_BASE"] = "https://paypal.test"
os.environ["PAYHERE_MERCHANT_ID"] = "1211149"
os.environ["PAYHERE_MERCHANT_SECRET"] = "payhere-test-secret"
os.environ["ENV"] = "test"

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from app.db import async_session, engine, init_db  # noqa: E402
from app.main import app as fastapi_app  # noqa: E402

MERCHANT_ID = "1211149"
MERCHANT_SECRET = "payhere-test-secret"


def payhere_sign(merchant_id, order_id, amount, currency, status_code, secret=MERCHANT_SECRET):
    secret_hash = hashlib.md5(secret.encode()).hexdigest().upper()
    raw = f"{merchant_id}{order_id}{amount}{currency}{status_code}{secret_hash}"
    return hashlib.md5(raw.encode()).hexdigest().upper()


@pytest.fixture
def app():
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
async def ledger_tables():
    await init_db()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session():
    async with async_session() as session:
        yield session


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
async def csrf_headers(client):
    resp = await client.get("/api/payments/csrf-token")
    assert resp.status_code == 200
    return {"X-CSRF-Token": resp.json()["csrfToken"]}


@pytest.fixture
def notification():
    """Build a correctly signed PayHere notification form."""
    def _make(order_id="ORDER_1700000000000", status_code="2", amount="25.99",
              currency="USD", custom_1=None, **overrides):
        form = {
            "merchant_id": MERCHANT_ID,
            "order_id": order_id,
            "payment_id": "320025023469",
            "payhere_amount": amount,
            "payhere_currency": currency,
            "status_code": status_code,
            "md5sig": payhere_sign(MERCHANT_ID, order_id, amount, currency, status_code),
            "status_message": "Successfully completed the payment.",
        }
        if custom_1 is not None:
            form["custom_1"] = custom_1
        form.update(overrides)
        return form
    return _make
