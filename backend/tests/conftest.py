"""Pytest configuration and fixtures."""
import json
import uuid
from typing import Any, Dict, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hypeconnect.config import settings
from hypeconnect.db import BookingModel, create_engine_for_url, create_tables
from hypeconnect.main import app
from hypeconnect.services.payment_core import build_payment_core, get_payment_core
from hypeconnect.services.paystack_client import PaystackClient
from hypeconnect.services.signature_service import compute_signature

TEST_SECRET = "sk_test_hypeconnect_secret"
TEST_ADMIN_TOKEN = "admin-token-for-tests"
PAYSTACK_TEST_URL = "https://api.paystack.test"
BASE_URL = "http://test"


def paystack_handler(request: httpx.Request) -> httpx.Response:
    """Fake Paystack API: initialize issues a fresh reference, verify echoes it."""
    if request.url.path == "/transaction/initialize":
        body = json.loads(request.content)
        reference = f"T{uuid.uuid4().hex[:12]}"
        return httpx.Response(200, json={
            "status": True,
            "message": "Authorization URL created",
            "data": {
                "authorization_url": f"https://checkout.paystack.com/{reference}",
                "access_code": f"ac_{reference}",
                "reference": reference,
                "amount": body["amount"],
            },
        })

    if request.url.path.startswith("/transaction/verify/"):
        reference = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, json={
            "status": True,
            "message": "Verification successful",
            "data": {"reference": reference, "status": "success", "amount": 2500000},
        })

    return httpx.Response(404, json={"status": False, "message": "Not found"})


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Known Paystack secret and admin token for every test."""
    monkeypatch.setattr(settings, "paystack_secret_key", TEST_SECRET)
    monkeypatch.setattr(settings, "admin_api_token", TEST_ADMIN_TOKEN)
    monkeypatch.setattr(settings, "environment", "test")
    return settings


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite file database per test."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'hypeconnect_test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def broken_session_factory(tmp_path):
    """Session factory over a database with no tables; every query fails."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def paystack_client() -> PaystackClient:
    return PaystackClient(
        secret_key=TEST_SECRET,
        base_url=PAYSTACK_TEST_URL,
        transport=httpx.MockTransport(paystack_handler),
    )


@pytest.fixture
def core(session_factory, paystack_client):
    return build_payment_core(session_factory, paystack=paystack_client, platform_fee_percent=20)


@pytest.fixture
def make_booking(session_factory):
    """Create a booking row and return its ID."""
    async def _make_booking(
        status: str = "pending",
        amount: int = 25000,
        hypeman_id: str = "hypeman_001",
        booking_id: Optional[str] = None,
        paystack_reference: Optional[str] = None,
    ) -> str:
        booking_id = booking_id or f"booking_{uuid.uuid4().hex[:8]}"
        async with session_factory() as session:
            session.add(BookingModel(
                id=booking_id,
                name="Ada Fan",
                email="fan@example.com",
                hypeman_id=hypeman_id,
                occasion="Birthday",
                amount=amount,
                status=status,
                paystack_reference=paystack_reference,
            ))
            await session.commit()
        return booking_id

    return _make_booking


@pytest.fixture
def get_booking(session_factory):
    async def _get_booking(booking_id: str) -> Optional[BookingModel]:
        async with session_factory() as session:
            return await session.get(BookingModel, booking_id)

    return _get_booking


@pytest.fixture
async def client(core):
    """HTTP client against the app wired to the test payment core."""
    app.dependency_overrides[get_payment_core] = lambda: core
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE_URL) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def post_webhook(client):
    """POST a Paystack event with a valid signature (or a given one)."""
    async def _post(event: Dict[str, Any], signature: Optional[str] = None) -> httpx.Response:
        body = json.dumps(event).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        headers["x-paystack-signature"] = signature if signature is not None else compute_signature(body, TEST_SECRET)
        return await client.post("/api/webhooks/paystack", content=body, headers=headers)

    return _post


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"X-Admin-Token": TEST_ADMIN_TOKEN}
