"""
Global pytest fixtures for the Substrack test suite.

Provides:
- Async database session on a temporary SQLite file
- Async FastAPI client with per-request sessions
- Fake Stripe gateway and notification dispatcher
- Seeded merchant and plan
"""
import os

# Set test environment BEFORE any app imports
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = ""
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_KEY"] = ""
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-for-testing-at-least-32-bytes"
os.environ["ACCESS_TOKEN_SECRET"] = "test-access-token-secret"
os.environ["RESEND_API_KEY"] = ""
os.environ["FRONTEND_URL"] = "http://localhost:5173"

from decimal import Decimal
from typing import AsyncGenerator, Dict, Any, List, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from substrack.models import Base, Merchant, SubscriptionPlan, BillingCycle
from tests.utils import WEBHOOK_SECRET, PERIOD_START, PERIOD_END


class FakeStripeGateway:
    """Records calls instead of talking to Stripe"""

    def __init__(self):
        self.secret_keys: List[str] = []
        self.calls: List[tuple] = []
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.error: Optional[Exception] = None

    def factory(self, secret_key: str) -> "FakeStripeGateway":
        self.secret_keys.append(secret_key)
        return self

    def _check(self):
        if self.error is not None:
            raise self.error

    async def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        self.calls.append(("retrieve_subscription", subscription_id))
        self._check()
        # Newer API versions carry the period on the first item only
        return self.subscriptions.get(subscription_id, {
            "id": subscription_id,
            "object": "subscription",
            "status": "active",
            "items": {"data": [{"current_period_start": PERIOD_START, "current_period_end": PERIOD_END}]},
        })

    async def create_checkout_session(self, **kwargs) -> Dict[str, Any]:
        self.calls.append(("create_checkout_session", kwargs))
        self._check()
        return {"id": "cs_test_new", "url": "https://checkout.stripe.com/c/pay/cs_test_new"}

    async def create_product_and_price(self, **kwargs) -> Dict[str, str]:
        self.calls.append(("create_product_and_price", kwargs))
        self._check()
        return {"product_id": "prod_test_1", "price_id": "price_test_1"}

    async def update_product(self, product_id: str, name=None, description=None) -> None:
        self.calls.append(("update_product", product_id, name, description))
        self._check()

    async def archive_product(self, product_id: str) -> None:
        self.calls.append(("archive_product", product_id))
        self._check()


class FakeDispatcher:
    def __init__(self):
        self.dispatched = []

    async def dispatch(self, notifications) -> int:
        self.dispatched.extend(notifications)
        return len(notifications)


# ============================================================================
# Async Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Async SQLite engine on a temporary file so separate sessions share data."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'substrack.sqlite'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator:
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ============================================================================
# Fakes
# ============================================================================

@pytest.fixture
def stripe_gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


# ============================================================================
# FastAPI Test Client Fixtures
# ============================================================================

@pytest.fixture
def app(session_factory, stripe_gateway, dispatcher):
    """The real app with database, Stripe and email swapped for test doubles"""
    from substrack.main import app as substrack_app
    from substrack.core.database import get_db
    from substrack.services.stripe_service import get_stripe_gateway_factory
    from substrack.services.notification_service import get_notification_dispatcher

    async def override_get_db():
        async with session_factory() as session:
            yield session

    substrack_app.dependency_overrides[get_db] = override_get_db
    substrack_app.dependency_overrides[get_stripe_gateway_factory] = lambda: stripe_gateway.factory
    substrack_app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    yield substrack_app
    substrack_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def login_as(app):
    """Authenticate requests as the given merchant"""
    from substrack.core.auth import get_current_user
    from substrack.schemas.auth import TokenData

    def _login(merchant_id, email: str = "owner@acme.test"):
        app.dependency_overrides[get_current_user] = lambda: TokenData(user_id=str(merchant_id), email=email)
    return _login


# ============================================================================
# Test Data
# ============================================================================

@pytest_asyncio.fixture
async def merchant(db) -> Merchant:
    merchant = Merchant(
        id=uuid4(),
        email="owner@acme.test",
        business_name="Acme Analytics",
        address="1 Market Street",
        stripe_secret_key="sk_test_abcdefgh12345678",
        stripe_publishable_key="pk_test_abcdefgh12345678",
        stripe_webhook_secret=WEBHOOK_SECRET,
    )
    db.add(merchant)
    await db.commit()
    await db.refresh(merchant)
    return merchant


@pytest_asyncio.fixture
async def plan(db, merchant) -> SubscriptionPlan:
    plan = SubscriptionPlan(
        merchant_id=merchant.id,
        name="Pro",
        description="Everything in Pro",
        price=Decimal("29.00"),
        currency="USD",
        billing_cycle=BillingCycle.MONTHLY,
        features=["analytics", "export"],
        stripe_product_id="prod_123",
        stripe_price_id="price_123",
    )
    db.add(plan)
    await db.commit()
    await db.refresh(plan)
    return plan
