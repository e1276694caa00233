"""
Pytest configuration for the application
"""
import datetime as dt
import os
from typing import AsyncGenerator, Callable, Dict, Optional

import jwt
import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
import httpx
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine
)
from sqlalchemy.pool import StaticPool

from src.core.config import settings
from src.db.base import Base
from src.db.models.user import User
from src.db.session import get_db
from src.main import create_application
from src.services import limits as limits_service
from src.services.plans import UNLIMITED, PlanTier, free_plan_limits


# Set test environment and override runtime settings to avoid external deps
os.environ["ENV"] = "test"
settings.ENV = "test"
settings.DATABASE_URI = "sqlite+aiosqlite:///:memory:"
settings.JWT_SECRET = "test-secret-for-billing-service-0123456789"
settings.stripe.secret_key = "sk_test_123"
settings.stripe.webhook_secret = "whsec_test_secret"
settings.stripe.premium_price_id = "price_premium"
settings.stripe.app_url = "http://app.test"


class FakeRedis:
    """Minimal async Redis stub for rate limiting and idempotency."""

    def __init__(self) -> None:
        self.store: Dict[str, int | str] = {}

    async def incr(self, key: str) -> int:
        current = int(self.store.get(key, 0)) + 1
        self.store[key] = current
        return current

    async def expire(self, key: str, seconds: int) -> None:
        self.store.setdefault(f"{key}:ttl", seconds)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool:
        if nx and key in self.store:
            return False
        self.store[key] = value
        if ex is not None:
            self.store[f"{key}:ttl"] = ex
        return True


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch) -> FakeRedis:
    """Patch the limits module to use an in-memory Redis stub."""

    fake = FakeRedis()
    monkeypatch.setattr(limits_service, "_redis_client", fake, raising=False)
    yield fake
    monkeypatch.setattr(limits_service, "_redis_client", None, raising=False)


@pytest_asyncio.fixture
async def test_db_engine():
    """
    Create an in-memory database engine with all tables.
    """
    engine = create_async_engine(
        str(settings.DATABASE_URI),
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(test_db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a new database session for a test.
    """
    session_factory = async_sessionmaker(test_db_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def test_app(test_db: AsyncSession) -> AsyncGenerator[FastAPI, None]:
    """
    Create a FastAPI test application sharing the test session.
    """
    app = create_application()

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield test_db

    app.dependency_overrides[get_db] = _override_get_db
    async with LifespanManager(app):
        yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Create an async HTTP client for testing.
    """
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as client:
        yield client


def build_token(user_id: str, **claims) -> str:
    return jwt.encode({"sub": user_id, **claims}, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


@pytest.fixture
def auth_headers() -> Callable[..., Dict[str, str]]:
    def _build(user_id: str, **claims) -> Dict[str, str]:
        return {"Authorization": f"Bearer {build_token(user_id, **claims)}"}

    return _build


@pytest.fixture
def make_user(test_db: AsyncSession):
    """Factory inserting a billing record with explicit plan and counters."""

    async def _make(
        user_id: str = "u1",
        *,
        plan: PlanTier = PlanTier.FREE,
        last_reset_date: Optional[dt.datetime] = None,
        stripe_customer_id: Optional[str] = None,
        email: Optional[str] = None,
        **usage: int,
    ) -> User:
        user = User(
            id=user_id,
            email=email,
            plan=plan.value,
            stripe_customer_id=stripe_customer_id,
            usage_monthly_transactions=usage.get("monthly_transactions", 0),
            usage_active_debts=usage.get("active_debts", 0),
            usage_recurring_transactions=usage.get("recurring_transactions", 0),
            usage_categories=usage.get("categories", 0),
            last_reset_date=last_reset_date or dt.datetime.now(dt.timezone.utc),
        )
        user.apply_limits(UNLIMITED if plan is PlanTier.PREMIUM else free_plan_limits())
        test_db.add(user)
        await test_db.flush()
        return user

    return _make
