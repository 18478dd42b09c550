# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")

from phone_auth.api.rate_limit import limiter
from phone_auth.api.v1.dependencies import get_clock, get_otp_delivery, get_settings
from phone_auth.core.settings import Settings
from phone_auth.db.session import create_tables, drop_tables
from phone_auth.db.session import get_session as app_get_session
from phone_auth.main import app as fastapi_app
from phone_auth.repositories.credential_store import CredentialStore
from phone_auth.services.auth_flow import AuthFlowOrchestrator

TEST_DB_URL = "sqlite+aiosqlite://"
TEST_PHONE = "912345678"
TEST_PASSWORD = "secret123"


class FrozenClock:
    """Clock that only moves when a test tells it to."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


class CapturingDelivery:
    """OTP delivery that keeps the last code per phone for the test to read."""

    def __init__(self) -> None:
        self.sent: dict[str, str] = {}

    async def send(self, phone: str, otp: str) -> None:
        self.sent[phone] = otp

    def last_otp(self, phone: str) -> str:
        return self.sent[phone]


@pytest.fixture()
def test_settings() -> Settings:
    """Provide settings with a cheap bcrypt cost and fixed secrets."""
    return Settings(
        ACCESS_TOKEN_SECRET="test-access-secret",
        REFRESH_TOKEN_SECRET="test-refresh-secret",
        BCRYPT_ROUNDS=4,
        CALENDAR_TIMEZONE="UTC",
    )


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 5, 14, 9, 30, tzinfo=UTC))


@pytest.fixture()
def delivery() -> CapturingDelivery:
    return CapturingDelivery()


@pytest_asyncio.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    try:
        yield engine
    finally:
        await drop_tables(engine)
        await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture()
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def store(db_session: AsyncSession, clock: FrozenClock) -> CredentialStore:
    return CredentialStore(db_session, clock)


@pytest.fixture()
def orchestrator(
    store: CredentialStore,
    test_settings: Settings,
    delivery: CapturingDelivery,
    clock: FrozenClock,
) -> AuthFlowOrchestrator:
    return AuthFlowOrchestrator(store, test_settings, delivery, clock)


@pytest.fixture()
def app(
    session_factory: async_sessionmaker[AsyncSession],
    test_settings: Settings,
    clock: FrozenClock,
    delivery: CapturingDelivery,
) -> Iterator[FastAPI]:
    async def _get_session_override() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[app_get_session] = _get_session_override
    fastapi_app.dependency_overrides[get_settings] = lambda: test_settings
    fastapi_app.dependency_overrides[get_clock] = lambda: clock
    fastapi_app.dependency_overrides[get_otp_delivery] = lambda: delivery
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limits() -> Iterator[None]:
    """Start every test with empty per-IP request counters."""
    limiter.reset()
    yield
    limiter.reset()


@pytest_asyncio.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client


async def register_account(
    orchestrator: AuthFlowOrchestrator,
    delivery: CapturingDelivery,
    phone: str = TEST_PHONE,
    password: str = TEST_PASSWORD,
):
    """Run the full OTP registration flow and return the new session."""
    issue = await orchestrator.request_otp(phone)
    verification = await orchestrator.verify_otp(
        phone,
        delivery.last_otp(issue.phone),
        issue.remember_token,
    )
    return await orchestrator.confirm_account(phone, password, verification.verify_token)
