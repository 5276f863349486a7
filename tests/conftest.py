"""
Pytest configuration and fixtures for BizPortal tests.
"""
import os
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

# Settings are cached on first use; configure before importing the app
os.environ["APP_ENV"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["PORTAL_ADMIN_KEY"] = "test-operator-key-that-is-long-enough-123"
os.environ["PORTAL_BACKEND_URL"] = ""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from bizportal.api.ratelimit import limiter
from bizportal.config import Settings, get_settings
from bizportal.domain.portal import PortalCore, build_portal_core
from bizportal.infrastructure.database.connection import get_session
from bizportal.infrastructure.database.models import (
    Base,
    Business,
    Client,
    Contract,
    ContractStatus,
    DocumentType,
    EstimateStatus,
    Invoice,
)
from bizportal.shared.concurrency import WriterLock

TEST_ADMIN_KEY = os.environ["PORTAL_ADMIN_KEY"]
TEST_DATABASE_URL = "sqlite+aiosqlite://"


class FakeClock:
    """Manually advanced clock for lazy-expiry tests."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    limiter.reset()


@pytest.fixture
def test_settings() -> Settings:
    """Settings for an in-memory SQLite store."""
    return Settings(
        _env_file=None,
        app_env="development",
        database_url=TEST_DATABASE_URL,
        portal_admin_key=TEST_ADMIN_KEY,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=UTC))


@pytest.fixture
def write_lock() -> WriterLock:
    return WriterLock()


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with a fresh schema per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def async_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create async test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def core(
    async_session: AsyncSession,
    test_settings: Settings,
    write_lock: WriterLock,
    clock: FakeClock,
) -> PortalCore:
    """Portal core bound to the test session and fake clock."""
    return build_portal_core(async_session, test_settings, write_lock, clock=clock)


# ----- Seed data -----


@pytest.fixture
async def business(async_session: AsyncSession) -> Business:
    biz = Business(name="Acme Plumbing")
    async_session.add(biz)
    await async_session.commit()
    return biz


@pytest.fixture
async def other_business(async_session: AsyncSession) -> Business:
    biz = Business(name="Other Trades Ltd")
    async_session.add(biz)
    await async_session.commit()
    return biz


@pytest.fixture
async def client(async_session: AsyncSession, business: Business) -> Client:
    record = Client(business_id=business.id, name="Dana Client", email="dana@example.com")
    async_session.add(record)
    await async_session.commit()
    return record


@pytest.fixture
async def other_client(async_session: AsyncSession, business: Business) -> Client:
    record = Client(business_id=business.id, name="Sam Other", email="sam@example.com")
    async_session.add(record)
    await async_session.commit()
    return record


async def _create_estimate(
    session: AsyncSession,
    client: Client,
    *,
    status: EstimateStatus = EstimateStatus.SENT,
    document_type: DocumentType = DocumentType.ESTIMATE,
    number: str = "EST-1001",
    business_id: uuid.UUID | None = None,
) -> Invoice:
    record = Invoice(
        business_id=business_id or client.business_id,
        client_id=client.id,
        document_type=document_type.value,
        number=number,
        estimate_status=status.value,
    )
    session.add(record)
    await session.commit()
    return record


async def _create_contract(
    session: AsyncSession,
    client: Client | None,
    *,
    status: ContractStatus = ContractStatus.SENT,
    business_id: uuid.UUID | None = None,
    estimate: Invoice | None = None,
    invoice: Invoice | None = None,
    title: str = "Bathroom Renovation Agreement",
    body: str = "The contractor agrees to renovate the bathroom.",
) -> Contract:
    if business_id is None:
        assert client is not None
        business_id = client.business_id
    contract = Contract(
        business_id=business_id,
        client_id=client.id if client else None,
        estimate_id=estimate.id if estimate else None,
        invoice_id=invoice.id if invoice else None,
        title=title,
        rendered_body=body,
        status=status.value,
    )
    session.add(contract)
    await session.commit()
    return contract


@pytest.fixture
def make_estimate(async_session: AsyncSession):
    """Factory for invoices and estimates."""

    async def factory(client: Client, **kwargs) -> Invoice:
        return await _create_estimate(async_session, client, **kwargs)

    return factory


@pytest.fixture
def make_contract(async_session: AsyncSession):
    """Factory for contracts."""

    async def factory(client: Client | None, **kwargs) -> Contract:
        return await _create_contract(async_session, client, **kwargs)

    return factory


# ----- API -----


@pytest.fixture
def app(session_factory: async_sessionmaker[AsyncSession], clock: FakeClock) -> FastAPI:
    """Create test FastAPI application bound to the test database."""
    get_settings.cache_clear()
    from bizportal.main import create_app

    application = create_app()

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_session] = override_get_session
    application.state.portal_write_lock = WriterLock()
    application.state.portal_clock = clock
    return application


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as http_client:
        yield http_client


@pytest.fixture
def operator_headers() -> dict[str, str]:
    return {"X-Portal-Admin": TEST_ADMIN_KEY}
