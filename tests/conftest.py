"""Shared test fixtures."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fakes import make_config
from secmaster.api.app import app
from secmaster.api.deps import get_db
from secmaster.ingestion.feeds import FeedARecord, FeedBRecord, FeedCRecord
from secmaster.models.base import Base


@pytest.fixture
async def test_engine():
    """Create an async SQLite in-memory engine for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture
async def api_client(test_engine, test_session_factory):
    """Async HTTP client hitting the FastAPI app with test DB."""

    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def matching_config():
    """Config for the 4-dimensional fake embedder with adjudication on."""
    return make_config()


@pytest.fixture
def hsbc_records():
    """The same HSBC equity as reported by vendor A and vendor B."""
    return [
        FeedARecord(
            security_id="SEC001",
            security_name="HSBC Holdings plc",
            issuer_name="HSBC Holdings plc",
            asset_class="Equity",
            isin="GB0005405286",
        ),
        FeedBRecord(
            ric_code="HSBA.L",
            instrument_name="HSBC Hldgs",
            issuer="HSBC Hldgs",
            instrument_type="EQUITY",
            isin_code="GB0005405286",
        ),
    ]


@pytest.fixture
def mixed_records(hsbc_records):
    """HSBC (approve band), Barclays (pending band), a Lloyds bond and a fund."""
    return hsbc_records + [
        FeedARecord(
            security_id="SEC002",
            security_name="Barclays PLC",
            issuer_name="Barclays PLC",
            asset_class="EQUITY",
        ),
        FeedBRecord(
            ric_code="BARC.L",
            instrument_name="Barclays Bank PLC",
            issuer="Barclays Bank PLC",
            instrument_type="EQUITY",
        ),
        FeedCRecord(
            fca_ref_number="FCA100",
            fund_name="Lloyds 4% 2030",
            manager_name="Lloyds Banking Group",
            fund_type="BOND",
        ),
        FeedARecord(
            security_id="SEC003",
            security_name="Lloyds Banking Group",
            issuer_name="Lloyds Banking Group",
            asset_class="EQUITY",
        ),
    ]
