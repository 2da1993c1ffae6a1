import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from callrecon.clients.sources import WriteResult
from callrecon.config import Settings
from callrecon.models.base import Base
# Import all models so they register with Base.metadata for create_all
import callrecon.models  # noqa: F401

ROUTING_TARGETS = {"TA-static": "STATIC", "PI-api": "API"}


class FakeRemote:
    """Records every payout override; ids in ``fail_ids`` come back as failures."""

    def __init__(self, fail_ids=(), fail_amounts=()):
        self.writes: list[tuple[str, float, float]] = []
        self.fail_ids = set(fail_ids)
        self.fail_amounts = set(fail_amounts)

    async def set_payout_and_revenue(self, counterpart_id, new_payout, new_revenue, reason=""):
        self.writes.append((counterpart_id, new_payout, new_revenue))
        if counterpart_id in self.fail_ids or new_payout in self.fail_amounts:
            return WriteResult.failure("HTTP 500: upstream error")
        return WriteResult.success({"inboundCallId": counterpart_id})


class FakeRoutingSource:
    def __init__(self, calls=None, error: Exception | None = None):
        self.calls = calls or []
        self.error = error
        self.requested = []

    async def fetch_calls_by_category_and_date_range(self, date_range):
        self.requested.append(date_range)
        if self.error is not None:
            raise self.error
        return list(self.calls)


class FakeRoutingClient(FakeRoutingSource, FakeRemote):
    """Routing source and remote counterpart in one object, like RoutingLedgerClient."""

    def __init__(self, calls=None, fail_ids=()):
        FakeRoutingSource.__init__(self, calls=calls)
        FakeRemote.__init__(self, fail_ids=fail_ids)


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        routing_account_id="RA-test",
        routing_api_token="token-test",
        routing_api_base_url="https://ringba.test/v2",
        routing_targets=ROUTING_TARGETS,
        remote_write_delay_seconds=0.5,
    )


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine):
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def routing_client() -> FakeRoutingClient:
    return FakeRoutingClient()


@pytest.fixture
async def client(db_session, test_settings, no_sleep, routing_client):
    from callrecon.dependencies import get_db, get_reconciliation_engine, get_routing_client
    from callrecon.main import app
    from callrecon.reconciliation_engine.service import ReconciliationEngine

    async def override_get_db():
        yield db_session

    async def override_get_routing_client():
        yield routing_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_reconciliation_engine] = lambda: ReconciliationEngine(test_settings, sleep=no_sleep)
    app.dependency_overrides[get_routing_client] = override_get_routing_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
