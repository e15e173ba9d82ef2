import pytest
import pytest_asyncio
import redis.asyncio as redis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import settings
from database import Base, get_db
from main import app
from routers import rate_limit
from services.snapshot_store import demo_ledger, save_ledger


@pytest.fixture(autouse=True)
def quotas_off_by_default():
    """Quotas are off unless a test asks for ``enforced_quotas``; counters start empty."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest.fixture
def enforced_quotas(monkeypatch):
    """Turn quotas on and count in process so results do not depend on a Redis server."""

    async def redis_down(key, window_seconds):
        raise redis.ConnectionError("redis disabled for tests")

    monkeypatch.setattr(rate_limit, "_count_in_redis", redis_down)
    app.state.disable_rate_limits = False
    yield rate_limit._local_counters


@pytest_asyncio.fixture
async def integration_client(tmp_path):
    """Client against a fresh sqlite database seeded with the demo admin, customer and invoices."""
    db_path = tmp_path / "portal.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_maker() as session:
        await save_ledger(session, demo_ledger(settings.DEMO_ACCOUNT_PASSWORD))

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()
