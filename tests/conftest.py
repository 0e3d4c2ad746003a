import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("INTERNAL_ADMIN_KEY", "test-internal")
os.environ.setdefault("API_KEY_PEPPER", "test-pepper")

import pytest
import pytest_asyncio
import httpx

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy import event

# Import Base + all models so metadata is complete
from market.models import Base

from market.main import app
from market.core.db import get_db
from market.services.context import get_block_timestamp

from tests.fixtures_seed import Clock, clock, seed_market, signers  # noqa: F401


def _test_db_url(tmp_path) -> str:
    return os.getenv("DATABASE_URL_TEST") or f"sqlite+aiosqlite:///{tmp_path / 'sale_hub_test.db'}"


def _enable_sqlite_savepoints(engine) -> None:
    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    engine = create_async_engine(_test_db_url(tmp_path), future=True)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine):
    """
    Transactional rollback per test:
    - Start an outer transaction
    - The session turns its own commits into SAVEPOINT releases
    - Roll the outer transaction back at the end
    """
    async with async_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False, join_transaction_mode="create_savepoint")
        try:
            yield session
        finally:
            await session.close()
            await trans.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, clock: Clock):
    """
    HTTP client that uses the test DB session and test clock via dependency overrides.
    """
    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_block_timestamp] = clock

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
