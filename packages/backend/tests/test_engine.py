"""Read-side engine tests. Building an engine opens no connection."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.db.engine import create_dashboard_engine, engine, get_db


def test_engine_uses_configured_pool():
    eng = create_dashboard_engine(
        "postgresql+asyncpg://u:p@db.example:5432/rollcall", pool_size=3, max_overflow=2
    )
    assert eng.sync_engine.pool.size() == 3
    assert eng.url.database == "rollcall"
    assert eng.url.get_backend_name() == "postgresql"


@pytest.mark.asyncio
async def test_get_db_yields_session_on_shared_engine():
    sessions = get_db()
    session = await sessions.__anext__()
    try:
        assert isinstance(session, AsyncSession)
        assert session.bind is engine
    finally:
        await sessions.aclose()
