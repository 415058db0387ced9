"""Read-side database engine for the dashboard queries.

Learn: Every cached dashboard result is computed here, and nothing here
writes. Attendance devices and registration flows write through their own
paths and we only hear about it via the change triggers. So sessions run
in read-only transactions with a statement timeout, and the connection
carries an application_name that makes our queries easy to pick out in
pg_stat_activity next to the LISTEN connection.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from rollcall.config import settings


def create_dashboard_engine(
    database_url: str,
    pool_size: int = 5,
    max_overflow: int = 10,
    statement_timeout_ms: int = 15000,
    application_name: str = "rollcall-dashboards",
    echo: bool = False,
) -> AsyncEngine:
    """Pooled asyncpg engine whose sessions can only read."""
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        connect_args={
            "server_settings": {
                "application_name": application_name,
                "statement_timeout": str(statement_timeout_ms),
                "default_transaction_read_only": "on",
            },
        },
    )


engine = create_dashboard_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    statement_timeout_ms=settings.db_statement_timeout_ms,
    application_name=settings.db_application_name,
    echo=settings.debug,
)

# Results are serialized into the query cache straight away, so nothing
# needs reloading after the session ends.
read_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency: one read session per request."""
    async with read_session_factory() as session:
        yield session
