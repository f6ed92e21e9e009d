"""
Database Engine Lifecycle

One async engine per process: created by init_engine() during application
startup, disposed by dispose_engine() on shutdown. Components receive the
session factory explicitly instead of reaching for a global client.

Tables: payment_transactions, fraud_alerts, bookings, hypes, wallets,
platform_earnings, withdrawals, webhook_logs
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import settings
from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def _enable_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    """WAL mode and a busy timeout so concurrent writers wait instead of failing."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")  # 30 second timeout
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_engine_for_url(database_url: str) -> AsyncEngine:
    """
    Create an async engine with concurrency-friendly settings.

    SQLite connections get WAL mode and a lock timeout; other backends use
    the driver defaults.
    """
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"timeout": 30, "check_same_thread": False} if is_sqlite else {}

    engine = create_async_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600  # Recycle connections after 1 hour
    )

    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_pragmas)

    return engine


def init_engine(database_url: Optional[str] = None) -> async_sessionmaker:
    """
    Initialize the process-wide engine and session factory.

    Calling it again while an engine is live returns the existing factory.
    """
    global _engine, _session_factory

    if _session_factory is not None:
        return _session_factory

    url = database_url or settings.database_url
    _engine = create_engine_for_url(url)
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    logger.info(f"Database engine initialized: {_engine.url.render_as_string(hide_password=True)}")
    return _session_factory


def get_session_factory() -> async_sessionmaker:
    """Return the live session factory; init_engine() must have run."""
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized; call init_engine() first")
    return _session_factory


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables and indexes declared on Base."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def initialize_database() -> None:
    """
    Create all database tables on the live engine.

    This function is called during FastAPI startup.
    """
    if _engine is None:
        init_engine()
    await create_tables(_engine)
    logger.info("Database tables created successfully")


async def dispose_engine() -> None:
    """Dispose the engine on shutdown and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None


async def _main() -> None:
    init_engine()
    try:
        await initialize_database()
    finally:
        await dispose_engine()


def main():
    """CLI entry point for initializing database."""
    logging.basicConfig(level=logging.INFO)
    asyncio.run(_main())


if __name__ == "__main__":
    main()
