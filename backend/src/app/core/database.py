from typing import Any, AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings


def _engine_options(url: str) -> dict[str, Any]:
    backend = make_url(url).get_backend_name()
    if backend == "postgresql":
        return {
            "pool_size": 15,
            "max_overflow": 10,
            "pool_timeout": 30,
            "pool_recycle": 180,
            "pool_pre_ping": True,
            # PgBouncer transaction mode requires disabling prepared statement cache
            "connect_args": {
                "prepared_statement_cache_size": 0,
                "command_timeout": 30,
            },
        }
    if backend == "sqlite":
        # Writers queue on the database lock for up to this many seconds
        return {"connect_args": {"timeout": 30}}
    return {}


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    """Open every SQLite transaction with BEGIN IMMEDIATE.

    SQLite ignores SELECT ... FOR UPDATE. Taking the write lock when the
    transaction starts gives the same read-validate-write exclusion the row
    lock gives on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine configured for the backend named in ``url``."""
    engine = create_async_engine(url, echo=echo, **_engine_options(url))
    if engine.dialect.name == "sqlite":
        _serialize_sqlite_writers(engine)
    return engine


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = create_engine_for(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

async_session_maker = create_session_maker(engine)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()
