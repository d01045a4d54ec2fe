"""Async database engine and session management."""

from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

engine = None
async_session_factory = None


class Base(DeclarativeBase):
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine(database_url: str):
    global engine, async_session_factory
    kwargs = {}
    if "sqlite" in database_url:
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url.endswith("://") or ":memory:" in database_url:
            # One shared connection, or every session sees an empty database
            kwargs["poolclass"] = StaticPool
    engine = create_async_engine(database_url, echo=False, **kwargs)
    if "sqlite" in database_url:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return async_session_factory


async def get_session() -> AsyncSession:
    async with async_session_factory() as session:
        yield session


async def create_tables():
    # Registers every model on Base.metadata
    import nodeflow.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine():
    if engine is not None:
        await engine.dispose()
