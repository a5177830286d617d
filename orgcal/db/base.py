# orgcal/db/base.py

from __future__ import annotations

import contextlib
import logging
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from orgcal.config import settings

log = logging.getLogger(__name__)


# --- Declarative Base ---
class Base(DeclarativeBase):
    pass


# --- Engine & Session factory ---
if settings.ENVIRONMENT == "test":
    log.info("Using in-memory SQLite database (aiosqlite) for tests.")
    # StaticPool keeps the single in-memory database alive across sessions
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
else:
    log.info("Using ASYNC PostgreSQL database: %s", settings.DATABASE_URL.split("@")[-1])
    if not settings.DATABASE_URL.startswith("postgresql+asyncpg://"):
        raise ValueError("DATABASE_URL must use 'asyncpg' driver for async operations.")
    engine = create_async_engine(
        settings.DATABASE_URL, echo=(settings.ENVIRONMENT == "dev"), pool_pre_ping=True
    )

if engine.dialect.name == "sqlite":
    # ON DELETE CASCADE rules are inert in SQLite unless enabled per connection
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

async_session_factory = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: creates and yields an async session, handling commit/rollback.
    """
    session = async_session_factory()
    session_id_for_log = id(session)
    try:
        log.debug(">>> get_async_db_session: Session %s created, yielding...", session_id_for_log)
        yield session
        await session.commit()
        log.debug(">>> get_async_db_session: Session %s committed.", session_id_for_log)
    except SQLAlchemyError:
        log.exception(
            ">>> get_async_db_session: SQLAlchemyError in session %s, rolling back...",
            session_id_for_log,
        )
        await session.rollback()
        raise
    except Exception:
        # domain errors (NotFound, Forbidden...) end up here too; nothing was meant to persist
        log.debug(">>> get_async_db_session: Exception in session %s scope, rolling back...", session_id_for_log)
        await session.rollback()
        raise
    finally:
        await session.close()


@contextlib.asynccontextmanager
async def async_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Session scope for workers, dispatchers and tests: commit on success, rollback on error."""
    session: AsyncSession = async_session_factory()
    log.debug("Entering async session context %s", id(session))
    try:
        yield session
        await session.commit()
    except Exception:
        log.exception("Rolling back session %s from context due to exception", id(session))
        await session.rollback()
        raise
    finally:
        await session.close()


def import_models() -> None:
    # Every model module must be imported before metadata.create_all / alembic autogenerate.
    import orgcal.core.users.models  # noqa: F401
    import orgcal.core.calendar.models  # noqa: F401
    import orgcal.core.notifications.models  # noqa: F401
    import orgcal.core.reminders.models  # noqa: F401
    import orgcal.core.settings.models  # noqa: F401


async def create_db_and_tables() -> None:
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db_and_tables() -> None:
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


__all__ = [
    "Base", "engine", "async_session_factory", "AsyncSession",
    "get_async_db_session", "async_session_context",
    "create_db_and_tables", "drop_db_and_tables",
]
