import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from sqlalchemy import DateTime, event, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from moderation_core.config import settings
from moderation_core.core.exceptions import (
    AppException,
    ConcurrentModificationError,
    DatabaseError,
)

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TZDateTime(TypeDecorator):
    """Timezone-aware datetime that round-trips as UTC on every backend.

    SQLite has no native timezone support, so values are stored as naive UTC
    and tagged with UTC again when loaded.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def configure_sqlite_engine(engine: AsyncEngine) -> None:
    """Make SQLite write transactions serialize the way row locks do on PostgreSQL.

    pysqlite's implicit BEGIN is disabled and every transaction starts with
    BEGIN IMMEDIATE, so two writers never interleave read-then-write steps.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


engine = create_async_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
configure_sqlite_engine(engine)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


async def check_db_connection() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning("Database connection check failed: %s", e)
        return False


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Run a unit of work that either commits fully or leaves no trace.

    Application errors are re-raised unchanged; integrity violations become
    CONCURRENT_MODIFICATION and any other store failure becomes DATABASE_ERROR
    with the original exception attached.
    """
    try:
        yield db
        await db.commit()
    except AppException:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        logger.warning("Integrity conflict, transaction rolled back: %s", e.orig)
        raise ConcurrentModificationError() from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Database failure, transaction rolled back")
        raise DatabaseError(cause=e) from e
    except Exception:
        await db.rollback()
        raise
