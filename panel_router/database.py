# panel_router/database.py
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    engine = create_async_engine(database_url, echo=echo)

    if engine.dialect.name == "sqlite":
        # The sqlite driver defers BEGIN until the first write, so two writers can
        # both hold read locks and fail with "database is locked". Take the write
        # lock up front; concurrent requests then queue on the busy timeout.
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    # Objects stay readable after the per-operation commits in crud/
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


_settings = get_settings()
logger.debug(f"Using DATABASE_URL: {_settings.database_url}")

engine = build_engine(_settings.database_url, echo=_settings.sql_echo)
AsyncSessionFactory = build_session_factory(engine)


async def get_db_session() -> AsyncSession:
    async with AsyncSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_db_and_tables(bind: AsyncEngine = engine) -> None:
    """Creates missing tables. Production schemas are managed by Alembic."""
    from . import models  # noqa: F401  (registers the tables on Base.metadata)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured.")
