import logging
from pathlib import Path
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from cbgwatch.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def normalize_database_url(url: str) -> str:
    """Rewrite postgres URLs to the psycopg async driver."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if "+asyncpg" in url:
        return url.replace("+asyncpg", "+psycopg")
    if url.startswith("postgresql://") and "+psycopg" not in url:
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


database_url = normalize_database_url(settings.database_url)
is_postgres = database_url.startswith("postgresql")
is_sqlite = database_url.startswith("sqlite")

engine_kwargs = {
    "echo": settings.debug,
}

if is_postgres:
    # Let pgbouncer handle pooling
    engine_kwargs.update({
        "poolclass": NullPool,
        "connect_args": {
            "prepare_threshold": None,
        },
    })

if is_sqlite and ":///" in database_url and ":memory:" not in database_url:
    # Make sure the directory of a file-backed SQLite database exists
    db_path = Path(database_url.split(":///", 1)[1])
    db_path.parent.mkdir(parents=True, exist_ok=True)

logger.info(f"Database config: postgres={is_postgres}, url={database_url.split('@')[-1]}")

engine = create_async_engine(database_url, **engine_kwargs)


def configure_sqlite(sync_engine) -> None:
    """Enable WAL journaling and foreign keys on every new SQLite connection."""

    @event.listens_for(sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


if is_sqlite:
    configure_sqlite(engine.sync_engine)

# Async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all models"""
    pass


async def get_db() -> AsyncSession:
    """Dependency for getting async database sessions"""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


DEFAULT_SETTINGS = {
    "check_interval_minutes": "5",
    "notification_enabled": "true",
    "notification_sound": "true",
}


async def seed_defaults(session: AsyncSession) -> None:
    """Insert the default watchlist group and settings rows if missing."""
    from cbgwatch.models import Setting, WatchlistGroup

    result = await session.execute(select(WatchlistGroup).where(WatchlistGroup.id == 1))
    if result.scalar_one_or_none() is None:
        session.add(WatchlistGroup(id=1, name="Default", color="#6366f1", sort_order=0))

    result = await session.execute(select(Setting.key))
    existing = set(result.scalars().all())
    for key, value in DEFAULT_SETTINGS.items():
        if key not in existing:
            session.add(Setting(key=key, value=value))

    await session.commit()


async def init_db(bind=None, session_factory=None):
    """Initialize database tables and default rows"""
    import cbgwatch.models  # noqa: F401 - register models on Base.metadata

    bind = bind or engine
    session_factory = session_factory or async_session_maker

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_factory() as session:
        await seed_defaults(session)
