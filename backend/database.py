"""
Database engine and session management for the merchant IPN service.

The order ledger lives in this database, so it is the durability boundary
for callback idempotency: a fulfilled order must still read as fulfilled
after a restart or from a second worker process.

SQLite connections are opened in WAL mode with a busy timeout so several
workers can share one ledger file; a writer that loses the race waits for
the lock instead of failing with "database is locked".
"""
import logging
import os

from sqlalchemy import event
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def to_async_url(raw_url: str) -> str:
    """sqlite:///x.db → sqlite+aiosqlite:///x.db; other URLs pass through."""
    if raw_url.startswith("sqlite:///"):
        return raw_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return raw_url


def sqlite_file_path(url: str) -> str | None:
    """Filesystem path of a file-backed SQLite URL, else None."""
    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite"):
        return None
    if not parsed.database or parsed.database == ":memory:":
        return None
    return parsed.database


def ensure_database_dir(url: str) -> None:
    """Create the parent directory of a SQLite ledger file if it is missing."""
    path = sqlite_file_path(url)
    if path:
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)


def _install_sqlite_pragmas(async_engine) -> None:
    busy_ms = int(settings.sqlite_busy_timeout_seconds * 1000)

    @event.listens_for(async_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={busy_ms}")
        cursor.close()


# ── Engine ──────────────────────────────────────────────────────────

DATABASE_URL = to_async_url(settings.database_url)

engine = create_async_engine(DATABASE_URL, echo=False)
if sqlite_file_path(DATABASE_URL):
    _install_sqlite_pragmas(engine)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Create ledger tables. Called from the app lifespan and the reconcile script."""
    import db_models  # noqa: F401  (registers tables on Base.metadata)

    ensure_database_dir(DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"Ledger tables ready ({make_url(DATABASE_URL).render_as_string(hide_password=True)})")


async def get_db():
    """FastAPI dependency: one AsyncSession per request."""
    async with async_session() as session:
        yield session
