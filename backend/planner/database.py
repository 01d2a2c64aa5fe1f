import ssl
from datetime import datetime, timezone
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text

from planner.config import get_settings

settings = get_settings()


def split_ssl_mode(database_url: str) -> tuple[URL, dict]:
    """
    Move a libpq-style ``sslmode`` query parameter into asyncpg connect args.

    asyncpg rejects ``sslmode`` in the URL. ``require`` encrypts without
    verifying the server certificate, ``verify-ca``/``verify-full`` verify it,
    and ``disable`` turns SSL off. Any other mode is left to asyncpg's default.
    """
    url = make_url(database_url)
    mode = url.query.get("sslmode")
    if mode is None:
        return url, {}

    url = url.difference_update_query(["sslmode"])
    if mode == "disable":
        return url, {"ssl": False}
    if mode in ("verify-ca", "verify-full"):
        return url, {"ssl": ssl.create_default_context()}
    if mode == "require":
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        return url, {"ssl": ssl_context}
    return url, {}


database_url, connect_args = split_ssl_mode(settings.database_url)

engine = create_async_engine(
    database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_recycle=settings.db_pool_recycle,
    connect_args=connect_args,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all planner models."""
    pass


async def get_db() -> AsyncSession:
    """Request-scoped session; rolls back whatever a failed request left open."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create the extensions the schema relies on."""
    async with engine.begin() as conn:
        # btree_gist backs the per-user time block exclusion constraint
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "btree_gist"'))


async def dispose_db():
    """Close pooled connections on shutdown."""
    await engine.dispose()


def utcnow() -> datetime:
    """Timezone-aware current UTC time, used for audit column defaults."""
    return datetime.now(timezone.utc)
