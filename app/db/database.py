"""Database engine and session factory."""
import logging
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.core.config import settings
from app.db.models import Base

logger = logging.getLogger(__name__)

# Plain URLs from the environment mapped to their async drivers
ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def to_async_url(url: str) -> str:
    """Rewrite a database URL to use the asyncpg or aiosqlite driver."""
    for prefix, async_prefix in ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return async_prefix + url[len(prefix):]
    return url


database_url = to_async_url(settings.database_url)

engine = create_async_engine(
    database_url,
    echo=False,
    # Managed Postgres drops idle connections between calls
    pool_pre_ping=database_url.startswith("postgresql"),
)

# One short-lived session per store operation
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db() -> None:
    """Create the call tables if they do not exist yet."""
    logger.info("[DB] Ensuring campaign, contact and call tables exist")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
