import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from vslgen.config import get_settings
from vslgen.models.base import Base

logger = logging.getLogger(__name__)

settings = get_settings()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Async engine; pool limits only apply to server databases."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo, future=True)
    return create_async_engine(
        database_url,
        echo=echo,
        future=True,
        pool_size=5,
        max_overflow=0,  # Queue instead of exceeding the server limit
        pool_pre_ping=True,  # Check connection health before use
        pool_recycle=300,
        pool_timeout=30,
    )


engine = build_engine(settings.database_url, settings.database_echo)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """Create tables with retry logic for connection failures."""
    db_engine = db_engine or engine
    max_retries = 5
    retry_delay = 2  # seconds

    for attempt in range(max_retries):
        try:
            async with db_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            return  # Success
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(
                    f"DB connection attempt {attempt + 1}/{max_retries} failed: {e}. "
                    f"Retrying in {retry_delay} seconds..."
                )
                await asyncio.sleep(retry_delay)
                retry_delay *= 2  # Exponential backoff
            else:
                logger.error(f"Failed to connect to database after {max_retries} attempts")
                raise

