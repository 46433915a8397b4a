from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from edutrack.core.config import Settings, settings


def engine_options(config: Settings) -> dict:
    """Pool settings for the collector's engine.

    Batches are short inserts, so a small pool with pre-ping is enough; sqlite
    (local runs) manages its own pool and takes no sizing arguments.
    """
    if config.database_url.startswith("sqlite"):
        return {"echo": config.debug}
    return {
        "echo": config.debug,
        "pool_size": config.database_pool_size,
        "max_overflow": config.database_max_overflow,
        "pool_pre_ping": True
    }


async_engine = create_async_engine(settings.database_url, **engine_options(settings))

AsyncSessionLocal = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """Request-scoped session; closed when the request finishes"""
    async with AsyncSessionLocal() as session:
        yield session
