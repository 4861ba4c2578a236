from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from campusfix.core.config import Settings, settings


def create_engine_from_settings(config: Settings) -> AsyncEngine:
    """Создает движок с пулом соединений; размер пула ограничен настройками."""
    kwargs = {"echo": config.DB_ECHO, "pool_pre_ping": True}
    if not config.DATABASE_URL.startswith("sqlite"):
        kwargs.update(pool_size=config.DB_POOL_SIZE, max_overflow=config.DB_MAX_OVERFLOW)
    return create_async_engine(config.DATABASE_URL, **kwargs)


engine = create_engine_from_settings(settings)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as db:
        try:
            yield db
        finally:
            await db.close()
