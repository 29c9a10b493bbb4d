from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from session_insights.config import settings

engine = create_async_engine(settings.database_url, echo=False, pool_size=10, max_overflow=20)
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def close_engine() -> None:
    await engine.dispose()
