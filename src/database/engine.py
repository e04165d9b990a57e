from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config import settings

engine = create_async_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_recycle=3600,
    echo=settings.environment == "development",
)

# Celery tasks open their own sessions from this factory via asyncio.run()
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
