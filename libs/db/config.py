from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from libs.common.config import get_settings

settings = get_settings()

engine_kwargs = {"echo": settings.SQL_ECHO, "pool_pre_ping": True}
if not settings.is_sqlite:
    engine_kwargs.update(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )

engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)
