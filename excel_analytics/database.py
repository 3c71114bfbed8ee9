"""
database.py — Async Database Connection
Excel Analytics API
"""

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from excel_analytics.config import settings
from loguru import logger


# ── Engine ────────────────────────────────────────────────────────────────────
def build_engine(url: str):
    """SQLite (tests, local runs) gets a NullPool engine; servers get a sized pool."""
    if url.startswith("sqlite"):
        return create_async_engine(url, poolclass=NullPool, echo=settings.DB_ECHO)
    return create_async_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        echo=settings.DB_ECHO,
    )


engine = build_engine(settings.DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)


# ── Base ──────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


# ── Dependency ────────────────────────────────────────────────────────────────
async def get_db() -> AsyncSession:
    """FastAPI dependency: yields an async DB session per request."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle helpers ─────────────────────────────────────────────────────────
async def init_db() -> None:
    """Create all tables (dev / test only — use Alembic in prod)."""
    # Register the mapped classes on Base.metadata
    from excel_analytics.models import db_models, user_model  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised.")


async def close_db() -> None:
    await engine.dispose()
    logger.info("Database connection pool closed.")
