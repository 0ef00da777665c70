from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from taskapp.config import settings
from taskapp.db.base import Base

# SQLite (local dev, tests): one connection per session, no pooling across event loops
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **({"poolclass": NullPool} if settings.is_sqlite else {"pool_pre_ping": True}),
)
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    import taskapp.models  # noqa: F401 - register all tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request session. Handlers that write commit before building the response;
    teardown runs after the response is sent, so its commit only catches stragglers."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
