"""
Database engine configuration and session management.

The default URL is a local SQLite file driven through aiosqlite. Any async
SQLAlchemy URL works (e.g. postgresql+asyncpg://...) via DATABASE_URL.
Tests build their own file-backed engine and pass it to init_db().
"""
from collections.abc import AsyncGenerator
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.core import config


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """
    Session factory used by request handlers and the permission resolver.

    expire_on_commit is off: grant rows are read back after every commit.
    """
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_async_engine(
    config.SQLALCHEMY_DATABASE_URL,
    # NullPool for SQLite to avoid connection pool issues
    poolclass=NullPool if config.SQLALCHEMY_DATABASE_URL.startswith("sqlite") else None,
    echo=False,
)

AsyncSessionLocal = make_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    Usage in FastAPI routes:
        @router.get("/roles")
        async def list_roles(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Role))
            return result.scalars().all()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(target: Optional[AsyncEngine] = None):
    """
    Create all tables on the given engine (the application engine by default).

    Usage in main.py:
        @app.on_event("startup")
        async def startup():
            await init_db()
    """
    from app.core.database.base import Base

    # Import all models to ensure they're registered with SQLAlchemy
    from app.features.permissions.models import Role, Grant  # noqa: F401
    from app.features.users.models import User  # noqa: F401

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
