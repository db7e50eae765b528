"""Database engine, session factory, and declarative base.

All tables live in one schema.  Request handlers get a session through
the `get_db()` dependency, which commits when the handler returns and
rolls back if it raises.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from farmconnect.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Declarative base for every FarmConnect table."""
    pass


async def get_db() -> AsyncSession:
    """Yield a session; commit on success, roll back on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
