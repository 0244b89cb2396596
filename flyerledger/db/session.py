"""Standalone Session Factory: engine + sessionmaker for jobs with no host application.

Invariants:
    - expire_on_commit=False, matching DatabaseSessionManager
    - The URL defaults to settings.database_url
    - Whoever creates the factory disposes it (dispose_session_factory)

Design Decisions:
    - Separate from infrastructure/database.py: the archive sweep needs a bare
      factory it can hand to run_archive_sweep, not the pooled singleton
"""

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from flyerledger.config import get_settings


def create_session_factory(
    database_url: str | None = None,
) -> async_sessionmaker[AsyncSession]:
    settings = get_settings()
    engine = create_async_engine(
        database_url or settings.database_url,
        pool_pre_ping=True,
    )
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def dispose_session_factory(factory: async_sessionmaker[AsyncSession]) -> None:
    """Close the pooled connections behind a factory from create_session_factory."""
    engine = factory.kw.get("bind")
    if engine is not None:
        await engine.dispose()
