"""Service test fixtures: pinned clock, seeded flyers, two-connection database.

Invariants:
    - Every service test runs against a fresh database (root conftest)
    - `now` is fixed: guards and archival thresholds are evaluated against it

Design Decisions:
    - file_session_factory uses a file-backed SQLite database: racing sessions need
      separate connections, which the in-memory database cannot give them
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)

from flyerledger.db.base import Base
from flyerledger.models.flyer import Flyer
from flyerledger.services.flyer_lifecycle import FlyerLifecycleManager
from flyerledger.services.price_history_service import PriceHistoryService


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def manager(test_db, now) -> FlyerLifecycleManager:
    return FlyerLifecycleManager(test_db, clock=lambda: now)


@pytest.fixture
def prices(test_db, now) -> PriceHistoryService:
    return PriceHistoryService(test_db, clock=lambda: now)


@pytest.fixture
def make_flyer(test_db, now):
    """Insert a flyer and return it. Defaults: pending, valid since yesterday, for a week."""

    async def _make(
        status="pending",
        valid_from=None,
        valid_to="default",
        store_id=1,
        products_extracted=None,
    ) -> Flyer:
        start = valid_from or now - timedelta(days=1)
        flyer = Flyer(
            store_id=store_id,
            title=f"Weekly flyer store {store_id}",
            status=status,
            valid_from=start,
            valid_to=start + timedelta(days=7) if valid_to == "default" else valid_to,
            products_extracted=products_extracted,
        )
        test_db.add(flyer)
        await test_db.commit()
        return flyer

    return _make


@pytest.fixture
async def file_session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
