"""Price History Repository: SQLAlchemy implementation of core PriceHistoryRepository.

Invariants:
    - Never commits: the calling service owns the transaction boundary
    - get_covering returns EVERY candidate covering the instant; picking one is
      core/price_resolution.py's job
    - A store filter on history listings matches that store exactly; only current-price
      candidates also include store-agnostic baselines
    - get_open locks the open rows (FOR UPDATE) so close-then-insert is serialized per key

Design Decisions:
    - Store filter built with IS NULL for the baseline key: `store_id = NULL` never matches
    - Default history order valid_from DESC, id DESC (most recent first, stable)
"""

from datetime import datetime

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from flyerledger.core.domain_types import SortDirection
from flyerledger.models.price_history import PriceHistory
from flyerledger.schemas.filters import PriceHistoryFilters


class SqlPriceHistoryRepository:
    """Price history persistence over an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, record_id: int) -> PriceHistory | None:
        return await self.db.get(PriceHistory, record_id, populate_existing=True)

    async def get_by_product_master_id(
        self,
        product_master_id: int,
        store_id: int | None,
        filters: PriceHistoryFilters | None,
    ) -> list[PriceHistory]:
        query = select(PriceHistory).where(
            PriceHistory.product_master_id == product_master_id,
        )
        query = _apply_store_filter(query, store_id)
        query = _apply_filters(query, filters)
        query = _apply_pagination(query, filters)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count(
        self,
        product_master_id: int,
        store_id: int | None,
        filters: PriceHistoryFilters | None,
    ) -> int:
        query = select(func.count(PriceHistory.id)).where(
            PriceHistory.product_master_id == product_master_id,
        )
        query = _apply_store_filter(query, store_id)
        query = _apply_filters(query, filters)
        result = await self.db.execute(query)
        return int(result.scalar_one())

    async def get_covering(
        self, product_master_id: int, store_id: int | None, at: datetime,
    ) -> list[PriceHistory]:
        query = (
            select(PriceHistory)
            .where(PriceHistory.product_master_id == product_master_id)
            .where(PriceHistory.is_active.is_(True))
            .where(PriceHistory.valid_from <= at)
            .where(or_(PriceHistory.valid_to.is_(None), PriceHistory.valid_to >= at))
            .order_by(PriceHistory.valid_from.desc(), PriceHistory.id.desc())
        )
        if store_id is not None:
            query = query.where(or_(
                PriceHistory.store_id == store_id, PriceHistory.store_id.is_(None),
            ))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_open(
        self, product_master_id: int, store_id: int | None,
    ) -> list[PriceHistory]:
        query = (
            select(PriceHistory)
            .where(PriceHistory.product_master_id == product_master_id)
            .where(PriceHistory.valid_to.is_(None))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        query = _apply_store_filter(query, store_id, baseline_when_none=True)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def add(self, record: PriceHistory) -> PriceHistory:
        self.db.add(record)
        await self.db.flush()
        return record

    async def save(self, record: PriceHistory) -> PriceHistory:
        self.db.add(record)
        await self.db.flush()
        return record

    async def delete(self, record_id: int) -> bool:
        record = await self.db.get(PriceHistory, record_id)
        if record is None:
            return False
        await self.db.delete(record)
        await self.db.flush()
        return True


def _apply_store_filter(
    query: Select, store_id: int | None, baseline_when_none: bool = False,
) -> Select:
    """Restrict to one store. With baseline_when_none, None selects the baseline key."""
    if store_id is not None:
        return query.where(PriceHistory.store_id == store_id)
    if baseline_when_none:
        return query.where(PriceHistory.store_id.is_(None))
    return query


def _apply_filters(query: Select, filters: PriceHistoryFilters | None) -> Select:
    if filters is None:
        return query
    if filters.date_from is not None:
        query = query.where(PriceHistory.valid_from >= filters.date_from)
    if filters.date_to is not None:
        query = query.where(PriceHistory.valid_from <= filters.date_to)
    if filters.is_on_sale is not None:
        query = query.where(PriceHistory.is_on_sale.is_(filters.is_on_sale))
    if filters.is_active is not None:
        query = query.where(PriceHistory.is_active.is_(filters.is_active))
    if filters.min_price is not None:
        query = query.where(PriceHistory.price >= filters.min_price)
    if filters.max_price is not None:
        query = query.where(PriceHistory.price <= filters.max_price)
    if filters.source is not None:
        query = query.where(PriceHistory.source == filters.source.value)
    return query


def _apply_pagination(query: Select, filters: PriceHistoryFilters | None) -> Select:
    if filters is None:
        return query.order_by(PriceHistory.valid_from.desc(), PriceHistory.id.desc())
    column = getattr(PriceHistory, filters.order_by)
    if filters.order_dir == SortDirection.ASC:
        query = query.order_by(column.asc(), PriceHistory.id.asc())
    else:
        query = query.order_by(column.desc(), PriceHistory.id.desc())
    if filters.limit > 0:
        query = query.limit(filters.limit)
    if filters.offset > 0:
        query = query.offset(filters.offset)
    return query
