"""Flyer Repository: SQLAlchemy implementation of core FlyerRepository.

Invariants:
    - Never commits: the calling service owns the transaction boundary
    - Point lookups bypass the identity map (populate_existing) so guards see fresh state
    - archive_older_than is ONE set-oriented UPDATE, never a per-row loop
    - Processing queues are ordered valid_from ASC, id ASC (stable oldest-eligible-first)
    - is_valid filtering and the processing queue share one pickup-window predicate
      with Flyer.is_valid and check_processable

Design Decisions:
    - Filters translated clause by clause from FlyerFilters; order_by already whitelisted
      by the schema so getattr on the model is safe
    - bulk UPDATE bumps version itself: it bypasses the ORM version_id_col machinery
"""

from datetime import datetime
from typing import Sequence

from sqlalchemy import (
    ColumnElement, Select, and_, func, not_, or_, select, update,
)
from sqlalchemy.ext.asyncio import AsyncSession

from flyerledger.core.domain_types import FlyerStatus, SortDirection
from flyerledger.models.flyer import Flyer
from flyerledger.schemas.filters import FlyerFilters


class SqlFlyerRepository:
    """Flyer persistence over an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, flyer_id: int) -> Flyer | None:
        return await self.db.get(Flyer, flyer_id, populate_existing=True)

    async def get_by_ids(self, flyer_ids: Sequence[int]) -> list[Flyer]:
        if not flyer_ids:
            return []
        result = await self.db.execute(
            select(Flyer).where(Flyer.id.in_(flyer_ids)).order_by(Flyer.id)
        )
        return list(result.scalars().all())

    async def find(
        self, filters: FlyerFilters, now: datetime, lead_until: datetime,
    ) -> list[Flyer]:
        query = _apply_filters(select(Flyer), filters, now, lead_until)
        query = _apply_pagination(query, filters)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count(
        self, filters: FlyerFilters, now: datetime, lead_until: datetime,
    ) -> int:
        query = _apply_filters(select(func.count(Flyer.id)), filters, now, lead_until)
        result = await self.db.execute(query)
        return int(result.scalar_one())

    async def save(self, flyer: Flyer) -> Flyer:
        """Write the full entity back; the UPDATE carries WHERE version = <loaded>."""
        self.db.add(flyer)
        await self.db.flush()
        return flyer

    async def get_processable(
        self, now: datetime, lead_until: datetime, limit: int | None = None,
    ) -> list[Flyer]:
        query = (
            select(Flyer)
            .where(Flyer.status == FlyerStatus.PENDING.value)
            .where(_in_pickup_window(now, lead_until))
            .order_by(Flyer.valid_from.asc(), Flyer.id.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_archivable(self, cutoff: datetime) -> list[Flyer]:
        result = await self.db.execute(
            select(Flyer)
            .where(Flyer.status != FlyerStatus.ARCHIVED.value)
            .where(Flyer.valid_from < cutoff)
            .order_by(Flyer.valid_from.asc(), Flyer.id.asc())
        )
        return list(result.scalars().all())

    async def archive_older_than(self, cutoff: datetime, archived_at: datetime) -> int:
        result = await self.db.execute(
            update(Flyer)
            .where(Flyer.status != FlyerStatus.ARCHIVED.value)
            .where(Flyer.valid_from < cutoff)
            .values(
                status=FlyerStatus.ARCHIVED.value,
                archived_at=archived_at,
                updated_at=archived_at,
                version=Flyer.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def status_counts(self) -> dict[str, int]:
        result = await self.db.execute(
            select(Flyer.status, func.count(Flyer.id)).group_by(Flyer.status)
        )
        return {status: int(count) for status, count in result.all()}


def _in_pickup_window(now: datetime, lead_until: datetime) -> ColumnElement[bool]:
    """SQL twin of check_pickup_window: starts before lead_until, not lapsed at now."""
    return and_(
        Flyer.valid_from < lead_until,
        or_(Flyer.valid_to.is_(None), Flyer.valid_to > now),
    )


def _apply_filters(
    query: Select, filters: FlyerFilters | None, now: datetime, lead_until: datetime,
) -> Select:
    if filters is None:
        return query
    if filters.store_ids:
        query = query.where(Flyer.store_id.in_(filters.store_ids))
    if filters.statuses:
        query = query.where(Flyer.status.in_([s.value for s in filters.statuses]))
    if filters.is_archived is True:
        query = query.where(Flyer.status == FlyerStatus.ARCHIVED.value)
    elif filters.is_archived is False:
        query = query.where(Flyer.status != FlyerStatus.ARCHIVED.value)
    if filters.valid_from is not None:
        query = query.where(Flyer.valid_from >= filters.valid_from)
    if filters.valid_to is not None:
        query = query.where(Flyer.valid_to <= filters.valid_to)
    if filters.valid_on is not None:
        query = query.where(Flyer.valid_from <= filters.valid_on).where(
            or_(Flyer.valid_to.is_(None), Flyer.valid_to > filters.valid_on)
        )
    if filters.is_valid is not None:
        valid = and_(
            Flyer.status != FlyerStatus.ARCHIVED.value,
            _in_pickup_window(now, lead_until),
        )
        query = query.where(valid if filters.is_valid else not_(valid))
    return query


def _apply_pagination(query: Select, filters: FlyerFilters | None) -> Select:
    if filters is None:
        return query.order_by(Flyer.valid_from.desc(), Flyer.id.desc())
    column = getattr(Flyer, filters.order_by)
    if filters.order_dir == SortDirection.ASC:
        query = query.order_by(column.asc(), Flyer.id.asc())
    else:
        query = query.order_by(column.desc(), Flyer.id.desc())
    if filters.limit > 0:
        query = query.limit(filters.limit)
    if filters.offset > 0:
        query = query.offset(filters.offset)
    return query
