"""Price History Service: temporal price ledger with point-in-time resolution.

Invariants:
    - create() is close-then-insert in ONE transaction: an open-ended observation closes
      the key's open record at the new valid_from, then inserts
    - An open record starting after the new valid_from is a PriceWindowConflictError;
      nothing is written
    - get_current_price() resolves through core/price_resolution.py: latest valid_from wins,
      store-specific beats baseline, NotFound when nothing covers the instant
    - update()/delete() are administrative: they do NOT re-check temporal invariants
    - Prices stay Decimal end to end

Design Decisions:
    - The unique open-window index backs the close-then-insert: two racing creates for
      one key cannot both leave an open record, the loser gets PriceWindowConflictError
    - A conflict or database failure inside create() rolls back the caller's session,
      expiring every record loaded through it; reload by id afterwards
    - Window and amount checks raise ValidationError before the transaction opens;
      an amount NUMERIC(10, 2) would round is rejected, so the returned record
      always equals what was stored
    - Only a violation of the open-window index is a PriceWindowConflictError; any
      other IntegrityError is mapped by transaction() to DatabaseError
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from flyerledger.core.domain_types import PriceHistoryId, ProductMasterId, StoreId
from flyerledger.core.errors import (
    ErrorContext, PriceWindowConflictError, ResourceNotFoundError, ValidationError,
)
from flyerledger.core.price_resolution import (
    check_amount, check_open_window_conflict, check_window, records_to_close,
    resolve_current,
)
from flyerledger.core.repository_protocols import PriceHistoryRepository
from flyerledger.infrastructure.database import transaction
from flyerledger.infrastructure.price_history_repository import SqlPriceHistoryRepository
from flyerledger.models.price_history import OPEN_KEY_INDEX, PriceHistory
from flyerledger.schemas.filters import PriceHistoryFilters

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriceHistoryService:
    """Append-biased price observations per (product master, optional store)."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.records: PriceHistoryRepository = SqlPriceHistoryRepository(db)
        self.clock = clock

    async def create(self, record: PriceHistory) -> PriceHistory:
        """Insert an observation, closing the key's open window when superseded."""
        ctx = _ctx("create_price_history", record.product_master_id, record.store_id)
        _validate(record, ctx)

        async with transaction(self.db, ctx.operation, ctx):
            open_records = await self.records.get_open(
                record.product_master_id, record.store_id,
            )
            if record.valid_to is None:
                conflict = check_open_window_conflict(open_records, record.valid_from)
                if conflict:
                    raise PriceWindowConflictError(conflict["message"], ctx)

            for previous in records_to_close(open_records, record.valid_to):
                previous.valid_to = record.valid_from
                await self.records.save(previous)
                logger.info(
                    f"Closed price record {previous.id} at {record.valid_from.isoformat()}",
                    extra={**ctx.keys(), "record_id": previous.id},
                )

            try:
                await self.records.add(record)
            except IntegrityError as e:
                if OPEN_KEY_INDEX not in str(e.orig):
                    raise
                raise PriceWindowConflictError(
                    "Another open price record was created concurrently for this key.",
                    ctx,
                ) from e

        logger.info(
            f"Recorded price {record.price} {record.currency}",
            extra={**ctx.keys(), "record_id": record.id},
        )
        return record

    async def get_current_price(
        self,
        product_master_id: ProductMasterId,
        store_id: StoreId | None = None,
        at: datetime | None = None,
    ) -> PriceHistory:
        """The single record in effect at `at` (default now)."""
        ctx = _ctx("get_current_price", product_master_id, store_id)
        instant = _as_utc(at) if at is not None else self.clock()
        async with transaction(self.db, ctx.operation, ctx):
            candidates = await self.records.get_covering(
                product_master_id, store_id, instant,
            )
        current = resolve_current(candidates, instant, store_id)
        if current is None:
            raise ResourceNotFoundError(
                "Current price",
                f"product_master={product_master_id} store={store_id} at={instant.isoformat()}",
                ctx,
            )
        return current

    async def get_by_product_master_id(
        self,
        product_master_id: ProductMasterId,
        store_id: StoreId | None = None,
        filters: PriceHistoryFilters | None = None,
    ) -> list[PriceHistory]:
        """Full history, most recent valid_from first unless filters order otherwise."""
        ctx = _ctx("get_price_history", product_master_id, store_id)
        async with transaction(self.db, ctx.operation, ctx):
            return await self.records.get_by_product_master_id(
                product_master_id, store_id, filters,
            )

    async def get_price_history_count(
        self,
        product_master_id: ProductMasterId,
        store_id: StoreId | None = None,
        filters: PriceHistoryFilters | None = None,
    ) -> int:
        ctx = _ctx("count_price_history", product_master_id, store_id)
        async with transaction(self.db, ctx.operation, ctx):
            return await self.records.count(product_master_id, store_id, filters)

    async def get_by_id(self, record_id: PriceHistoryId) -> PriceHistory:
        ctx = ErrorContext(operation="get_price_history_by_id", record_id=record_id)
        async with transaction(self.db, ctx.operation, ctx):
            record = await self.records.get_by_id(record_id)
        if record is None:
            raise ResourceNotFoundError("Price history", str(record_id), ctx)
        return record

    async def update(self, record: PriceHistory) -> PriceHistory:
        """Administrative correction. Temporal invariants are NOT re-validated; amounts are."""
        ctx = _ctx("update_price_history", record.product_master_id, record.store_id)
        ctx.record_id = record.id
        _check_amounts(record, ctx)
        async with transaction(self.db, ctx.operation, ctx):
            await self.records.save(record)
        logger.warning(
            f"Price record {record.id} updated administratively",
            extra=ctx.keys(),
        )
        return record

    async def delete(self, record_id: PriceHistoryId) -> None:
        """Administrative removal. Does not reopen any window the record had closed."""
        ctx = ErrorContext(operation="delete_price_history", record_id=record_id)
        async with transaction(self.db, ctx.operation, ctx):
            deleted = await self.records.delete(record_id)
        if not deleted:
            raise ResourceNotFoundError("Price history", str(record_id), ctx)
        logger.warning(
            f"Price record {record_id} deleted administratively", extra=ctx.keys(),
        )


def _ctx(
    operation: str, product_master_id: int, store_id: int | None,
) -> ErrorContext:
    return ErrorContext(
        operation=operation, product_master_id=product_master_id, store_id=store_id,
    )


def _validate(record: PriceHistory, ctx: ErrorContext) -> None:
    """Normalize naive timestamps to UTC, then check window and price."""
    record.valid_from = _as_utc(record.valid_from)
    record.valid_to = _as_utc(record.valid_to)
    error = check_window(record.valid_from, record.valid_to)
    if error:
        raise ValidationError(error["message"], "valid_to", ctx)
    _check_amounts(record, ctx)


def _check_amounts(record: PriceHistory, ctx: ErrorContext) -> None:
    """Amounts NUMERIC(10, 2) would round or reject are refused up front."""
    amounts = {"price": record.price}
    if record.original_price is not None:
        amounts["original_price"] = record.original_price
    for field, amount in amounts.items():
        error = check_amount(amount, field)
        if error:
            raise ValidationError(error["message"], field, ctx)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
