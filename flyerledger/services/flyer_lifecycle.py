"""Flyer Lifecycle Manager: guarded state transitions and batch archival for flyers.

Invariants:
    - Each operation is one transaction: load, guard, mutate, write, then commit or roll back
    - Guards (core/enforce_transitions.py) run against a freshly loaded row on every call;
      a rejected transition raises InvalidStateError before anything is written
    - Writes carry the loaded version; a lost race raises ConcurrencyError instead of
      last-write-wins
    - ResourceNotFoundError (permanent) is distinct from InvalidStateError and from
      DatabaseError / ConcurrencyError (retryable)
    - archive_older_than is a single set-oriented UPDATE: all-or-nothing

Design Decisions:
    - Re-applying complete/fail/archive with identical outcome returns the flyer untouched
      (no write, no version bump) so at-least-once workers can retry safely
    - `clock` injectable: tests pin "now" without patching datetime
    - A rejected or failed call rolls back the caller's session and so expires every
      Flyer loaded through it; keep ids, not instances, across a failed call
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from flyerledger.config import get_settings
from flyerledger.core.domain_types import FlyerId, FlyerStatus
from flyerledger.core.enforce_transitions import is_reapplication, validate_transition
from flyerledger.core.errors import (
    ErrorContext, InvalidStateError, ResourceNotFoundError, ValidationError,
)
from flyerledger.core.repository_protocols import FlyerRepository
from flyerledger.infrastructure.database import transaction
from flyerledger.infrastructure.flyer_repository import SqlFlyerRepository
from flyerledger.models.flyer import Flyer
from flyerledger.schemas.filters import FlyerFilters

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FlyerLifecycleManager:
    """Drives flyers through pending -> processing -> completed/failed -> archived."""

    def __init__(
        self,
        db: AsyncSession,
        lead_time: timedelta | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        settings = get_settings()
        self.db = db
        self.flyers: FlyerRepository = SqlFlyerRepository(db)
        self.lead_time = lead_time if lead_time is not None else settings.processing_lead_time
        self.archive_after_days = settings.archive_after_days
        self.batch_size = settings.processing_batch_size
        self.clock = clock

    # ─── Transitions ─────────────────────────────────────────────

    async def start_processing(self, flyer_id: FlyerId) -> Flyer:
        """pending -> processing. Guard: pending, not lapsed, within lead time."""
        ctx = _ctx("start_processing", flyer_id)
        async with transaction(self.db, ctx.operation, ctx):
            flyer = await self._load(flyer_id, ctx)
            now = self.clock()
            self._guard(flyer, FlyerStatus.PROCESSING, now, ctx)
            previous = flyer.status
            flyer.status = FlyerStatus.PROCESSING.value
            flyer.extraction_started_at = now
            await self.flyers.save(flyer)
        self._log_transition(flyer, previous)
        return flyer

    async def complete_processing(
        self, flyer_id: FlyerId, products_extracted: int,
    ) -> Flyer:
        """processing -> completed, recording products_extracted exactly once."""
        ctx = _ctx("complete_processing", flyer_id)
        if products_extracted < 0:
            raise ValidationError(
                "products_extracted must be >= 0", "products_extracted", ctx,
            )
        async with transaction(self.db, ctx.operation, ctx):
            flyer = await self._load(flyer_id, ctx)
            now = self.clock()
            self._guard(flyer, FlyerStatus.COMPLETED, now, ctx, products_extracted)
            if is_reapplication(flyer, FlyerStatus.COMPLETED, products_extracted):
                return flyer
            previous = flyer.status
            flyer.status = FlyerStatus.COMPLETED.value
            flyer.products_extracted = products_extracted
            flyer.processed_at = now
            await self.flyers.save(flyer)
        self._log_transition(flyer, previous)
        return flyer

    async def fail_processing(self, flyer_id: FlyerId) -> Flyer:
        """processing -> failed. products_extracted is left untouched."""
        ctx = _ctx("fail_processing", flyer_id)
        async with transaction(self.db, ctx.operation, ctx):
            flyer = await self._load(flyer_id, ctx)
            now = self.clock()
            self._guard(flyer, FlyerStatus.FAILED, now, ctx)
            if is_reapplication(flyer, FlyerStatus.FAILED):
                return flyer
            previous = flyer.status
            flyer.status = FlyerStatus.FAILED.value
            flyer.processed_at = now
            await self.flyers.save(flyer)
        self._log_transition(flyer, previous)
        return flyer

    async def archive_flyer(self, flyer_id: FlyerId) -> Flyer:
        """Any status -> archived. Archiving an archived flyer is a no-op."""
        ctx = _ctx("archive_flyer", flyer_id)
        async with transaction(self.db, ctx.operation, ctx):
            flyer = await self._load(flyer_id, ctx)
            if is_reapplication(flyer, FlyerStatus.ARCHIVED):
                return flyer
            previous = flyer.status
            flyer.status = FlyerStatus.ARCHIVED.value
            flyer.archived_at = self.clock()
            await self.flyers.save(flyer)
        self._log_transition(flyer, previous)
        return flyer

    # ─── Batch archival ──────────────────────────────────────────

    async def archive_older_than(self, days: int) -> int:
        """Archive every non-archived flyer whose valid_from is more than `days` old."""
        ctx = ErrorContext(operation="archive_older_than")
        if days < 0:
            raise ValidationError("days must be >= 0", "days", ctx)
        now = self.clock()
        async with transaction(self.db, ctx.operation, ctx):
            count = await self.flyers.archive_older_than(
                now - timedelta(days=days), now,
            )
        logger.info(
            f"Archived {count} flyer(s) older than {days} day(s)",
            extra={"operation": ctx.operation, "archived_count": count, "days": days},
        )
        return count

    async def archive_stale_flyers(self) -> int:
        """Periodic sweep entry point: archive_older_than(settings.archive_after_days)."""
        return await self.archive_older_than(self.archive_after_days)

    async def preview_archivable(self, days: int) -> list[Flyer]:
        """Dry run: flyers archive_older_than(days) would archive right now."""
        ctx = ErrorContext(operation="preview_archivable")
        if days < 0:
            raise ValidationError("days must be >= 0", "days", ctx)
        async with transaction(self.db, ctx.operation, ctx):
            return await self.flyers.get_archivable(
                self.clock() - timedelta(days=days),
            )

    async def archive_statistics(self) -> dict[str, int]:
        """Totals for the sweep report: total, active (non-archived), archived."""
        ctx = ErrorContext(operation="archive_statistics")
        async with transaction(self.db, ctx.operation, ctx):
            counts = await self.flyers.status_counts()
        total = sum(counts.values())
        archived = counts.get(FlyerStatus.ARCHIVED.value, 0)
        return {"total": total, "active": total - archived, "archived": archived}

    # ─── Processing queues ───────────────────────────────────────

    async def get_processable_flyers(self) -> list[Flyer]:
        """Every flyer the pickup guard would accept, oldest-eligible-first."""
        ctx = ErrorContext(operation="get_processable_flyers")
        now = self.clock()
        async with transaction(self.db, ctx.operation, ctx):
            return await self.flyers.get_processable(now, now + self.lead_time)

    async def get_flyers_for_processing(self, limit: int | None = None) -> list[Flyer]:
        """Stable prefix of get_processable_flyers() for a polling worker."""
        ctx = ErrorContext(operation="get_flyers_for_processing")
        if limit is None:
            limit = self.batch_size
        if limit <= 0:
            raise ValidationError("limit must be > 0", "limit", ctx)
        now = self.clock()
        async with transaction(self.db, ctx.operation, ctx):
            return await self.flyers.get_processable(
                now, now + self.lead_time, limit=limit,
            )

    # ─── Reads ───────────────────────────────────────────────────

    async def get_by_id(self, flyer_id: FlyerId) -> Flyer:
        ctx = _ctx("get_flyer", flyer_id)
        async with transaction(self.db, ctx.operation, ctx):
            return await self._load(flyer_id, ctx)

    async def get_by_ids(self, flyer_ids: Sequence[FlyerId]) -> list[Flyer]:
        ctx = ErrorContext(operation="get_flyers_by_ids")
        async with transaction(self.db, ctx.operation, ctx):
            return await self.flyers.get_by_ids(flyer_ids)

    async def list_flyers(self, filters: FlyerFilters | None = None) -> list[Flyer]:
        ctx = ErrorContext(operation="list_flyers")
        async with transaction(self.db, ctx.operation, ctx):
            now = self.clock()
            return await self.flyers.find(
                filters or FlyerFilters(), now, now + self.lead_time,
            )

    async def count_flyers(self, filters: FlyerFilters | None = None) -> int:
        ctx = ErrorContext(operation="count_flyers")
        async with transaction(self.db, ctx.operation, ctx):
            now = self.clock()
            return await self.flyers.count(
                filters or FlyerFilters(), now, now + self.lead_time,
            )

    # ─── Helpers ─────────────────────────────────────────────────

    async def _load(self, flyer_id: FlyerId, ctx: ErrorContext) -> Flyer:
        flyer = await self.flyers.get_by_id(flyer_id)
        if flyer is None:
            raise ResourceNotFoundError("Flyer", str(flyer_id), ctx)
        return flyer

    def _guard(
        self,
        flyer: Flyer,
        target: FlyerStatus,
        now: datetime,
        ctx: ErrorContext,
        products_extracted: int | None = None,
    ) -> None:
        error = validate_transition(
            flyer, target, now, self.lead_time, products_extracted,
        )
        if error:
            logger.warning(
                error["message"],
                extra={
                    "operation": ctx.operation, "flyer_id": flyer.id,
                    "error_code": error["error_code"],
                    "from_status": flyer.status, "to_status": target.value,
                },
            )
            raise InvalidStateError(
                error["message"], error["error_code"], flyer.status, ctx,
            )

    def _log_transition(self, flyer: Flyer, previous: str) -> None:
        logger.info(
            f"Flyer {flyer.id}: {previous} -> {flyer.status}",
            extra={
                "flyer_id": flyer.id, "store_id": flyer.store_id,
                "from_status": previous, "to_status": flyer.status,
            },
        )


def _ctx(operation: str, flyer_id: FlyerId) -> ErrorContext:
    return ErrorContext(operation=operation, flyer_id=flyer_id)
