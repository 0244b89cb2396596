"""Archive Sweep: periodic job that archives stale flyers and reports totals.

Invariants:
    - One sweep = one session; the archive itself is one set-oriented UPDATE
    - dry_run never writes: it lists what would be archived and stops
    - The threshold defaults to settings.archive_after_days (7)

Design Decisions:
    - Takes a session factory, not a session: schedulers call it with no request scope
    - Statistics failure is logged, not raised: the archive has already committed
    - main() is the console entry point (flyerledger-archive); it owns logging setup
"""

import argparse
import asyncio
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flyerledger.config import get_settings
from flyerledger.core.errors import LedgerError
from flyerledger.db.session import create_session_factory, dispose_session_factory
from flyerledger.infrastructure.observability import setup_logging
from flyerledger.services.flyer_lifecycle import FlyerLifecycleManager

logger = logging.getLogger(__name__)


async def run_archive_sweep(
    session_factory: async_sessionmaker[AsyncSession],
    days: int | None = None,
    dry_run: bool = False,
) -> dict:
    """Archive flyers older than `days` and return {"candidates", "archived", "statistics"}."""
    threshold = days if days is not None else get_settings().archive_after_days

    async with session_factory() as db:
        manager = FlyerLifecycleManager(db)
        candidates = await manager.preview_archivable(threshold)
        for flyer in candidates:
            logger.info(
                f"Would archive flyer {flyer.id} ({flyer.validity_period()})",
                extra={
                    "operation": "archive_sweep", "flyer_id": flyer.id,
                    "store_id": flyer.store_id, "days": _age_days(flyer.valid_from, manager),
                },
            )

        if dry_run or not candidates:
            logger.info(
                "Dry run - no changes made" if dry_run else "No flyers to archive",
                extra={"operation": "archive_sweep", "days": threshold},
            )
            return {"candidates": len(candidates), "archived": 0, "statistics": None}

        archived = await manager.archive_older_than(threshold)

        statistics = None
        try:
            statistics = await manager.archive_statistics()
        except LedgerError as e:
            logger.warning(
                f"Failed to collect flyer statistics: {e.message}",
                extra={"operation": "archive_sweep", "error_code": e.code},
            )

    return {"candidates": len(candidates), "archived": archived, "statistics": statistics}


def _age_days(valid_from: datetime, manager: FlyerLifecycleManager) -> int:
    return (manager.clock() - valid_from).days


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="flyerledger-archive",
        description="Archive flyers whose validity started more than N days ago.",
    )
    parser.add_argument("--days", type=int, default=None,
                        help="age threshold in days (default: ARCHIVE_AFTER_DAYS)")
    parser.add_argument("--dry-run", action="store_true",
                        help="list what would be archived without making changes")
    parser.add_argument("--debug", action="store_true", help="human-readable DEBUG logs")
    return parser.parse_args(argv)


async def _sweep_once(days: int | None, dry_run: bool) -> dict:
    session_factory = create_session_factory()
    try:
        return await run_archive_sweep(session_factory, days, dry_run)
    finally:
        await dispose_session_factory(session_factory)


def main(argv: list[str] | None = None) -> dict:
    """Console entry point for cron / scheduled jobs."""
    args = _parse_args(argv)
    settings = get_settings()
    if args.debug:
        setup_logging("DEBUG", "text")
    else:
        setup_logging(settings.log_level, settings.log_format)

    report = asyncio.run(_sweep_once(args.days, args.dry_run))
    logger.info(
        f"Archive sweep finished: {report['archived']} of {report['candidates']} archived",
        extra={"operation": "archive_sweep", "archived_count": report["archived"]},
    )
    return report


if __name__ == "__main__":
    main()
