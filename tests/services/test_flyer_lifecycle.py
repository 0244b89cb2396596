"""Flyer Lifecycle Manager: transitions, idempotency, batch archival and queues.

Tests cover:
    - start_processing only from pending, within the validity window and lead time
    - complete/fail record outcome once; identical re-application is a no-op
    - archived is terminal: every later transition raises InvalidStateError
    - NotFound, InvalidState and Database errors stay distinct
    - archive_older_than archives exactly the stale flyers in one statement
    - processing queue order, limit and eligibility
    - is_valid filtering, its complement, and agreement with Flyer.is_valid
    - a rejected or failed call leaves the stored row untouched (checked by id)
    - a lost optimistic-concurrency race raises ConcurrencyError

Design Decisions:
    - Clock pinned via the `now` fixture; flyers are seeded relative to it
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from flyerledger.core.domain_types import FlyerStatus
from flyerledger.core.errors import (
    ConcurrencyError, DatabaseError, InvalidStateError,
    ResourceNotFoundError, ValidationError,
)
from flyerledger.models.flyer import Flyer
from flyerledger.schemas.filters import FlyerFilters
from flyerledger.services.flyer_lifecycle import FlyerLifecycleManager


# ─── start_processing ────────────────────────────────────────────

async def test_start_processing_moves_pending_to_processing(manager, make_flyer, now):
    flyer = await make_flyer()

    result = await manager.start_processing(flyer.id)

    assert result.status == FlyerStatus.PROCESSING.value
    assert result.extraction_started_at == now
    assert result.processed_at is None
    assert result.version == 2


async def test_start_processing_rejects_non_pending(manager, make_flyer):
    flyer = await make_flyer(status="completed", products_extracted=4)

    with pytest.raises(InvalidStateError) as exc_info:
        await manager.start_processing(flyer.id)

    assert exc_info.value.reason_code == "NOT_PENDING"
    assert exc_info.value.current_status == "completed"


async def test_start_processing_twice_second_call_rejected(manager, make_flyer):
    flyer = await make_flyer()
    await manager.start_processing(flyer.id)

    with pytest.raises(InvalidStateError):
        await manager.start_processing(flyer.id)


async def test_start_processing_rejects_lapsed_flyer(manager, make_flyer, now):
    flyer = await make_flyer(
        valid_from=now - timedelta(days=10), valid_to=now - timedelta(days=3),
    )

    with pytest.raises(InvalidStateError) as exc_info:
        await manager.start_processing(flyer.id)

    assert exc_info.value.reason_code == "VALIDITY_LAPSED"


async def test_start_processing_respects_lead_time(manager, make_flyer, now):
    soon = await make_flyer(valid_from=now + timedelta(hours=12))
    later = await make_flyer(valid_from=now + timedelta(days=3))

    await manager.start_processing(soon.id)
    with pytest.raises(InvalidStateError) as exc_info:
        await manager.start_processing(later.id)

    assert exc_info.value.reason_code == "NOT_YET_VALID"


async def test_rejected_transition_writes_nothing(manager, make_flyer):
    flyer_id = (await make_flyer(status="failed")).id

    with pytest.raises(InvalidStateError):
        await manager.start_processing(flyer_id)

    reloaded = await manager.get_by_id(flyer_id)
    assert reloaded.status == FlyerStatus.FAILED.value
    assert reloaded.version == 1


async def test_unknown_flyer_is_not_found_not_invalid_state(manager):
    with pytest.raises(ResourceNotFoundError) as exc_info:
        await manager.start_processing(9999)

    assert not isinstance(exc_info.value, InvalidStateError)
    assert exc_info.value.context.flyer_id == 9999


# ─── complete_processing ─────────────────────────────────────────

async def test_complete_records_products_and_timestamp(manager, make_flyer, now):
    flyer = await make_flyer()
    await manager.start_processing(flyer.id)

    result = await manager.complete_processing(flyer.id, 12)

    assert result.status == FlyerStatus.COMPLETED.value
    assert result.products_extracted == 12
    assert result.processed_at == now


async def test_complete_with_zero_products(manager, make_flyer):
    flyer = await make_flyer(status="processing")

    result = await manager.complete_processing(flyer.id, 0)

    assert result.products_extracted == 0


async def test_complete_again_with_same_count_is_noop(manager, make_flyer):
    flyer = await make_flyer(status="processing")
    first = await manager.complete_processing(flyer.id, 12)
    version = first.version

    again = await manager.complete_processing(flyer.id, 12)

    assert again.products_extracted == 12
    assert again.version == version


async def test_complete_again_with_different_count_rejected(manager, make_flyer):
    flyer_id = (await make_flyer(status="processing")).id
    await manager.complete_processing(flyer_id, 12)

    with pytest.raises(InvalidStateError) as exc_info:
        await manager.complete_processing(flyer_id, 13)

    assert exc_info.value.reason_code == "COUNT_ALREADY_RECORDED"
    assert (await manager.get_by_id(flyer_id)).products_extracted == 12


async def test_complete_from_pending_rejected(manager, make_flyer):
    flyer = await make_flyer()

    with pytest.raises(InvalidStateError):
        await manager.complete_processing(flyer.id, 3)


async def test_complete_rejects_negative_count(manager, make_flyer):
    flyer = await make_flyer(status="processing")

    with pytest.raises(ValidationError):
        await manager.complete_processing(flyer.id, -1)


# ─── fail_processing ─────────────────────────────────────────────

async def test_fail_leaves_products_unset(manager, make_flyer, now):
    flyer = await make_flyer(status="processing")

    result = await manager.fail_processing(flyer.id)

    assert result.status == FlyerStatus.FAILED.value
    assert result.products_extracted is None
    assert result.processed_at == now


async def test_fail_twice_is_noop(manager, make_flyer):
    flyer = await make_flyer(status="processing")
    first = await manager.fail_processing(flyer.id)
    version = first.version

    again = await manager.fail_processing(flyer.id)

    assert again.version == version


async def test_fail_from_pending_rejected(manager, make_flyer):
    flyer = await make_flyer()

    with pytest.raises(InvalidStateError):
        await manager.fail_processing(flyer.id)


# ─── archive_flyer ───────────────────────────────────────────────

@pytest.mark.parametrize("status", ["pending", "processing", "completed", "failed"])
async def test_archive_from_any_live_status(manager, make_flyer, now, status):
    flyer = await make_flyer(status=status)

    result = await manager.archive_flyer(flyer.id)

    assert result.status == FlyerStatus.ARCHIVED.value
    assert result.archived_at == now


async def test_archived_flyer_rejects_every_transition(manager, make_flyer):
    flyer = await make_flyer()
    await manager.archive_flyer(flyer.id)

    for call in (
        manager.start_processing(flyer.id),
        manager.complete_processing(flyer.id, 1),
        manager.fail_processing(flyer.id),
    ):
        with pytest.raises(InvalidStateError) as exc_info:
            await call
        assert exc_info.value.reason_code == "FLYER_ARCHIVED"


async def test_archive_twice_is_noop(manager, make_flyer):
    flyer = await make_flyer()
    first = await manager.archive_flyer(flyer.id)
    archived_at, version = first.archived_at, first.version

    again = await manager.archive_flyer(flyer.id)

    assert again.archived_at == archived_at
    assert again.version == version


# ─── archive_older_than ──────────────────────────────────────────

async def test_archive_older_than_only_archives_stale(manager, make_flyer, now):
    old = await make_flyer(valid_from=now - timedelta(days=10))
    mid = await make_flyer(valid_from=now - timedelta(days=5))
    new = await make_flyer(valid_from=now - timedelta(days=1))

    count = await manager.archive_older_than(7)

    assert count == 1
    assert (await manager.get_by_id(old.id)).status == FlyerStatus.ARCHIVED.value
    assert (await manager.get_by_id(mid.id)).status == FlyerStatus.PENDING.value
    assert (await manager.get_by_id(new.id)).status == FlyerStatus.PENDING.value


async def test_archive_older_than_skips_already_archived(manager, make_flyer, now):
    await make_flyer(status="archived", valid_from=now - timedelta(days=30))
    await make_flyer(status="completed", valid_from=now - timedelta(days=30))

    assert await manager.archive_older_than(7) == 1
    assert await manager.archive_older_than(7) == 0


async def test_archive_older_than_bumps_version(manager, make_flyer, now):
    flyer = await make_flyer(valid_from=now - timedelta(days=10))

    await manager.archive_older_than(7)

    reloaded = await manager.get_by_id(flyer.id)
    assert reloaded.version == 2
    assert reloaded.archived_at == now


async def test_archive_older_than_rejects_negative_days(manager):
    with pytest.raises(ValidationError):
        await manager.archive_older_than(-1)


async def test_archive_stale_flyers_uses_configured_threshold(
    test_db, make_flyer, now, monkeypatch,
):
    monkeypatch.setenv("ARCHIVE_AFTER_DAYS", "3")
    sweeper = FlyerLifecycleManager(test_db, clock=lambda: now)
    await make_flyer(valid_from=now - timedelta(days=5))
    await make_flyer(valid_from=now - timedelta(days=1))

    assert await sweeper.archive_stale_flyers() == 1


async def test_preview_archivable_writes_nothing(manager, make_flyer, now):
    flyer = await make_flyer(valid_from=now - timedelta(days=10))

    preview = await manager.preview_archivable(7)

    assert [f.id for f in preview] == [flyer.id]
    assert (await manager.get_by_id(flyer.id)).status == FlyerStatus.PENDING.value


async def test_archive_statistics(manager, make_flyer):
    await make_flyer()
    await make_flyer(status="completed", products_extracted=2)
    await make_flyer(status="archived")

    assert await manager.archive_statistics() == {
        "total": 3, "active": 2, "archived": 1,
    }


# ─── Processing queues ───────────────────────────────────────────

async def test_processable_queue_is_oldest_first_and_filtered(manager, make_flyer, now):
    second = await make_flyer(valid_from=now - timedelta(days=1))
    first = await make_flyer(valid_from=now - timedelta(days=2))
    third = await make_flyer(valid_from=now + timedelta(hours=6))
    await make_flyer(valid_from=now + timedelta(days=3))
    await make_flyer(valid_from=now - timedelta(days=9), valid_to=now - timedelta(days=2))
    await make_flyer(status="processing")
    await make_flyer(status="archived")

    queue = await manager.get_processable_flyers()

    assert [f.id for f in queue] == [first.id, second.id, third.id]


async def test_processing_batch_is_stable_prefix(manager, make_flyer, now):
    for days in (3, 2, 1):
        await make_flyer(valid_from=now - timedelta(days=days))

    full = await manager.get_processable_flyers()
    batch = await manager.get_flyers_for_processing(2)

    assert [f.id for f in batch] == [f.id for f in full[:2]]


async def test_processing_batch_rejects_non_positive_limit(manager):
    with pytest.raises(ValidationError):
        await manager.get_flyers_for_processing(0)


async def test_queue_entries_pass_the_pickup_guard(manager, make_flyer):
    await make_flyer()
    await make_flyer()

    for flyer in await manager.get_processable_flyers():
        started = await manager.start_processing(flyer.id)
        assert started.status == FlyerStatus.PROCESSING.value


# ─── Reads ───────────────────────────────────────────────────────

async def test_get_by_ids_skips_missing(manager, make_flyer):
    a = await make_flyer()
    b = await make_flyer()

    found = await manager.get_by_ids([b.id, a.id, 9999])

    assert sorted(f.id for f in found) == sorted([a.id, b.id])


async def test_list_and_count_with_filters(manager, make_flyer, now):
    await make_flyer(store_id=1)
    await make_flyer(store_id=2)
    await make_flyer(store_id=2, status="archived")

    store_two = FlyerFilters(store_ids=(2,), is_archived=False)
    listed = await manager.list_flyers(store_two)

    assert [f.store_id for f in listed] == [2]
    assert await manager.count_flyers(store_two) == 1
    assert await manager.count_flyers() == 3


async def test_list_flyers_valid_now(manager, make_flyer, now):
    current = await make_flyer()
    await make_flyer(valid_from=now + timedelta(days=2))
    await make_flyer(valid_from=now - timedelta(days=9), valid_to=now - timedelta(days=2))

    listed = await manager.list_flyers(FlyerFilters(is_valid=True))

    assert [f.id for f in listed] == [current.id]


async def test_list_flyers_not_valid_is_the_complement(manager, make_flyer, now):
    current = await make_flyer()
    future = await make_flyer(valid_from=now + timedelta(days=2))
    lapsed = await make_flyer(
        valid_from=now - timedelta(days=9), valid_to=now - timedelta(days=2),
    )
    archived = await make_flyer(status="archived")

    invalid = FlyerFilters(is_valid=False)
    listed = await manager.list_flyers(invalid)

    assert sorted(f.id for f in listed) == sorted([future.id, lapsed.id, archived.id])
    assert current.id not in {f.id for f in listed}
    assert await manager.count_flyers(invalid) == 3
    assert await manager.count_flyers(FlyerFilters(is_valid=True)) == 1


async def test_valid_filter_agrees_with_model_helper(manager, make_flyer, now):
    await make_flyer(valid_from=now + timedelta(hours=12))
    await make_flyer(valid_from=now + timedelta(hours=36))

    listed = await manager.list_flyers(FlyerFilters(is_valid=True))
    everything = await manager.list_flyers()

    assert {f.id for f in listed} == {
        f.id for f in everything if f.is_valid(now, manager.lead_time)
    }


# ─── Failures ────────────────────────────────────────────────────

async def test_database_failure_rolls_back_and_is_retryable(
    manager, make_flyer, monkeypatch,
):
    flyer_id = (await make_flyer()).id

    async def broken_save(entity):
        raise OperationalError("UPDATE flyers", {}, Exception("connection reset"))

    monkeypatch.setattr(manager.flyers, "save", broken_save)

    with pytest.raises(DatabaseError) as exc_info:
        await manager.start_processing(flyer_id)

    assert exc_info.value.retryable is True
    assert exc_info.value.context.operation == "start_processing"
    assert "connection reset" not in exc_info.value.message
    monkeypatch.undo()
    assert (await manager.get_by_id(flyer_id)).status == FlyerStatus.PENDING.value


async def test_lost_race_raises_concurrency_error(file_session_factory, now):
    async with file_session_factory() as seed:
        flyer = Flyer(store_id=1, valid_from=now - timedelta(days=1))
        seed.add(flyer)
        await seed.commit()
        flyer_id = flyer.id

    async with file_session_factory() as db_a, file_session_factory() as db_b:
        stale = await db_b.get(Flyer, flyer_id)
        await db_b.commit()

        winner = FlyerLifecycleManager(db_a, clock=lambda: now)
        await winner.start_processing(flyer_id)

        loser = FlyerLifecycleManager(db_b, clock=lambda: now)

        async def stale_read(_flyer_id):
            return stale

        loser.flyers.get_by_id = stale_read

        with pytest.raises(ConcurrencyError) as exc_info:
            await loser.start_processing(flyer_id)

    assert exc_info.value.retryable is True


async def test_processing_batch_defaults_to_configured_size(
    test_db, make_flyer, now, monkeypatch,
):
    monkeypatch.setenv("PROCESSING_BATCH_SIZE", "2")
    worker = FlyerLifecycleManager(test_db, clock=lambda: now)
    for _ in range(3):
        await make_flyer()

    assert len(await worker.get_flyers_for_processing()) == 2
