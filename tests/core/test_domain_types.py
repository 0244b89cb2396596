"""Domain Types: verifies identity wrappers, enum values and the lifecycle graph.

Tests:
    - NewType wrappers exist and are callable
    - FlyerStatus values match the stored status strings
    - ARCHIVED is terminal; every other status can reach it
"""

from flyerledger.core.domain_types import (
    ALLOWED_TRANSITIONS, TERMINAL_STATUSES,
    FlyerId, StoreId, ProductMasterId, PriceHistoryId,
    FlyerStatus, PriceSource, SortDirection,
)


def test_identity_types_wrap_int():
    assert FlyerId(3) == 3
    assert StoreId(4) == 4
    assert ProductMasterId(42) == 42
    assert PriceHistoryId(2**40) == 2**40


def test_flyer_status_has_five_states():
    assert {s.value for s in FlyerStatus} == {
        "pending", "processing", "completed", "failed", "archived",
    }


def test_flyer_status_is_str_enum():
    assert FlyerStatus.PENDING == "pending"
    assert FlyerStatus("archived") is FlyerStatus.ARCHIVED


def test_archived_is_only_terminal_status():
    assert TERMINAL_STATUSES == {FlyerStatus.ARCHIVED}
    assert ALLOWED_TRANSITIONS[FlyerStatus.ARCHIVED] == frozenset()


def test_every_live_status_can_be_archived():
    for status in FlyerStatus:
        if status is FlyerStatus.ARCHIVED:
            continue
        assert FlyerStatus.ARCHIVED in ALLOWED_TRANSITIONS[status]


def test_processing_only_reachable_from_pending():
    sources = {s for s, targets in ALLOWED_TRANSITIONS.items() if FlyerStatus.PROCESSING in targets}
    assert sources == {FlyerStatus.PENDING}


def test_price_source_and_sort_direction_values():
    assert PriceSource.FLYER.value == "flyer"
    assert {d.value for d in SortDirection} == {"ASC", "DESC"}
