"""Flyer Transition Enforcement: guards over the flyer processing state machine.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - Return error dict on violation, None on success
    - `now` is always passed in: a guard is re-evaluated on every call against the
      freshly loaded entity, never cached
    - ARCHIVED is terminal: every guard rejects it

Design Decisions:
    - Pure functions over methods on the ORM model: testable with plain stand-ins
    - Return dicts (not exceptions): FlyerLifecycleManager turns them into
      InvalidStateError with the reason code attached
"""

from datetime import datetime, timedelta

from flyerledger.core.domain_types import (
    ALLOWED_TRANSITIONS, TERMINAL_STATUSES, FlyerStatus,
)
from flyerledger.core.repository_protocols import FlyerLike


# --- Single-edge guards -------------------------------------------------------

def check_not_archived(flyer: FlyerLike) -> dict | None:
    """Nothing leaves a terminal status."""
    if FlyerStatus(flyer.status) in TERMINAL_STATUSES:
        return _error(
            "FLYER_ARCHIVED",
            f"Flyer {flyer.id} is archived; no further transitions are allowed.",
        )
    return None


def check_edge_allowed(flyer: FlyerLike, target: FlyerStatus) -> dict | None:
    """The (current, target) pair is an edge of the lifecycle graph."""
    current = FlyerStatus(flyer.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        return _error(
            "TRANSITION_NOT_ALLOWED",
            f"Flyer {flyer.id} cannot move from {current.value} to {target.value}.",
        )
    return None


def check_processable(
    flyer: FlyerLike, now: datetime, lead_time: timedelta,
) -> dict | None:
    """Pickup guard: pending, window not lapsed, starts within the lead time."""
    error = check_not_archived(flyer)
    if error:
        return error

    if flyer.status != FlyerStatus.PENDING.value:
        return _error(
            "NOT_PENDING",
            f"Flyer {flyer.id} is {flyer.status}; processing requires pending.",
        )

    return check_pickup_window(flyer, now, lead_time)


def check_pickup_window(
    flyer: FlyerLike, now: datetime, lead_time: timedelta,
) -> dict | None:
    """Window not lapsed at `now` and starting before `now + lead_time`. Status is not checked."""
    if flyer.valid_to is not None and flyer.valid_to <= now:
        return _error(
            "VALIDITY_LAPSED",
            f"Flyer {flyer.id} validity ended at {flyer.valid_to.isoformat()}.",
        )

    if flyer.valid_from >= now + lead_time:
        return _error(
            "NOT_YET_VALID",
            f"Flyer {flyer.id} becomes valid at {flyer.valid_from.isoformat()}.",
        )

    return None


def check_can_complete(flyer: FlyerLike, products_extracted: int) -> dict | None:
    """Completion guard: processing, or completed earlier with the same count."""
    error = check_not_archived(flyer)
    if error:
        return error

    if flyer.status == FlyerStatus.COMPLETED.value:
        if flyer.products_extracted == products_extracted:
            return None
        return _error(
            "COUNT_ALREADY_RECORDED",
            f"Flyer {flyer.id} already completed with "
            f"{flyer.products_extracted} products; refusing {products_extracted}.",
        )

    return check_edge_allowed(flyer, FlyerStatus.COMPLETED)


def check_can_fail(flyer: FlyerLike) -> dict | None:
    """Failure guard: processing, or already failed."""
    error = check_not_archived(flyer)
    if error:
        return error
    return check_edge_allowed(flyer, FlyerStatus.FAILED)


# --- Idempotency --------------------------------------------------------------

def is_reapplication(
    flyer: FlyerLike, target: FlyerStatus, products_extracted: int | None = None,
) -> bool:
    """True when the flyer already sits in `target` with identical outcome data."""
    if flyer.status != target.value:
        return False
    if target == FlyerStatus.COMPLETED:
        return flyer.products_extracted == products_extracted
    return target in (FlyerStatus.FAILED, FlyerStatus.ARCHIVED)


# --- Composite validator ------------------------------------------------------

def validate_transition(
    flyer: FlyerLike,
    target: FlyerStatus,
    now: datetime,
    lead_time: timedelta,
    products_extracted: int | None = None,
) -> dict | None:
    """Run the guard for `target`. Archival has no guard."""
    if target == FlyerStatus.PROCESSING:
        return check_processable(flyer, now, lead_time)

    if target == FlyerStatus.COMPLETED:
        return check_can_complete(flyer, products_extracted or 0)

    if target == FlyerStatus.FAILED:
        return check_can_fail(flyer)

    if target == FlyerStatus.ARCHIVED:
        return None

    return _error(
        "TRANSITION_NOT_ALLOWED", f"{target.value} is not a transition target.",
    )


# --- Helper -------------------------------------------------------------------

def _error(code: str, message: str) -> dict:
    """Construct a standard error dict."""
    return {"error_code": code, "message": message}
