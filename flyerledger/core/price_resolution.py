"""Temporal Price Resolution: which price record is current at an instant.

Invariants:
    - All functions are PURE: no IO, no async, no DB
    - A record covers `at` when valid_from <= at and (valid_to is None or valid_to >= at)
    - Tie-break among covering records: latest valid_from, then highest id
    - With a store filter, store-specific records win; store-agnostic baselines
      (store_id None) are the fallback only
    - Resolution compares timestamps only, never price values
    - Amounts are stored as NUMERIC(10, 2): at most 8 integer digits and 2 decimal
      places. Anything finer is rejected, never rounded

Design Decisions:
    - The repository returns every covering candidate and this module picks one:
      overlapping windows left behind by admin edits resolve the same way everywhere
    - Window-closing plan is computed here so PriceHistoryService.create stays a
      thin transaction around it
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, TypeVar

from flyerledger.core.repository_protocols import PriceRecordLike

R = TypeVar("R", bound=PriceRecordLike)

PRICE_QUANTUM = Decimal("0.01")
MAX_PRICE_INTEGER_DIGITS = 8


def covers(record: PriceRecordLike, at: datetime) -> bool:
    """Window contains `at` (end bound inclusive, matching the stored query)."""
    return record.valid_from <= at and (
        record.valid_to is None or record.valid_to >= at
    )


def resolve_current(
    candidates: Iterable[R], at: datetime, store_id: int | None = None,
) -> R | None:
    """Pick the single current record among `candidates`, or None."""
    covering = [r for r in candidates if covers(r, at)]

    if store_id is not None:
        specific = [r for r in covering if r.store_id == store_id]
        covering = specific or [r for r in covering if r.store_id is None]

    if not covering:
        return None
    return max(covering, key=_recency_key)


def check_window(valid_from: datetime | None, valid_to: datetime | None) -> dict | None:
    """valid_from required; valid_to, when present, not before valid_from."""
    if valid_from is None:
        return _error("WINDOW_START_MISSING", "valid_from is required.")
    if valid_to is not None and valid_to < valid_from:
        return _error(
            "WINDOW_INVERTED",
            f"valid_to {valid_to.isoformat()} precedes valid_from {valid_from.isoformat()}.",
        )
    return None


def check_amount(amount: Decimal | int | None, field: str = "price") -> dict | None:
    """Non-negative, finite, and representable in NUMERIC(10, 2) without rounding."""
    if amount is None:
        return _error("AMOUNT_MISSING", f"{field} is required.")
    if isinstance(amount, float):
        return _error("AMOUNT_FLOAT", f"{field} must be a Decimal, not float.")
    value = Decimal(amount)
    if not value.is_finite():
        return _error("AMOUNT_NOT_FINITE", f"{field} must be a finite amount.")
    if value < 0:
        return _error("AMOUNT_NEGATIVE", f"{field} must be a non-negative amount.")
    if value >= 10 ** MAX_PRICE_INTEGER_DIGITS:
        return _error(
            "AMOUNT_OVERFLOW",
            f"{field} {value} exceeds {MAX_PRICE_INTEGER_DIGITS} integer digits.",
        )
    if value != value.quantize(PRICE_QUANTUM):
        return _error(
            "AMOUNT_PRECISION", f"{field} {value} has more than 2 decimal places.",
        )
    return None


def check_open_window_conflict(
    open_records: Iterable[PriceRecordLike], new_valid_from: datetime,
) -> dict | None:
    """An open record starting after the new record cannot be closed at its start."""
    for record in open_records:
        if record.valid_from > new_valid_from:
            return _error(
                "OPEN_WINDOW_CONFLICT",
                f"Open price record {record.id} starts at "
                f"{record.valid_from.isoformat()}, after the new record's "
                f"valid_from {new_valid_from.isoformat()}.",
            )
    return None


def records_to_close(
    open_records: Iterable[R], new_valid_to: datetime | None,
) -> list[R]:
    """Open records a new observation supersedes. Closed (backfill) records supersede nothing."""
    if new_valid_to is not None:
        return []
    return list(open_records)


def _recency_key(record: PriceRecordLike) -> tuple[datetime, int]:
    return (record.valid_from, record.id or 0)


def _error(code: str, message: str) -> dict:
    """Construct a standard error dict."""
    return {"error_code": code, "message": message}
