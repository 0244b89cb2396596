"""Domain Types: rich types that replace bare primitives across the codebase.

Invariants:
    - FlyerId, StoreId, ProductMasterId wrap int; PriceHistoryId wraps a 64-bit int
    - All valid states encoded as Enums: no raw string matching
    - ARCHIVED is the only terminal FlyerStatus

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: values are what the status column stores
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

FlyerId = NewType("FlyerId", int)
StoreId = NewType("StoreId", int)
ProductMasterId = NewType("ProductMasterId", int)
PriceHistoryId = NewType("PriceHistoryId", int)


# ─── Enums ───────────────────────────────────────────────────────

class FlyerStatus(str, Enum):
    """Flyer processing lifecycle: maps to DB `status` column."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    ARCHIVED = "archived"


TERMINAL_STATUSES = frozenset({FlyerStatus.ARCHIVED})

# Allowed edges of the lifecycle graph. Self-edges on COMPLETED and FAILED
# are idempotent re-applications, checked further by the guards.
ALLOWED_TRANSITIONS: dict[FlyerStatus, frozenset[FlyerStatus]] = {
    FlyerStatus.PENDING: frozenset({FlyerStatus.PROCESSING, FlyerStatus.ARCHIVED}),
    FlyerStatus.PROCESSING: frozenset({
        FlyerStatus.COMPLETED, FlyerStatus.FAILED, FlyerStatus.ARCHIVED,
    }),
    FlyerStatus.COMPLETED: frozenset({FlyerStatus.COMPLETED, FlyerStatus.ARCHIVED}),
    FlyerStatus.FAILED: frozenset({FlyerStatus.FAILED, FlyerStatus.ARCHIVED}),
    FlyerStatus.ARCHIVED: frozenset(),
}


class PriceSource(str, Enum):
    """Origin of a price observation."""
    FLYER = "flyer"
    MANUAL = "manual"
    API = "api"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"
