"""Column Types: timezone-safe DateTime shared by every model.

Invariants:
    - Values bound to the database are converted to UTC
    - Values loaded from the database are always timezone-aware UTC

Design Decisions:
    - TypeDecorator over per-query normalization: SQLite drops tzinfo on storage,
      PostgreSQL keeps it; both look identical to the core after load
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """DateTime(timezone=True) that always yields aware UTC datetimes."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
