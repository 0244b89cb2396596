"""Flyer ORM: persists a scraped promotional document and its processing lifecycle.

Invariants:
    - id is an integer primary key assigned on insert, never changed
    - status transitions: pending -> processing -> completed | failed; any non-archived -> archived
    - processed_at stays null until completed/failed; products_extracted set only on completed
    - valid_from <= valid_to whenever valid_to is present (CHECK constraint)
    - version increments on every ORM flush (optimistic concurrency)

Design Decisions:
    - version_id_col: load-mutate-write becomes UPDATE ... WHERE version = ?, so a lost
      race raises StaleDataError instead of silently overwriting
    - store_id is a plain integer reference: store lifecycle lives outside this package
    - Derived helpers take `now` explicitly so guards stay pure and testable
    - is_valid reuses check_pickup_window: the helper, the is_valid filter and the
      pickup guard agree on one lead time
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    CheckConstraint, Index, Integer, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from flyerledger.config import get_settings
from flyerledger.core.domain_types import FlyerStatus
from flyerledger.core.enforce_transitions import check_pickup_window
from flyerledger.db.base import Base
from flyerledger.db.types import UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Flyer(Base):
    """Flyer entity: owned by a store, mutated only through lifecycle transitions."""
    __tablename__ = "flyers"
    __table_args__ = (
        CheckConstraint(
            "valid_to IS NULL OR valid_to >= valid_from",
            name="flyers_date_check",
        ),
        Index("idx_flyers_store", "store_id"),
        Index("idx_flyers_status_validity", "status", "valid_from"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FlyerStatus.PENDING.value,
    )
    valid_from: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    valid_to: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Processing metadata
    extraction_started_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True,
    )
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    products_extracted: Mapped[int | None] = mapped_column(Integer, nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    __mapper_args__ = {"version_id_col": version}

    @validates("valid_from", "valid_to")
    def _validate_window(self, key: str, value: datetime | None) -> datetime | None:
        start = value if key == "valid_from" else self.valid_from
        end = value if key == "valid_to" else self.valid_to
        if start is not None and end is not None and end < start:
            raise ValueError("valid_to must not precede valid_from")
        return value

    @property
    def is_archived(self) -> bool:
        return self.status == FlyerStatus.ARCHIVED.value

    def is_lapsed(self, now: datetime) -> bool:
        """Validity window ended at or before `now`."""
        return self.valid_to is not None and self.valid_to <= now

    def is_valid(self, now: datetime, lead_time: timedelta | None = None) -> bool:
        """Not archived and inside the pickup window (lead time defaults to settings)."""
        if lead_time is None:
            lead_time = get_settings().processing_lead_time
        return not self.is_archived and check_pickup_window(self, now, lead_time) is None

    def days_remaining(self, now: datetime) -> int | None:
        """Whole days until valid_to; None for open-ended windows."""
        if self.is_archived:
            return 0
        if self.valid_to is None:
            return None
        return max(0, (self.valid_to - now).days)

    def processing_duration(self, now: datetime) -> timedelta | None:
        if self.extraction_started_at is None:
            return None
        end = self.processed_at or now
        return end - self.extraction_started_at

    def validity_period(self) -> str:
        end = self.valid_to.strftime("%Y-%m-%d") if self.valid_to else "open"
        return f"{self.valid_from.strftime('%Y-%m-%d')} - {end}"

    def __repr__(self) -> str:
        return f"<Flyer id={self.id} store_id={self.store_id} status={self.status}>"
