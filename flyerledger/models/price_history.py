"""PriceHistory ORM: persists one price observation for a (product master, store) key.

Invariants:
    - id is a 64-bit primary key, monotonically assigned on insert
    - store_id NULL means a store-agnostic baseline price
    - price is an exact Decimal (Numeric(10, 2)), never float
    - valid_from required; valid_to NULL means the window is open (currently in effect)
    - At most one open record per (product_master_id, store_id), maintained by
      PriceHistoryService.create, overlaps left by older data resolved by tie-break

Design Decisions:
    - BigInteger PK with an Integer variant on SQLite: SQLite only autoincrements INTEGER PRIMARY KEY
    - Unique partial index on open windows: a concurrent second open insert fails
      with IntegrityError, surfaced as PriceWindowConflictError
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Index, Integer, Numeric, String, Text, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from flyerledger.core.domain_types import PriceSource
from flyerledger.db.base import Base
from flyerledger.db.types import UTCDateTime

OPEN_KEY_INDEX = "uq_price_history_open_key"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriceHistory(Base):
    """Price observation with a validity window."""
    __tablename__ = "price_history"
    __table_args__ = (
        CheckConstraint("price >= 0", name="price_history_price_check"),
        CheckConstraint(
            "original_price IS NULL OR original_price >= 0",
            name="price_history_original_price_check",
        ),
        CheckConstraint(
            "valid_to IS NULL OR valid_to >= valid_from",
            name="price_history_valid_dates_check",
        ),
        Index(
            "idx_price_history_current",
            "product_master_id", "store_id", "valid_from", "valid_to",
        ),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True, autoincrement=True,
    )
    product_master_id: Mapped[int] = mapped_column(Integer, nullable=False)
    store_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    flyer_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Price information
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    original_price: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    is_on_sale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timing information
    valid_from: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    valid_to: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow,
    )

    # Source information
    source: Mapped[str] = mapped_column(
        String(50), nullable=False, default=PriceSource.FLYER.value,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow,
    )

    @property
    def is_open(self) -> bool:
        return self.valid_to is None

    def covers(self, at: datetime) -> bool:
        """valid_from <= at and (open or valid_to >= at)."""
        return self.valid_from <= at and (self.valid_to is None or self.valid_to >= at)

    def discount_amount(self) -> Decimal:
        if not self.is_on_sale or self.original_price is None:
            return Decimal("0")
        if self.price >= self.original_price:
            return Decimal("0")
        return self.original_price - self.price

    def discount_percent(self) -> Decimal:
        if not self.is_on_sale or self.original_price is None or self.original_price <= 0:
            return Decimal("0")
        return (self.discount_amount() / self.original_price * 100).quantize(Decimal("0.01"))

    def __repr__(self) -> str:
        return (
            f"<PriceHistory id={self.id} product_master_id={self.product_master_id} "
            f"store_id={self.store_id} price={self.price}>"
        )


# One open window per key. coalesce() folds the NULL baseline store into a
# comparable value; plain UNIQUE treats NULLs as distinct.
Index(
    OPEN_KEY_INDEX,
    PriceHistory.product_master_id,
    func.coalesce(PriceHistory.store_id, 0),
    unique=True,
    postgresql_where=PriceHistory.valid_to.is_(None),
    sqlite_where=PriceHistory.valid_to.is_(None),
)
