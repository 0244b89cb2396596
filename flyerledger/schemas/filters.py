"""Filter Schemas: Pydantic value objects for filtered, ordered, paginated listing.

Invariants:
    - order_by is whitelisted per entity; never interpolated into SQL
    - limit 0 means unbounded; offset >= 0
    - date_from <= date_to and min_price <= max_price when both are given
    - Filters are immutable once constructed (frozen)

Design Decisions:
    - Pydantic over plain dataclasses: range and cross-field checks at construction time
    - Shared Pagination base: both entities page and order the same way
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from flyerledger.core.domain_types import FlyerStatus, PriceSource, SortDirection

MAX_PAGE_SIZE = 1000


class Pagination(BaseModel):
    """Ordering and pagination shared by every listing filter."""
    model_config = ConfigDict(frozen=True)

    order_dir: SortDirection = SortDirection.DESC
    limit: int = Field(0, ge=0, le=MAX_PAGE_SIZE)
    offset: int = Field(0, ge=0)


class PriceHistoryFilters(Pagination):
    """Filters for price history listings and counts."""
    date_from: datetime | None = None
    date_to: datetime | None = None
    is_on_sale: bool | None = None
    is_active: bool | None = None
    min_price: Decimal | None = Field(None, ge=0)
    max_price: Decimal | None = Field(None, ge=0)
    source: PriceSource | None = None
    order_by: Literal[
        "valid_from", "recorded_at", "price", "created_at", "id",
    ] = "valid_from"

    @model_validator(mode="after")
    def check_ranges(self) -> "PriceHistoryFilters":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        if (
            self.min_price is not None and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price must not exceed max_price")
        return self


class FlyerFilters(Pagination):
    """Filters for flyer listings and counts."""
    store_ids: tuple[int, ...] = ()
    statuses: tuple[FlyerStatus, ...] = ()
    is_archived: bool | None = None
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    valid_on: datetime | None = None
    is_valid: bool | None = None
    order_by: Literal[
        "valid_from", "valid_to", "created_at", "id", "status",
    ] = "valid_from"

    @model_validator(mode="after")
    def check_window(self) -> "FlyerFilters":
        if self.valid_from and self.valid_to and self.valid_from > self.valid_to:
            raise ValueError("valid_from must not be after valid_to")
        return self
