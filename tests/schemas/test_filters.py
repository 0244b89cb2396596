"""Filter Schemas: verifies construction-time validation of listing filters.

Tests cover:
    - Defaults: descending, unbounded, valid_from order
    - Range checks on dates and prices
    - order_by whitelist and limit bounds
    - Filters are immutable
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from flyerledger.core.domain_types import FlyerStatus, SortDirection
from flyerledger.schemas.filters import (
    MAX_PAGE_SIZE, FlyerFilters, PriceHistoryFilters,
)


def test_price_filters_defaults():
    filters = PriceHistoryFilters()
    assert filters.order_by == "valid_from"
    assert filters.order_dir == SortDirection.DESC
    assert filters.limit == 0
    assert filters.offset == 0


def test_price_filters_reject_inverted_dates():
    with pytest.raises(ValidationError):
        PriceHistoryFilters(
            date_from=datetime(2024, 2, 1, tzinfo=timezone.utc),
            date_to=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )


def test_price_filters_reject_inverted_price_range():
    with pytest.raises(ValidationError):
        PriceHistoryFilters(min_price=Decimal("5"), max_price=Decimal("1"))


def test_price_filters_reject_negative_price_bound():
    with pytest.raises(ValidationError):
        PriceHistoryFilters(min_price=Decimal("-1"))


def test_order_by_is_whitelisted():
    with pytest.raises(ValidationError):
        PriceHistoryFilters(order_by="price; DROP TABLE price_history")
    with pytest.raises(ValidationError):
        FlyerFilters(order_by="title")


def test_limit_bounds():
    assert FlyerFilters(limit=MAX_PAGE_SIZE).limit == MAX_PAGE_SIZE
    with pytest.raises(ValidationError):
        FlyerFilters(limit=MAX_PAGE_SIZE + 1)
    with pytest.raises(ValidationError):
        FlyerFilters(offset=-1)


def test_flyer_filters_accept_status_strings():
    filters = FlyerFilters(statuses=("pending", "failed"), store_ids=[1, 2])
    assert filters.statuses == (FlyerStatus.PENDING, FlyerStatus.FAILED)
    assert filters.store_ids == (1, 2)


def test_flyer_filters_reject_inverted_window():
    with pytest.raises(ValidationError):
        FlyerFilters(
            valid_from=datetime(2024, 2, 1, tzinfo=timezone.utc),
            valid_to=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )


def test_filters_are_frozen():
    filters = FlyerFilters()
    with pytest.raises(ValidationError):
        filters.limit = 10
