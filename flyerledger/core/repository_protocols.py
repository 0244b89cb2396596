"""Boundary Protocols: contracts between core and shell.

Invariants:
    - Core NEVER imports from shell: dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Repositories never commit: the calling service owns the transaction

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Async in Protocol: boundary methods are async because implementations do IO,
      but the guards and resolvers that USE the entities are never async themselves
"""

from datetime import datetime
from typing import Protocol, Sequence

from flyerledger.core.domain_types import FlyerId, PriceHistoryId, ProductMasterId, StoreId


class FlyerLike(Protocol):
    """Structural contract for the flyer fields the lifecycle guards read."""
    id: int
    status: str
    valid_from: datetime
    valid_to: datetime | None
    products_extracted: int | None


class PriceRecordLike(Protocol):
    """Structural contract for the price record fields temporal resolution reads."""
    id: int | None
    store_id: int | None
    valid_from: datetime
    valid_to: datetime | None


class FlyerRepository(Protocol):
    """Contract for flyer persistence: implemented by shell."""
    async def get_by_id(self, flyer_id: FlyerId) -> FlyerLike | None: ...
    async def get_by_ids(self, flyer_ids: Sequence[FlyerId]) -> list: ...
    async def find(self, filters: object, now: datetime, lead_until: datetime) -> list: ...
    async def count(self, filters: object, now: datetime, lead_until: datetime) -> int: ...
    async def save(self, flyer: FlyerLike) -> FlyerLike: ...
    async def get_processable(
        self, now: datetime, lead_until: datetime, limit: int | None = None,
    ) -> list: ...
    async def get_archivable(self, cutoff: datetime) -> list: ...
    async def archive_older_than(self, cutoff: datetime, archived_at: datetime) -> int: ...
    async def status_counts(self) -> dict[str, int]: ...


class PriceHistoryRepository(Protocol):
    """Contract for price history persistence: implemented by shell."""
    async def get_by_id(self, record_id: PriceHistoryId) -> PriceRecordLike | None: ...
    async def get_by_product_master_id(
        self, product_master_id: ProductMasterId, store_id: StoreId | None,
        filters: object,
    ) -> list: ...
    async def count(
        self, product_master_id: ProductMasterId, store_id: StoreId | None,
        filters: object,
    ) -> int: ...
    async def get_covering(
        self, product_master_id: ProductMasterId, store_id: StoreId | None,
        at: datetime,
    ) -> list: ...
    async def get_open(
        self, product_master_id: ProductMasterId, store_id: StoreId | None,
    ) -> list: ...
    async def add(self, record: PriceRecordLike) -> PriceRecordLike: ...
    async def save(self, record: PriceRecordLike) -> PriceRecordLike: ...
    async def delete(self, record_id: PriceHistoryId) -> bool: ...
