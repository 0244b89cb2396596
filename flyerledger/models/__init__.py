"""ORM Models: SQLAlchemy declarative models for the flyer lifecycle and price ledger.

Invariants:
    - All models inherit from Base (db/base.py)
    - Store and ProductMaster are external: referenced by integer id only

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata is complete before create_all or autogenerate
"""

from flyerledger.models.flyer import Flyer  # noqa: F401
from flyerledger.models.price_history import PriceHistory  # noqa: F401
