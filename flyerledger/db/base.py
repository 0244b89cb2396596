"""SQLAlchemy Declarative Base: shared metadata for the flyer and price tables.

Invariants:
    - Every model inherits from Base; Base.metadata is what Alembic compares against
    - Constraint and index names are deterministic (naming convention), so
      migrations can drop them by name on every backend

Design Decisions:
    - No "ck" entry: it would rewrite the explicitly named CHECK constraints
      and drift from the migration
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
