"""Database Infrastructure: async session factory, SQLAlchemy Base and column types.

Invariants:
    - All sessions are async (AsyncSession)
    - Every timestamp column round-trips as a timezone-aware UTC datetime

Design Decisions:
    - asyncpg driver for PostgreSQL (native async, no thread pool overhead)
"""
