"""Infrastructure Layer: database session management, repositories, logging.

Invariants:
    - Every SQLAlchemy exception leaving this layer is mapped to a core/errors.py type
    - Repositories implement the Protocols in core/repository_protocols.py

Design Decisions:
    - SQLAlchemy async repositories over a generic base: each query is visible in one place
"""
