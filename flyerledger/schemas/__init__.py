"""Pydantic Schemas: validated value objects passed into the services.

Invariants:
    - Schemas validate at the package boundary (caller-supplied filters)
    - Domain types from core/ used for enum fields

Design Decisions:
    - Separate from models: schemas are caller contracts, models are persistence
"""
