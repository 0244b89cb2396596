"""Core Layer: pure domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - All functions are pure and deterministic (the current time is always a parameter)

Design Decisions:
    - Functional core separated from imperative shell: guards and temporal resolution
      are tested without a database
"""
