"""API Layer: error handlers for a host FastAPI application.

Invariants:
    - No routes are defined here; the host application owns routing
    - Every LedgerError becomes a structured JSON envelope

Design Decisions:
    - Handlers registered through one function so the host wires them explicitly
"""
