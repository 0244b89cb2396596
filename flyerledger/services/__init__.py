"""Services Layer: flyer lifecycle manager, price history service, archive sweep.

Invariants:
    - Every public operation runs inside exactly one transaction
    - Guards are evaluated before any write; a rejected transition writes nothing

Design Decisions:
    - Services own the transaction boundary; repositories never commit
"""
