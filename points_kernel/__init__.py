"""
Points Kernel

The ledger core of the loyalty-points backend:
- Typed transactions (purchase, adjustment, transfer, redemption, event)
- Append-only transaction ledger with reconstructable balances
- Promotion eligibility and one-time-use enforcement
- Event point pools with a hard allocation cap
- Atomic, lock-guarded balance mutation under concurrent access
"""

__version__ = "0.1.0"
