"""Selectors for the points kernel (read side)."""

from points_kernel.selectors.ledger_selector import LedgerSelector

__all__ = ["LedgerSelector"]
