"""
SQLAlchemy ORM models for the points kernel.

Importing this package registers every table on Base.metadata.
"""

from points_kernel.models.account import Account, AccountRole
from points_kernel.models.event import EventGuest, EventOrganizer, LoyaltyEvent
from points_kernel.models.promotion import Promotion, PromotionType, PromotionUse
from points_kernel.models.reconciliation import SuspicionReconciliation
from points_kernel.models.transaction import LedgerTransaction, TransactionType

__all__ = [
    "Account",
    "AccountRole",
    "EventGuest",
    "EventOrganizer",
    "LedgerTransaction",
    "LoyaltyEvent",
    "Promotion",
    "PromotionType",
    "PromotionUse",
    "SuspicionReconciliation",
    "TransactionType",
]
