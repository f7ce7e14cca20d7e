"""Services for the points kernel (write side)."""

from points_kernel.services.account_store import AccountStore
from points_kernel.services.event_pool import EventPointPool
from points_kernel.services.ledger_engine import LedgerEngine
from points_kernel.services.promotion_catalog import PromotionCatalog
from points_kernel.services.retry_service import retry_on_conflict
from points_kernel.services.transaction_ledger import TransactionLedger

__all__ = [
    "AccountStore",
    "EventPointPool",
    "LedgerEngine",
    "PromotionCatalog",
    "TransactionLedger",
    "retry_on_conflict",
]
