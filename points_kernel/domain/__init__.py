"""
Pure domain layer.

Request variants, promotion arithmetic, role authority and the DTOs
returned to callers.  No ORM sessions, no database access and no direct
clock reads.
"""

from points_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from points_kernel.domain.dtos import (
    BalanceCheck,
    LedgerResult,
    PoolStatus,
    PromotionInfo,
    ReconciliationRecord,
    TransactionRecord,
)
from points_kernel.domain.promotions import (
    PromotionOutcome,
    base_points,
    evaluate_promotions,
)
from points_kernel.domain.requests import (
    AdjustmentRequest,
    EventAwardRequest,
    PurchaseRequest,
    RedemptionRequest,
    TransferRequest,
    parse_request,
)

__all__ = [
    "AdjustmentRequest",
    "BalanceCheck",
    "Clock",
    "DeterministicClock",
    "EventAwardRequest",
    "LedgerResult",
    "PoolStatus",
    "PromotionInfo",
    "PromotionOutcome",
    "PurchaseRequest",
    "RedemptionRequest",
    "ReconciliationRecord",
    "SystemClock",
    "TransactionRecord",
    "TransferRequest",
    "base_points",
    "evaluate_promotions",
    "parse_request",
]
