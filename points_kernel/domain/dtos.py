"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable projections returned by the ledger engine and the
    read-side selectors: TransactionRecord, LedgerResult,
    ReconciliationRecord, BalanceCheck, PoolStatus and PromotionInfo.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  from_model() class methods exist as
    boundary converters but are only invoked from the service and selector
    layers.

Invariants enforced:
    - Callers never receive ORM entities; a returned record cannot be used
      to mutate the ledger.
    - LedgerResult always carries at least one record.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from points_kernel.models.promotion import Promotion as PromotionModel
    from points_kernel.models.reconciliation import (
        SuspicionReconciliation as ReconciliationModel,
    )
    from points_kernel.models.transaction import LedgerTransaction as TransactionModel


@dataclass(frozen=True)
class TransactionRecord:
    """
    Normalized projection of one ledger transaction.

    points is the recorded delta; applied_points is what reached the
    beneficiary balance.
    """

    id: int
    type: str
    beneficiary_id: int
    beneficiary_utorid: str
    counterparty_id: int | None
    points: int
    applied_points: int
    face_amount: Decimal | None
    related_id: int | None
    promotion_ids: tuple[int, ...]
    remark: str | None
    created_by_id: int
    created_at: datetime
    processed_by_id: int | None = None
    processed_at: datetime | None = None

    @property
    def is_processed(self) -> bool:
        return self.processed_by_id is not None

    @property
    def withheld_points(self) -> int:
        """Recorded points that did not reach the balance (purchases only)."""
        if self.type != "purchase":
            return 0
        return self.points - self.applied_points

    @classmethod
    def from_model(cls, model: TransactionModel) -> TransactionRecord:
        return cls(
            id=model.id,
            type=model.transaction_type,
            beneficiary_id=model.beneficiary_id,
            beneficiary_utorid=model.beneficiary.utorid,
            counterparty_id=model.counterparty_id,
            points=model.points,
            applied_points=model.applied_points,
            face_amount=model.face_amount,
            related_id=model.related_id,
            promotion_ids=tuple(model.promotion_ids or ()),
            remark=model.remark,
            created_by_id=model.created_by_id,
            created_at=model.created_at,
            processed_by_id=model.processed_by_id,
            processed_at=model.processed_at,
        )


@dataclass(frozen=True)
class LedgerResult:
    """
    Outcome of one engine operation.

    records holds one entry for purchase, adjustment, redemption and
    single-recipient event awards; two for a transfer (debit leg first);
    one per guest for an award to all guests.
    """

    records: tuple[TransactionRecord, ...]

    def __post_init__(self) -> None:
        if not self.records:
            raise ValueError("LedgerResult requires at least one record")

    @property
    def record(self) -> TransactionRecord:
        return self.records[0]

    @property
    def total_applied(self) -> int:
        return sum(r.applied_points for r in self.records)


@dataclass(frozen=True)
class ReconciliationRecord:
    """Projection of a SuspicionReconciliation row."""

    id: int
    account_id: int
    transaction_id: int | None
    suspicious: bool
    points_delta: int
    flag_changed: bool
    created_by_id: int
    created_at: datetime

    @classmethod
    def from_model(cls, model: ReconciliationModel, flag_changed: bool) -> ReconciliationRecord:
        return cls(
            id=model.id,
            account_id=model.account_id,
            transaction_id=model.transaction_id,
            suspicious=model.suspicious,
            points_delta=model.points_delta,
            flag_changed=flag_changed,
            created_by_id=model.created_by_id,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class BalanceCheck:
    """Stored balance versus the balance rebuilt from the ledger."""

    account_id: int
    stored: int
    computed: int

    @property
    def matches(self) -> bool:
        return self.stored == self.computed

    @property
    def drift(self) -> int:
        return self.stored - self.computed


@dataclass(frozen=True)
class PoolStatus:
    """Event point pool counters plus the ledger total they must agree with."""

    event_id: int
    allocated: int
    awarded: int
    guest_count: int
    awarded_by_ledger: int

    @property
    def remaining(self) -> int:
        return self.allocated - self.awarded


@dataclass(frozen=True)
class PromotionInfo:
    """Read-only view of a promotion."""

    id: int
    name: str
    type: str
    start_time: datetime
    end_time: datetime
    min_spending: Decimal | None
    rate: Decimal | None
    points: int | None

    @classmethod
    def from_model(cls, model: PromotionModel) -> PromotionInfo:
        return cls(
            id=model.id,
            name=model.name,
            type=model.promotion_type,
            start_time=model.start_time,
            end_time=model.end_time,
            min_spending=model.min_spending,
            rate=model.rate,
            points=model.points,
        )
