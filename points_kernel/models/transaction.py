"""
Module: points_kernel.models.transaction
Responsibility: ORM persistence for the append-only points ledger.  Every
    balance-affecting operation leaves one or more LedgerTransaction rows.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Rows are append-only.  The single permitted update is the redemption
      fulfillment stamp (processed_by_id, processed_at, applied_points), and
      only while processed_by_id is still NULL (db/immutability.py plus the
      guarded UPDATE in TransactionLedger.mark_processed).
    - points carries the recorded delta; applied_points the delta that
      actually reached the beneficiary balance.  They differ only for
      withheld purchases (0) and redemptions (0 while pending, -points once
      fulfilled).

Audit relevance:
    Sum(applied_points) per beneficiary plus the SuspicionReconciliation
    deltas reconstructs Account.points exactly.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from points_kernel.db.base import Base
from points_kernel.db.types import LongText, Points, Spend
from points_kernel.models.account import Account


class TransactionType(str, Enum):
    """Ledger transaction kinds."""

    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    REDEMPTION = "redemption"
    EVENT = "event"


class LedgerTransaction(Base):
    """
    One immutable ledger row.

    Contract:
        Created only by TransactionLedger.append() inside a LedgerEngine
        atomic unit.  Never deleted.

    Field meaning by type:
        purchase    face_amount = spend, promotion_ids = applied promotions
        adjustment  related_id = adjusted transaction
        transfer    counterparty_id = the other leg's account
        redemption  points = amount requested, processed_* = fulfillment
        event       related_id = event id
    """

    __tablename__ = "ledger_transactions"

    __table_args__ = (
        Index("idx_ledger_tx_beneficiary", "beneficiary_id"),
        Index("idx_ledger_tx_type", "type"),
        Index("idx_ledger_tx_related", "type", "related_id"),
    )

    transaction_type: Mapped[str] = mapped_column("type", String(20), nullable=False)

    beneficiary_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
    )

    counterparty_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=True,
    )

    points: Mapped[Points] = mapped_column(nullable=False)

    applied_points: Mapped[Points] = mapped_column(nullable=False)

    face_amount: Mapped[Spend | None] = mapped_column(nullable=True)

    # Transaction id (adjustment) or event id (event); not a foreign key
    related_id: Mapped[int | None] = mapped_column(nullable=True)

    promotion_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    remark: Mapped[LongText | None] = mapped_column(nullable=True)

    # Actor identity from the authorization gate; may have no account row
    created_by_id: Mapped[int] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    processed_by_id: Mapped[int | None] = mapped_column(nullable=True)

    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    beneficiary: Mapped[Account] = relationship(
        foreign_keys=[beneficiary_id],
    )

    def __repr__(self) -> str:
        return f"<LedgerTransaction {self.id} {self.transaction_type} {self.points:+d}>"

    @property
    def is_redemption(self) -> bool:
        return self.transaction_type == TransactionType.REDEMPTION.value

    @property
    def is_processed(self) -> bool:
        return self.processed_by_id is not None
