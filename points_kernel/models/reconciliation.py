"""
Module: points_kernel.models.reconciliation
Responsibility: Append-only record of every suspicious-flag reconciliation.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py).
    - points_delta is exactly the amount applied to the account balance in
      the same atomic unit (0 when the flag did not change).
"""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from points_kernel.db.base import Base
from points_kernel.db.types import Points


class SuspicionReconciliation(Base):
    """Balance correction produced by flagging or unflagging an account."""

    __tablename__ = "suspicion_reconciliations"

    __table_args__ = (
        Index("idx_reconciliation_account", "account_id"),
    )

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
    )

    # Designated transaction; NULL for a flag-only toggle
    transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("ledger_transactions.id"),
        nullable=True,
    )

    suspicious: Mapped[bool] = mapped_column(Boolean, nullable=False)

    points_delta: Mapped[Points] = mapped_column(nullable=False, default=0)

    # Actor identity from the authorization gate; may have no account row
    created_by_id: Mapped[int] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<SuspicionReconciliation account={self.account_id} "
            f"suspicious={self.suspicious} delta={self.points_delta:+d}>"
        )
