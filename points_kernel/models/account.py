"""
Module: points_kernel.models.account
Responsibility: ORM persistence for loyalty accounts -- the owners of every
    point balance.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - reserved_points >= 0 (CHECK).  It is the sum of pending redemptions.
    - points is NOT floored at the database level.  Transfers and
      redemptions guard it in AccountStore; adjustments and suspicious
      reconciliation are authoritative and may take it below zero.
    - utorid is unique.

Audit relevance:
    points is a cached total.  LedgerSelector.computed_balance() rebuilds it
    from the transaction ledger plus reconciliation rows, and
    verify_balance() compares the two.
"""

from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from points_kernel.db.base import TrackedBase
from points_kernel.db.types import Points


class AccountRole(str, Enum):
    """Roles in ascending privilege order."""

    REGULAR = "regular"
    CASHIER = "cashier"
    MANAGER = "manager"
    SUPERUSER = "superuser"


class Account(TrackedBase):
    """
    A loyalty member and their point balance.

    Contract:
        Balance columns (points, reserved_points) are mutated only by
        AccountStore inside a LedgerEngine atomic unit.  verified and role
        belong to identity management (out of scope) and are only read
        here; suspicious is toggled through the ledger engine.

    Guarantees:
        - points - reserved_points is the amount available to transfer or
          redeem.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("utorid", name="uq_account_utorid"),
        CheckConstraint("reserved_points >= 0", name="ck_account_reserved_non_negative"),
        Index("idx_account_role", "role"),
    )

    utorid: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AccountRole.REGULAR.value,
    )

    points: Mapped[Points] = mapped_column(nullable=False, default=0)

    # Points held by pending (unfulfilled) redemptions
    reserved_points: Mapped[Points] = mapped_column(nullable=False, default=0)

    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    suspicious: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Account {self.utorid}: {self.points} pts>"

    @property
    def available_points(self) -> int:
        """Points not held by a pending redemption."""
        return self.points - self.reserved_points
