"""
Module: points_kernel.models.promotion
Responsibility: ORM persistence for promotions and per-user one-time-use
    records.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one PromotionUse per (promotion, account): UNIQUE constraint
      uq_promotion_use.  This constraint, not the application pre-check, is
      the final guard when two purchases race for the same one-time
      promotion.
    - PromotionUse rows are append-only (db/immutability.py).
    - start_time < end_time (CHECK).

Failure modes:
    - IntegrityError on a duplicate PromotionUse; the engine surfaces it as
      ConflictError after rolling back the whole purchase.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from points_kernel.db.base import Base, TrackedBase
from points_kernel.db.types import Points, Rate, Spend


class PromotionType(str, Enum):
    """How often a member may benefit from a promotion."""

    AUTOMATIC = "automatic"
    ONETIME = "onetime"


class Promotion(TrackedBase):
    """
    A purchase bonus rule.

    Contract:
        A promotion applies to a purchase only while
        start_time <= now < end_time, and only if the spend meets
        min_spending when that is set.  ``points`` is a flat bonus;
        ``rate`` is an extra fraction of spend, rounded to whole points.
    """

    __tablename__ = "promotions"

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_promotion_window"),
        CheckConstraint(
            "min_spending IS NULL OR min_spending > 0",
            name="ck_promotion_min_spending_positive",
        ),
        CheckConstraint("rate IS NULL OR rate > 0", name="ck_promotion_rate_positive"),
        CheckConstraint("points IS NULL OR points >= 0", name="ck_promotion_points_non_negative"),
        Index("idx_promotion_window", "start_time", "end_time"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    promotion_type: Mapped[str] = mapped_column(
        "type",
        String(20),
        nullable=False,
        default=PromotionType.AUTOMATIC.value,
    )

    start_time: Mapped[datetime] = mapped_column(nullable=False)

    end_time: Mapped[datetime] = mapped_column(nullable=False)

    min_spending: Mapped[Spend | None] = mapped_column(nullable=True)

    rate: Mapped[Rate | None] = mapped_column(nullable=True)

    points: Mapped[Points | None] = mapped_column(nullable=True)

    uses: Mapped[list["PromotionUse"]] = relationship(
        back_populates="promotion",
        lazy="select",
    )

    def __repr__(self) -> str:
        return f"<Promotion {self.id}: {self.name} ({self.promotion_type})>"

    @property
    def is_onetime(self) -> bool:
        return self.promotion_type == PromotionType.ONETIME.value


class PromotionUse(Base):
    """
    Record that an account has consumed a one-time promotion.

    Existence of this row is the sole gate preventing reuse.
    """

    __tablename__ = "promotion_uses"

    __table_args__ = (
        UniqueConstraint("promotion_id", "account_id", name="uq_promotion_use"),
        Index("idx_promotion_use_account", "account_id"),
    )

    promotion_id: Mapped[int] = mapped_column(
        ForeignKey("promotions.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Purchase transaction that consumed the promotion
    transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("ledger_transactions.id"),
        nullable=True,
    )

    used_at: Mapped[datetime] = mapped_column(nullable=False)

    promotion: Mapped[Promotion] = relationship(back_populates="uses")

    def __repr__(self) -> str:
        return f"<PromotionUse promo={self.promotion_id} account={self.account_id}>"
