"""
Module: points_kernel.models.event
Responsibility: ORM persistence for event point pools and their guest and
    organizer rosters.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - 0 <= points_awarded <= points_allocated (CHECK ck_event_pool_bound).
      EventPointPool guards the increment in the UPDATE itself; the CHECK
      backs it at the store.
    - An account is on a roster at most once (UNIQUE per roster).

Audit relevance:
    points_awarded must always equal the sum of event transactions whose
    related_id is this event (LedgerSelector.pool_status exposes both).
"""

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from points_kernel.db.base import Base, TrackedBase
from points_kernel.db.types import Points


class LoyaltyEvent(TrackedBase):
    """
    An event with a capped budget of points to award to its guests.

    Contract:
        points_awarded is increased only by the ledger engine's event-award
        operation.  points_allocated is management data (out of scope here)
        subject to the same bound.
    """

    __tablename__ = "loyalty_events"

    __table_args__ = (
        CheckConstraint("points_allocated >= 0", name="ck_event_allocated_non_negative"),
        CheckConstraint("points_awarded >= 0", name="ck_event_awarded_non_negative"),
        CheckConstraint("points_awarded <= points_allocated", name="ck_event_pool_bound"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    points_allocated: Mapped[Points] = mapped_column(nullable=False, default=0)

    points_awarded: Mapped[Points] = mapped_column(nullable=False, default=0)

    guests: Mapped[list["EventGuest"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventGuest.id",
    )

    organizers: Mapped[list["EventOrganizer"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<LoyaltyEvent {self.id}: {self.points_awarded}/{self.points_allocated}>"

    @property
    def points_remaining(self) -> int:
        return self.points_allocated - self.points_awarded


class EventGuest(Base):
    """An account on an event's guest roster."""

    __tablename__ = "event_guests"

    __table_args__ = (
        UniqueConstraint("event_id", "account_id", name="uq_event_guest"),
    )

    event_id: Mapped[int] = mapped_column(
        ForeignKey("loyalty_events.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    event: Mapped[LoyaltyEvent] = relationship(back_populates="guests")


class EventOrganizer(Base):
    """An account allowed to award the event's points."""

    __tablename__ = "event_organizers"

    __table_args__ = (
        UniqueConstraint("event_id", "account_id", name="uq_event_organizer"),
    )

    event_id: Mapped[int] = mapped_column(
        ForeignKey("loyalty_events.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    event: Mapped[LoyaltyEvent] = relationship(back_populates="organizers")
