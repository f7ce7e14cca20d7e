"""
EventPointPool -- locked access to event budgets and rosters.

Responsibility:
    Lock an event, read its guest and organizer rosters, and draw awarded
    points from its pool.

Architecture position:
    Kernel > Services -- imperative shell.  Called only by LedgerEngine.

Invariants enforced:
    - points_awarded + total <= points_allocated, checked in the UPDATE's
      WHERE clause (rowcount 0 -> InsufficientPoolError).  Two concurrent
      awards cannot jointly overdraw the pool even if both passed the
      pre-check.

Failure modes:
    - EventNotFoundError for an unknown event id.
    - InsufficientPoolError when the guarded increment matches no row.
"""

from sqlalchemy import exists, select, update

from points_kernel.exceptions import EventNotFoundError, InsufficientPoolError
from points_kernel.logging_config import get_logger
from points_kernel.models.event import EventGuest, EventOrganizer, LoyaltyEvent
from points_kernel.services.base import BaseService

logger = get_logger("services.event_pool")


class EventPointPool(BaseService[LoyaltyEvent]):
    """Event point pools for the ledger engine."""

    def lock(self, event_id: int) -> LoyaltyEvent:
        """
        Lock the event row for update.

        Raises:
            EventNotFoundError: If the event does not exist.
        """
        event = self.session.execute(
            select(LoyaltyEvent)
            .where(LoyaltyEvent.id == event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def guest_ids(self, event_id: int) -> list[int]:
        """Guest account ids in roster order."""
        return list(
            self.session.execute(
                select(EventGuest.account_id)
                .where(EventGuest.event_id == event_id)
                .order_by(EventGuest.id)
            ).scalars()
        )

    def is_guest(self, event_id: int, account_id: int) -> bool:
        return bool(
            self.session.execute(
                select(
                    exists().where(
                        EventGuest.event_id == event_id,
                        EventGuest.account_id == account_id,
                    )
                )
            ).scalar()
        )

    def is_organizer(self, event_id: int, account_id: int) -> bool:
        return bool(
            self.session.execute(
                select(
                    exists().where(
                        EventOrganizer.event_id == event_id,
                        EventOrganizer.account_id == account_id,
                    )
                )
            ).scalar()
        )

    def draw(self, event_id: int, total: int) -> None:
        """
        Increase points_awarded by ``total`` if the pool covers it.

        Raises:
            InsufficientPoolError: If points_awarded + total would exceed
                points_allocated.
        """
        result = self.session.execute(
            update(LoyaltyEvent)
            .where(
                LoyaltyEvent.id == event_id,
                LoyaltyEvent.points_awarded + total <= LoyaltyEvent.points_allocated,
            )
            .values(points_awarded=LoyaltyEvent.points_awarded + total)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            event = self.session.execute(
                select(LoyaltyEvent)
                .where(LoyaltyEvent.id == event_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if event is None:
                raise EventNotFoundError(event_id)
            logger.info(
                "pool_guard_rejected",
                extra={
                    "event_id": event_id,
                    "required": total,
                    "remaining": event.points_remaining,
                },
            )
            raise InsufficientPoolError(event_id, total, event.points_remaining)

        event = self.session.get(LoyaltyEvent, event_id)
        if event is not None:
            self.session.refresh(event)
