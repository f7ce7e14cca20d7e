"""
PromotionCatalog -- promotion lookup and one-time-use bookkeeping.

Responsibility:
    Load the promotions a purchase references, report which one-time
    promotions an account has already used, record new uses, and list the
    promotions currently available to an account.

Architecture position:
    Kernel > Services -- imperative shell.  Writes (record_use) are called
    only by LedgerEngine inside its atomic unit; available_promotions() is
    a read used by callers building a checkout screen.

Invariants enforced:
    - At most one PromotionUse per (promotion, account).  The pre-check in
      used_promotion_ids() gives a clear PromotionInvalidError; the UNIQUE
      constraint catches the race the pre-check cannot see, surfacing as
      IntegrityError at flush (ConflictError at the engine).

Failure modes:
    - PromotionNotFoundError for an id with no promotion.
"""

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select

from points_kernel.domain.dtos import PromotionInfo
from points_kernel.exceptions import PromotionNotFoundError
from points_kernel.logging_config import get_logger
from points_kernel.models.promotion import Promotion, PromotionType, PromotionUse
from points_kernel.services.base import BaseService

logger = get_logger("services.promotion_catalog")


class PromotionCatalog(BaseService[Promotion]):
    """Promotion definitions plus per-account one-time-use records."""

    def load(self, promotion_ids: Sequence[int]) -> list[Promotion]:
        """
        Load promotions in the order requested.

        Raises:
            PromotionNotFoundError: naming the first id that does not exist.
        """
        if not promotion_ids:
            return []
        rows = self.session.execute(
            select(Promotion).where(Promotion.id.in_(list(promotion_ids)))
        ).scalars().all()
        by_id = {p.id: p for p in rows}
        for promotion_id in promotion_ids:
            if promotion_id not in by_id:
                raise PromotionNotFoundError(promotion_id)
        return [by_id[pid] for pid in promotion_ids]

    def used_promotion_ids(self, account_id: int) -> set[int]:
        """Ids of one-time promotions ``account_id`` has already consumed."""
        return set(
            self.session.execute(
                select(PromotionUse.promotion_id).where(
                    PromotionUse.account_id == account_id
                )
            ).scalars()
        )

    def record_use(
        self,
        promotion_id: int,
        account_id: int,
        transaction_id: int | None,
        used_at: datetime,
    ) -> PromotionUse:
        """
        Record consumption of a one-time promotion.

        Postconditions:
            The row is flushed, so a concurrent duplicate fails here (or at
            the competing unit's flush) rather than at commit.
        """
        use = PromotionUse(
            promotion_id=promotion_id,
            account_id=account_id,
            transaction_id=transaction_id,
            used_at=used_at,
        )
        self.session.add(use)
        self.session.flush()
        logger.debug(
            "promotion_use_recorded",
            extra={"promotion_id": promotion_id, "account_id": account_id},
        )
        return use

    def available_promotions(self, account_id: int, now: datetime) -> list[PromotionInfo]:
        """
        Promotions active at ``now`` that ``account_id`` may still use.

        One-time promotions the account already used are excluded.
        """
        used = select(PromotionUse.promotion_id).where(
            PromotionUse.account_id == account_id
        )
        rows = self.session.execute(
            select(Promotion)
            .where(
                Promotion.start_time <= now,
                Promotion.end_time > now,
                (Promotion.promotion_type != PromotionType.ONETIME.value)
                | Promotion.id.not_in(used),
            )
            .order_by(Promotion.id)
        ).scalars().all()
        return [PromotionInfo.from_model(p) for p in rows]
