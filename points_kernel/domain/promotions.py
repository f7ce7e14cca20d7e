"""
Promotion evaluation -- pure purchase-point arithmetic.

Responsibility:
    Compute base points for a spend and decide, for a set of requested
    promotions, whether each applies and what bonus it adds.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Promotions are passed in already
    loaded; the one-time usage set is passed in already queried.

Invariants enforced:
    - All-or-nothing: any requested promotion that cannot apply rejects the
      whole purchase (PromotionInvalidError).  Promotions are never
      silently dropped.
    - Rounding goes through round_points() only.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from points_kernel.db.types import round_points
from points_kernel.exceptions import PromotionInvalidError


class PromotionLike(Protocol):
    id: int
    start_time: datetime
    end_time: datetime
    min_spending: Decimal | None
    rate: Decimal | None
    points: int | None

    @property
    def is_onetime(self) -> bool: ...


@dataclass(frozen=True)
class PromotionOutcome:
    """Result of evaluating a purchase's promotions."""

    applied_ids: tuple[int, ...]
    bonus: int
    onetime_ids: tuple[int, ...]


def base_points(spent: Decimal, point_value: Decimal) -> int:
    """
    Points earned for ``spent`` before promotions.

    Example:
        base_points(Decimal("40.00"), Decimal("0.25")) -> 160
    """
    return round_points(spent / point_value)


def is_active(promotion: PromotionLike, now: datetime) -> bool:
    """Active while start_time <= now < end_time."""
    return promotion.start_time <= now < promotion.end_time


def promotion_bonus(promotion: PromotionLike, spent: Decimal) -> int:
    bonus = 0
    if promotion.points is not None:
        bonus += promotion.points
    if promotion.rate is not None:
        bonus += round_points(spent * promotion.rate)
    return bonus


def evaluate_promotions(
    promotions: Sequence[PromotionLike],
    spent: Decimal,
    now: datetime,
    used_onetime_ids: Collection[int] = (),
) -> PromotionOutcome:
    """
    Validate and price every requested promotion.

    Args:
        promotions: The requested promotions, in request order.
        spent: Purchase amount.
        now: Evaluation time.
        used_onetime_ids: Promotion ids the beneficiary has already used.

    Returns:
        PromotionOutcome with the applied ids and the summed bonus.

    Raises:
        PromotionInvalidError: naming the first promotion that cannot apply.
    """
    applied: list[int] = []
    onetime: list[int] = []
    bonus = 0

    for promotion in promotions:
        if not is_active(promotion, now):
            raise PromotionInvalidError(promotion.id, "promotion is not active")

        if promotion.min_spending is not None and spent < promotion.min_spending:
            raise PromotionInvalidError(
                promotion.id,
                f"minimum spending of {promotion.min_spending} not met",
            )

        if promotion.is_onetime:
            if promotion.id in used_onetime_ids:
                raise PromotionInvalidError(
                    promotion.id, "one-time promotion already used"
                )
            onetime.append(promotion.id)

        bonus += promotion_bonus(promotion, spent)
        applied.append(promotion.id)

    return PromotionOutcome(
        applied_ids=tuple(applied),
        bonus=bonus,
        onetime_ids=tuple(onetime),
    )
