"""
Ledger requests -- the tagged variants accepted by LedgerEngine.submit().

Responsibility:
    One frozen dataclass per transaction type, validated on construction,
    plus parse_request() which turns a mapping carrying a ``type`` key into
    the matching variant.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Existence checks (accounts,
    promotions, events) happen later in the services.

Invariants enforced:
    - A constructed request is structurally valid: integers are real ints
      (never bool), amounts are positive where required, spend is a
      positive Decimal quantized to cents, promotion ids are unique
      positive ints.
    - Unknown or missing ``type`` and unknown fields are rejected.

Failure modes:
    - InvalidRequestError naming the offending field.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import MISSING, dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar, Union

from points_kernel.db.types import round_spend, to_decimal
from points_kernel.exceptions import InvalidRequestError

AccountRef = Union[int, str]


def _account_ref(value: Any, field: str) -> AccountRef:
    """An account is addressed by positive integer id or non-empty utorid."""
    if isinstance(value, bool):
        raise InvalidRequestError(f"{field} must be an account id or utorid", field=field)
    if isinstance(value, int):
        if value <= 0:
            raise InvalidRequestError(f"{field} must be a positive id", field=field)
        return value
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise InvalidRequestError(f"{field} must be an account id or utorid", field=field)


def _int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError(f"{field} must be an integer", field=field)
    return value


def _positive_int(value: Any, field: str) -> int:
    value = _int(value, field)
    if value <= 0:
        raise InvalidRequestError(f"{field} must be positive", field=field)
    return value


def _remark(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequestError("remark must be a string", field="remark")
    return value


def _set(obj: Any, name: str, value: Any) -> None:
    object.__setattr__(obj, name, value)


@dataclass(frozen=True)
class PurchaseRequest:
    """A cashier records a purchase for ``beneficiary``."""

    TYPE: ClassVar[str] = "purchase"

    beneficiary: AccountRef
    spent: Decimal
    promotion_ids: tuple[int, ...] = ()
    remark: str | None = None

    def __post_init__(self) -> None:
        _set(self, "beneficiary", _account_ref(self.beneficiary, "beneficiary"))

        try:
            exact = to_decimal(self.spent)
            spent = round_spend(exact)
        except (ValueError, InvalidOperation) as exc:
            raise InvalidRequestError(f"spent is not a valid amount: {self.spent!r}", field="spent") from exc
        if spent <= 0:
            if exact > 0:
                raise InvalidRequestError(
                    f"spent rounds to zero at cent precision: {self.spent!r}", field="spent"
                )
            raise InvalidRequestError("spent must be positive", field="spent")
        _set(self, "spent", spent)

        raw_ids = self.promotion_ids
        if raw_ids is None:
            raw_ids = ()
        if isinstance(raw_ids, (str, bytes)) or not hasattr(raw_ids, "__iter__"):
            raise InvalidRequestError("promotion_ids must be a list", field="promotion_ids")
        ids = tuple(_positive_int(pid, "promotion_ids") for pid in raw_ids)
        if len(set(ids)) != len(ids):
            raise InvalidRequestError(
                "promotion_ids contains duplicates", field="promotion_ids"
            )
        _set(self, "promotion_ids", ids)
        _set(self, "remark", _remark(self.remark))


@dataclass(frozen=True)
class AdjustmentRequest:
    """A manager corrects ``beneficiary`` by a signed ``amount``."""

    TYPE: ClassVar[str] = "adjustment"

    beneficiary: AccountRef
    amount: int
    related_id: int
    remark: str | None = None

    def __post_init__(self) -> None:
        _set(self, "beneficiary", _account_ref(self.beneficiary, "beneficiary"))
        _int(self.amount, "amount")
        _positive_int(self.related_id, "related_id")
        _set(self, "remark", _remark(self.remark))


@dataclass(frozen=True)
class TransferRequest:
    """The actor sends ``amount`` points to ``recipient``."""

    TYPE: ClassVar[str] = "transfer"

    recipient: AccountRef
    amount: int
    remark: str | None = None

    def __post_init__(self) -> None:
        _set(self, "recipient", _account_ref(self.recipient, "recipient"))
        _positive_int(self.amount, "amount")
        _set(self, "remark", _remark(self.remark))


@dataclass(frozen=True)
class RedemptionRequest:
    """The actor asks to redeem ``amount`` points; fulfilled later by a cashier."""

    TYPE: ClassVar[str] = "redemption"

    amount: int
    remark: str | None = None

    def __post_init__(self) -> None:
        _positive_int(self.amount, "amount")
        _set(self, "remark", _remark(self.remark))


@dataclass(frozen=True)
class EventAwardRequest:
    """
    Award ``amount`` points from an event pool.

    recipient=None awards every guest on the roster.
    """

    TYPE: ClassVar[str] = "event"

    event_id: int
    amount: int
    recipient: AccountRef | None = None
    remark: str | None = None

    def __post_init__(self) -> None:
        _positive_int(self.event_id, "event_id")
        _positive_int(self.amount, "amount")
        if self.recipient is not None:
            _set(self, "recipient", _account_ref(self.recipient, "recipient"))
        _set(self, "remark", _remark(self.remark))


LedgerRequest = Union[
    PurchaseRequest,
    AdjustmentRequest,
    TransferRequest,
    RedemptionRequest,
    EventAwardRequest,
]

REQUEST_TYPES: dict[str, type] = {
    cls.TYPE: cls
    for cls in (
        PurchaseRequest,
        AdjustmentRequest,
        TransferRequest,
        RedemptionRequest,
        EventAwardRequest,
    )
}


def parse_request(payload: LedgerRequest | Mapping[str, Any]) -> LedgerRequest:
    """
    Turn a mapping with a ``type`` key into its request variant.

    Request objects are returned unchanged.

    Raises:
        InvalidRequestError: on missing/unknown type, unknown or missing
            fields, or invalid values.
    """
    if isinstance(payload, tuple(REQUEST_TYPES.values())):
        return payload
    if not isinstance(payload, Mapping):
        raise InvalidRequestError("request must be a mapping or a request object")

    data = dict(payload)
    bad_keys = [key for key in data if not isinstance(key, str)]
    if bad_keys:
        raise InvalidRequestError(f"request field names must be strings: {bad_keys[0]!r}")
    tag = data.pop("type", None)
    if tag is None:
        raise InvalidRequestError("request type is required", field="type")
    request_cls = REQUEST_TYPES.get(tag) if isinstance(tag, str) else None
    if request_cls is None:
        raise InvalidRequestError(f"unknown request type: {tag!r}", field="type")

    allowed = {f.name for f in fields(request_cls)}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise InvalidRequestError(
            f"unknown field(s) for {tag}: {', '.join(unknown)}", field=unknown[0]
        )

    required = {
        f.name
        for f in fields(request_cls)
        if f.default is MISSING and f.default_factory is MISSING
    }
    missing = sorted(required - set(data))
    if missing:
        raise InvalidRequestError(
            f"missing field(s) for {tag}: {', '.join(missing)}", field=missing[0]
        )

    return request_cls(**data)
