"""
LedgerEngine -- validates, records and applies every balance-affecting
operation.

Responsibility:
    The front door of the kernel.  Accepts a typed request (or a mapping
    with a ``type`` key) from an authenticated caller, dispatches it through
    a handler registry, and runs validation, store mutation and ledger
    append as one atomic unit.  Also owns the two operations that act on an
    existing transaction (redemption fulfillment, suspicious-flag
    reconciliation) and the flag-only account toggle.

Architecture position:
    Kernel > Services -- imperative shell, orchestration layer.  The only
    component that opens sessions and commits.  Store services below it
    flush only.

Invariants enforced:
    - Atomicity: each call runs in its own session inside
      ``session.begin()``.  Any exception rolls back every row and counter
      touched by the call.
    - Validation before mutation: every check that can reject a request
      runs before the first write, except the store-level guards, which
      are themselves the first write of their unit.
    - Conservation: every balance change is paired with the ledger row
      (or reconciliation row) that explains it, so
      balance == sum(applied_points) + sum(reconciliation deltas).
    - No negative balance from transfer or redemption: those debits go
      through AccountStore's guarded updates.
    - Pool bound: event awards draw through EventPointPool.draw().
    - One-time promotions: PromotionUse UNIQUE constraint plus pre-check.

Failure modes:
    - Typed PointsKernelError subclasses for every rejection (see
      points_kernel.exceptions).  Logged as ``<operation>_rejected`` with
      the error code.
    - IntegrityError / OperationalError from the store (lost race, lock
      timeout, deadlock) -> ConflictError after rollback.  Use
      retry_on_conflict() to re-run.

Audit relevance:
    Every call emits ``<operation>_started`` and ``<operation>_completed``
    (or ``_rejected`` / ``_conflict`` / ``_failed``) with a correlation id,
    the actor id and duration_ms.
"""

import time
from collections.abc import Callable, Mapping
from typing import Any, TypeVar
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from points_config import LedgerConfig, get_active_config
from points_kernel.db.engine import get_session_factory
from points_kernel.domain import authority
from points_kernel.domain.clock import Clock, SystemClock
from points_kernel.domain.dtos import LedgerResult, ReconciliationRecord, TransactionRecord
from points_kernel.domain.promotions import base_points, evaluate_promotions
from points_kernel.domain.requests import (
    AccountRef,
    AdjustmentRequest,
    EventAwardRequest,
    LedgerRequest,
    PurchaseRequest,
    RedemptionRequest,
    TransferRequest,
    parse_request,
)
from points_kernel.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    InsufficientPoolError,
    InvalidRequestError,
    PointsKernelError,
    TransactionNotFoundError,
    UnauthorizedError,
)
from points_kernel.logging_config import LogContext, get_logger
from points_kernel.models.transaction import LedgerTransaction, TransactionType
from points_kernel.services.account_store import AccountStore
from points_kernel.services.event_pool import EventPointPool
from points_kernel.services.promotion_catalog import PromotionCatalog
from points_kernel.services.retry_service import retry_on_conflict
from points_kernel.services.transaction_ledger import TransactionLedger

logger = get_logger("services.ledger_engine")

T = TypeVar("T")


class _Unit:
    """The store services bound to one atomic unit's session."""

    def __init__(self, session: Session):
        self.session = session
        self.accounts = AccountStore(session)
        self.promotions = PromotionCatalog(session)
        self.events = EventPointPool(session)
        self.ledger = TransactionLedger(session)


def _record(tx: LedgerTransaction) -> TransactionRecord:
    return TransactionRecord.from_model(tx)


class LedgerEngine:
    """
    Orchestrates every points transaction.

    Contract:
        Callers pass the authenticated actor's account id and role.  The
        engine trusts that identity but re-checks that the role may
        perform the operation.

    Guarantees:
        - Each public call is one atomic unit.
        - Returned values are frozen DTOs, never ORM entities.
        - Safe to share across threads; every call opens its own session.

    Non-goals:
        - Does NOT authenticate.
        - Does NOT retry on its own; wrap calls with with_retries().
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()

        self._handlers: dict[str, Callable[[_Unit, int, str, Any], LedgerResult]] = {
            PurchaseRequest.TYPE: self._apply_purchase,
            AdjustmentRequest.TYPE: self._apply_adjustment,
            TransferRequest.TYPE: self._apply_transfer,
            RedemptionRequest.TYPE: self._apply_redemption,
            EventAwardRequest.TYPE: self._apply_event_award,
        }

    @property
    def config(self) -> LedgerConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    # =========================================================================
    # Front door
    # =========================================================================

    def submit(
        self,
        actor: int,
        actor_role: str,
        request: LedgerRequest | Mapping[str, Any],
    ) -> LedgerResult:
        """
        Validate and apply one transaction request.

        Args:
            actor: Account id of the authenticated caller.
            actor_role: Role the caller acts under.
            request: A request dataclass, or a mapping with a ``type`` key.

        Returns:
            LedgerResult with the created transaction record(s).

        Raises:
            InvalidRequestError: Malformed request or unknown type.
            PointsKernelError: Any typed rejection from the handler.
            ConflictError: Lost a race with a concurrent unit.
        """
        try:
            parsed = parse_request(request)
        except InvalidRequestError as exc:
            logger.warning(
                "ledger_request_rejected",
                extra={"error_code": exc.code, "field": exc.field, "actor_id": actor},
            )
            raise

        handler = self._handlers[parsed.TYPE]
        return self._run(
            parsed.TYPE,
            actor,
            lambda unit: handler(unit, actor, actor_role, parsed),
        )

    def purchase(
        self,
        actor: int,
        actor_role: str,
        beneficiary: AccountRef,
        spent: Any,
        promotion_ids: Any = (),
        remark: str | None = None,
    ) -> LedgerResult:
        return self.submit(actor, actor_role, {
            "type": PurchaseRequest.TYPE,
            "beneficiary": beneficiary,
            "spent": spent,
            "promotion_ids": promotion_ids,
            "remark": remark,
        })

    def adjust(
        self,
        actor: int,
        actor_role: str,
        beneficiary: AccountRef,
        amount: int,
        related_id: int,
        remark: str | None = None,
    ) -> LedgerResult:
        return self.submit(actor, actor_role, {
            "type": AdjustmentRequest.TYPE,
            "beneficiary": beneficiary,
            "amount": amount,
            "related_id": related_id,
            "remark": remark,
        })

    def transfer(
        self,
        actor: int,
        actor_role: str,
        recipient: AccountRef,
        amount: int,
        remark: str | None = None,
    ) -> LedgerResult:
        return self.submit(actor, actor_role, {
            "type": TransferRequest.TYPE,
            "recipient": recipient,
            "amount": amount,
            "remark": remark,
        })

    def request_redemption(
        self,
        actor: int,
        actor_role: str,
        amount: int,
        remark: str | None = None,
    ) -> LedgerResult:
        return self.submit(actor, actor_role, {
            "type": RedemptionRequest.TYPE,
            "amount": amount,
            "remark": remark,
        })

    def award_event_points(
        self,
        actor: int,
        actor_role: str,
        event_id: int,
        amount: int,
        recipient: AccountRef | None = None,
        remark: str | None = None,
    ) -> LedgerResult:
        return self.submit(actor, actor_role, {
            "type": EventAwardRequest.TYPE,
            "event_id": event_id,
            "amount": amount,
            "recipient": recipient,
            "remark": remark,
        })

    def process_redemption(
        self,
        actor: int,
        actor_role: str,
        transaction_id: int,
    ) -> LedgerResult:
        """
        Fulfil a pending redemption.

        Preconditions:
            - ``actor_role`` holds redemption.process.

        Postconditions:
            - The beneficiary's points and reservation both drop by the
              redeemed amount.
            - The transaction carries processed_by_id / processed_at and
              applied_points == -points.

        Raises:
            TransactionNotFoundError: Unknown transaction id.
            InvalidRequestError: The transaction is not a redemption.
            AlreadyProcessedError: The redemption was already fulfilled.
            InsufficientBalanceError: The balance fell below the amount.
        """
        _require_int(transaction_id, "transaction_id")
        return self._run(
            "redemption_process",
            actor,
            lambda unit: self._apply_process_redemption(unit, actor, actor_role, transaction_id),
            transaction_id=transaction_id,
        )

    def set_transaction_suspicious(
        self,
        actor: int,
        actor_role: str,
        transaction_id: int,
        suspicious: bool,
    ) -> ReconciliationRecord:
        """
        Flag or unflag the beneficiary of a transaction and reconcile.

        Flagging a non-suspicious account subtracts the transaction's
        recorded points; unflagging a suspicious account adds them back;
        any other combination leaves the balance unchanged.  The original
        transaction is never modified.

        Raises:
            UnauthorizedError: Role lacks account.flag_suspicious.
            TransactionNotFoundError: Unknown transaction id.
        """
        _require_int(transaction_id, "transaction_id")
        _require_bool(suspicious, "suspicious")
        return self._run(
            "transaction_suspicious",
            actor,
            lambda unit: self._apply_transaction_suspicious(
                unit, actor, actor_role, transaction_id, suspicious
            ),
            transaction_id=transaction_id,
            suspicious=suspicious,
        )

    def set_account_suspicious(
        self,
        actor: int,
        actor_role: str,
        account: AccountRef,
        suspicious: bool,
    ) -> ReconciliationRecord:
        """
        Toggle an account's suspicious flag with no balance effect.

        The flag governs purchase withholding for purchases the account
        submits as a cashier.

        Raises:
            UnauthorizedError: Role lacks account.flag_suspicious.
            AccountNotFoundError: Unknown account.
        """
        _require_bool(suspicious, "suspicious")
        return self._run(
            "account_suspicious",
            actor,
            lambda unit: self._apply_account_suspicious(
                unit, actor, actor_role, account, suspicious
            ),
            suspicious=suspicious,
        )

    def with_retries(self, operation: Callable[[], T]) -> T:
        """Run ``operation`` under retry_on_conflict with the configured limit."""
        return retry_on_conflict(operation, max_retries=self._config.max_conflict_retries)

    # =========================================================================
    # Atomic unit runner
    # =========================================================================

    def _run(
        self,
        operation: str,
        actor: int,
        body: Callable[[_Unit], T],
        transaction_id: int | None = None,
        **log_extra: Any,
    ) -> T:
        _require_int(actor, "actor")

        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor),
            request_type=operation,
            transaction_id=str(transaction_id) if transaction_id is not None else None,
        ):
            logger.info(f"{operation}_started", extra=log_extra)
            t0 = time.monotonic()

            session = self._session_factory()
            try:
                with session.begin():
                    result = body(_Unit(session))
            except PointsKernelError as exc:
                logger.warning(
                    f"{operation}_rejected",
                    extra={
                        "error_code": exc.code,
                        "reason": str(exc),
                        "duration_ms": _elapsed_ms(t0),
                    },
                )
                raise
            except (IntegrityError, OperationalError) as exc:
                reason = str(getattr(exc, "orig", None) or exc)
                logger.warning(
                    f"{operation}_conflict",
                    extra={
                        "error_code": ConflictError.code,
                        "reason": reason,
                        "duration_ms": _elapsed_ms(t0),
                    },
                )
                raise ConflictError(operation, reason) from exc
            except Exception:
                logger.error(
                    f"{operation}_failed",
                    extra={"duration_ms": _elapsed_ms(t0)},
                    exc_info=True,
                )
                raise
            finally:
                session.close()

            logger.info(
                f"{operation}_completed",
                extra={
                    "duration_ms": _elapsed_ms(t0),
                    **_result_summary(result),
                },
            )
            return result

    # =========================================================================
    # Handlers -- each runs inside an open atomic unit
    # =========================================================================

    def _apply_purchase(
        self, unit: _Unit, actor: int, role: str, req: PurchaseRequest
    ) -> LedgerResult:
        authority.require_permission(self._config, actor, role, authority.PURCHASE_CREATE)

        beneficiary = unit.accounts.lock_one(req.beneficiary)
        now = self._clock.now()

        promotions = unit.promotions.load(req.promotion_ids)
        used = (
            unit.promotions.used_promotion_ids(beneficiary.id)
            if any(p.is_onetime for p in promotions)
            else set()
        )
        outcome = evaluate_promotions(promotions, req.spent, now, used)
        total = base_points(req.spent, self._config.point_value) + outcome.bonus

        actor_account = unit.accounts.find(actor)
        if actor_account is None:
            logger.warning("purchase_actor_unknown", extra={"actor_id": actor})
            withheld = False
        else:
            withheld = actor_account.suspicious
        applied = 0 if withheld else total

        tx = unit.ledger.append(
            TransactionType.PURCHASE,
            beneficiary_id=beneficiary.id,
            points=total,
            applied_points=applied,
            created_by_id=actor,
            created_at=now,
            face_amount=req.spent,
            promotion_ids=outcome.applied_ids,
            remark=req.remark,
        )
        unit.accounts.credit(beneficiary.id, applied)
        for promotion_id in outcome.onetime_ids:
            unit.promotions.record_use(promotion_id, beneficiary.id, tx.id, now)

        if withheld:
            logger.warning(
                "purchase_points_withheld",
                extra={
                    "transaction_id": tx.id,
                    "beneficiary_id": beneficiary.id,
                    "withheld_points": total,
                },
            )
        return LedgerResult((_record(tx),))

    def _apply_adjustment(
        self, unit: _Unit, actor: int, role: str, req: AdjustmentRequest
    ) -> LedgerResult:
        authority.require_permission(self._config, actor, role, authority.ADJUSTMENT_CREATE)

        beneficiary = unit.accounts.lock_one(req.beneficiary)
        if not unit.ledger.exists(req.related_id):
            raise TransactionNotFoundError(req.related_id)

        now = self._clock.now()
        tx = unit.ledger.append(
            TransactionType.ADJUSTMENT,
            beneficiary_id=beneficiary.id,
            points=req.amount,
            applied_points=req.amount,
            created_by_id=actor,
            created_at=now,
            related_id=req.related_id,
            remark=req.remark,
        )
        unit.accounts.credit(beneficiary.id, req.amount)
        return LedgerResult((_record(tx),))

    def _apply_transfer(
        self, unit: _Unit, actor: int, role: str, req: TransferRequest
    ) -> LedgerResult:
        authority.require_permission(self._config, actor, role, authority.TRANSFER_CREATE)

        sender_id = unit.accounts.resolve_id(actor)
        recipient_id = unit.accounts.resolve_id(req.recipient)
        if sender_id == recipient_id:
            raise InvalidRequestError("cannot transfer points to yourself", field="recipient")

        locked = unit.accounts.lock([sender_id, recipient_id])
        if not locked[sender_id].verified:
            raise UnauthorizedError(actor, authority.TRANSFER_CREATE, "sender is not verified")

        unit.accounts.debit_available(sender_id, req.amount)
        unit.accounts.credit(recipient_id, req.amount)

        now = self._clock.now()
        debit_leg = unit.ledger.append(
            TransactionType.TRANSFER,
            beneficiary_id=sender_id,
            points=-req.amount,
            applied_points=-req.amount,
            created_by_id=actor,
            created_at=now,
            counterparty_id=recipient_id,
            remark=req.remark,
        )
        credit_leg = unit.ledger.append(
            TransactionType.TRANSFER,
            beneficiary_id=recipient_id,
            points=req.amount,
            applied_points=req.amount,
            created_by_id=actor,
            created_at=now,
            counterparty_id=sender_id,
            remark=req.remark,
        )
        return LedgerResult((_record(debit_leg), _record(credit_leg)))

    def _apply_redemption(
        self, unit: _Unit, actor: int, role: str, req: RedemptionRequest
    ) -> LedgerResult:
        authority.require_permission(self._config, actor, role, authority.REDEMPTION_CREATE)

        account = unit.accounts.lock_one(actor)
        if not account.verified:
            raise UnauthorizedError(actor, authority.REDEMPTION_CREATE, "account is not verified")

        unit.accounts.reserve(account.id, req.amount)
        tx = unit.ledger.append(
            TransactionType.REDEMPTION,
            beneficiary_id=account.id,
            points=req.amount,
            applied_points=0,
            created_by_id=actor,
            created_at=self._clock.now(),
            remark=req.remark,
        )
        return LedgerResult((_record(tx),))

    def _apply_event_award(
        self, unit: _Unit, actor: int, role: str, req: EventAwardRequest
    ) -> LedgerResult:
        allowed, reason = authority.check_permission(self._config, role, authority.EVENT_AWARD)
        if not allowed and not unit.events.is_organizer(req.event_id, actor):
            raise UnauthorizedError(
                actor,
                authority.EVENT_AWARD,
                f"{reason}; not an organizer of event {req.event_id}",
            )

        event = unit.events.lock(req.event_id)

        if req.recipient is not None:
            recipient_id = unit.accounts.resolve_id(req.recipient)
            if not unit.events.is_guest(event.id, recipient_id):
                raise InvalidRequestError(
                    f"account {req.recipient} is not a guest of event {event.id}",
                    field="recipient",
                )
            recipients = [recipient_id]
        else:
            recipients = unit.events.guest_ids(event.id)
            if not recipients:
                raise InvalidRequestError(
                    f"event {event.id} has no guests to award", field="recipient"
                )

        total = req.amount * len(recipients)
        if total > event.points_remaining:
            raise InsufficientPoolError(event.id, total, event.points_remaining)

        unit.events.draw(event.id, total)
        unit.accounts.lock(recipients)

        now = self._clock.now()
        records = []
        for recipient_id in recipients:
            unit.accounts.credit(recipient_id, req.amount)
            tx = unit.ledger.append(
                TransactionType.EVENT,
                beneficiary_id=recipient_id,
                points=req.amount,
                applied_points=req.amount,
                created_by_id=actor,
                created_at=now,
                related_id=event.id,
                remark=req.remark,
            )
            records.append(_record(tx))
        return LedgerResult(tuple(records))

    def _apply_process_redemption(
        self, unit: _Unit, actor: int, role: str, transaction_id: int
    ) -> LedgerResult:
        authority.require_permission(self._config, actor, role, authority.REDEMPTION_PROCESS)

        tx = unit.ledger.lock(transaction_id)
        if not tx.is_redemption:
            raise InvalidRequestError(
                f"transaction {transaction_id} is not a redemption", field="transaction_id"
            )
        if tx.is_processed:
            raise AlreadyProcessedError(tx.id, tx.processed_by_id)

        unit.accounts.lock([tx.beneficiary_id])
        unit.ledger.mark_processed(
            tx.id,
            processed_by_id=actor,
            processed_at=self._clock.now(),
            applied_points=-tx.points,
        )
        unit.accounts.settle_reserved(tx.beneficiary_id, tx.points)
        return LedgerResult((_record(tx),))

    def _apply_transaction_suspicious(
        self,
        unit: _Unit,
        actor: int,
        role: str,
        transaction_id: int,
        suspicious: bool,
    ) -> ReconciliationRecord:
        authority.require_permission(
            self._config, actor, role, authority.ACCOUNT_FLAG_SUSPICIOUS
        )

        tx = unit.ledger.get(transaction_id)
        account = unit.accounts.lock([tx.beneficiary_id])[tx.beneficiary_id]

        was_suspicious = account.suspicious
        if suspicious and not was_suspicious:
            delta = -tx.points
        elif not suspicious and was_suspicious:
            delta = tx.points
        else:
            delta = 0
        changed = was_suspicious != suspicious

        if changed:
            unit.accounts.set_suspicious(account.id, suspicious)
        unit.accounts.credit(account.id, delta)
        row = unit.ledger.record_reconciliation(
            account_id=account.id,
            transaction_id=tx.id,
            suspicious=suspicious,
            points_delta=delta,
            created_by_id=actor,
            created_at=self._clock.now(),
        )
        return ReconciliationRecord.from_model(row, flag_changed=changed)

    def _apply_account_suspicious(
        self,
        unit: _Unit,
        actor: int,
        role: str,
        account_ref: AccountRef,
        suspicious: bool,
    ) -> ReconciliationRecord:
        authority.require_permission(
            self._config, actor, role, authority.ACCOUNT_FLAG_SUSPICIOUS
        )

        account = unit.accounts.lock_one(account_ref)
        changed = account.suspicious != suspicious
        if changed:
            unit.accounts.set_suspicious(account.id, suspicious)
        row = unit.ledger.record_reconciliation(
            account_id=account.id,
            transaction_id=None,
            suspicious=suspicious,
            points_delta=0,
            created_by_id=actor,
            created_at=self._clock.now(),
        )
        return ReconciliationRecord.from_model(row, flag_changed=changed)


def _require_int(value: Any, field: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError(f"{field} must be an integer id", field=field)


def _require_bool(value: Any, field: str) -> None:
    if not isinstance(value, bool):
        raise InvalidRequestError(f"{field} must be a boolean", field=field)


def _elapsed_ms(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000, 2)


def _result_summary(result: Any) -> dict[str, Any]:
    if isinstance(result, LedgerResult):
        return {
            "transaction_ids": [r.id for r in result.records],
            "applied_points": result.total_applied,
        }
    if isinstance(result, ReconciliationRecord):
        return {
            "reconciliation_id": result.id,
            "points_delta": result.points_delta,
            "flag_changed": result.flag_changed,
        }
    return {}
