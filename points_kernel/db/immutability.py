"""
ORM-level immutability enforcement for the points ledger.

SQLAlchemy fires mapper events before an UPDATE or DELETE reaches the
database.  The listeners below intercept those events for ledger rows and
raise ImmutabilityViolationError, which aborts the flush and therefore the
whole atomic unit:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() ---------^
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

Entity                   | When immutable           | Permitted change
-------------------------|--------------------------|-----------------------------
LedgerTransaction        | Always                   | Redemption fulfillment stamp,
                         |                          | once (processed_by_id,
                         |                          | processed_at, applied_points)
PromotionUse             | Always                   | None
SuspicionReconciliation  | Always                   | None

Guarded store-level UPDATE statements (TransactionLedger.mark_processed) do
not pass through mapper events; they carry their own WHERE guard.

Usage:

    from points_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (tests only):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from points_kernel.exceptions import ImmutabilityViolationError
from points_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Fields a pending redemption may receive exactly once
FULFILLMENT_FIELDS = frozenset({"processed_by_id", "processed_at", "applied_points"})


def _block(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_transaction_immutability(mapper, connection, target):
    """
    Prevent updates to LedgerTransaction rows.

    The only allowed change is stamping an unprocessed redemption: the old
    processed_by_id must have been NULL, and nothing outside the
    fulfillment fields may change.
    """
    from points_kernel.models.transaction import LedgerTransaction

    if not isinstance(target, LedgerTransaction):
        return

    changed = [attr.key for attr in inspect(target).attrs if attr.history.has_changes()]
    if not changed:
        return

    outside = [key for key in changed if key not in FULFILLMENT_FIELDS]
    if outside:
        _block(
            "LedgerTransaction",
            target.id,
            "UPDATE",
            f"Cannot modify field '{outside[0]}' on a ledger transaction",
            field=outside[0],
        )

    if not target.is_redemption:
        _block(
            "LedgerTransaction",
            target.id,
            "UPDATE",
            "Only redemptions can be stamped as processed",
            field=changed[0],
        )

    processed_history = get_history(target, "processed_by_id")
    was_processed = (
        processed_history.deleted[0] is not None
        if processed_history.deleted
        else target.processed_by_id is not None and not processed_history.added
    )
    if was_processed:
        _block(
            "LedgerTransaction",
            target.id,
            "UPDATE",
            "Redemption has already been processed",
            field="processed_by_id",
        )


def _check_transaction_delete(mapper, connection, target):
    """Ledger transactions can never be deleted."""
    from points_kernel.models.transaction import LedgerTransaction

    if not isinstance(target, LedgerTransaction):
        return

    _block("LedgerTransaction", target.id, "DELETE", "Ledger transactions cannot be deleted")


def _check_append_only_update(mapper, connection, target):
    """PromotionUse and SuspicionReconciliation are never modified."""
    entity_type = type(target).__name__
    _block(entity_type, target.id, "UPDATE", f"{entity_type} records are append-only")


def _check_append_only_delete(mapper, connection, target):
    entity_type = type(target).__name__
    _block(entity_type, target.id, "DELETE", f"{entity_type} records cannot be deleted")


def _listener_table():
    from points_kernel.models.promotion import PromotionUse
    from points_kernel.models.reconciliation import SuspicionReconciliation
    from points_kernel.models.transaction import LedgerTransaction

    return [
        (LedgerTransaction, "before_update", _check_transaction_immutability),
        (LedgerTransaction, "before_delete", _check_transaction_delete),
        (PromotionUse, "before_update", _check_append_only_update),
        (PromotionUse, "before_delete", _check_append_only_delete),
        (SuspicionReconciliation, "before_update", _check_append_only_update),
        (SuspicionReconciliation, "before_delete", _check_append_only_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent.  Call after the models are importable and before any ledger
    write.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must violate immutability on
    purpose.
    """
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)
