"""
Typed Exception Hierarchy for the Points Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejected ledger operation must tell the caller exactly which rule it
broke.  The transport layer maps these to responses; it must be able to do
that by type and by ``code``, never by parsing message text.

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

    try:
        engine.submit(actor_id, role, request)
    except InsufficientBalanceError as e:
        respond(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PointsKernelError (base)
    |
    +-- InvalidRequestError
    |
    +-- UnauthorizedError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- EventNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- PromotionNotFoundError  (also a PromotionInvalidError)
    |
    +-- PromotionInvalidError
    |
    +-- InsufficientBalanceError
    |
    +-- InsufficientPoolError
    |
    +-- AlreadyProcessedError
    |
    +-- ConflictError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | When Raised
------------------------|------------------------------------------------------
INVALID_REQUEST         | Missing/malformed field, unknown transaction type
UNAUTHORIZED            | Role may not perform the operation, unverified sender
ACCOUNT_NOT_FOUND       | Beneficiary/recipient/actor account does not exist
EVENT_NOT_FOUND         | Event id does not exist
TRANSACTION_NOT_FOUND   | Related / processed / reviewed transaction missing
PROMOTION_NOT_FOUND     | Purchase references a promotion that does not exist
PROMOTION_INVALID       | Inactive, minimum spend unmet, or already used
INSUFFICIENT_BALANCE    | Transfer/redemption would overdraw available points
INSUFFICIENT_POOL       | Event award exceeds remaining pool
ALREADY_PROCESSED       | Redemption already fulfilled
CONFLICT                | Store-level conflict with a concurrent unit (retry)
IMMUTABILITY_VIOLATION  | Attempt to rewrite an append-only ledger record

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Everything except ConflictError is deterministic: retrying the same
   request against the same state fails the same way.

2. ConflictError is the only retryable kind.  The atomic unit has already
   been rolled back; see ``retry_on_conflict``.

3. ImmutabilityViolationError is a programming error, never a user error.
"""


class PointsKernelError(Exception):
    """
    Base exception for all points kernel errors.

    All subclasses have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "POINTS_KERNEL_ERROR"


class InvalidRequestError(PointsKernelError):
    """Request is malformed: missing field, wrong type, unknown variant."""

    code: str = "INVALID_REQUEST"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class UnauthorizedError(PointsKernelError):
    """Actor's role (or account state) does not permit the operation."""

    code: str = "UNAUTHORIZED"

    def __init__(self, actor_id: int | str | None, operation: str, reason: str):
        self.actor_id = actor_id
        self.operation = operation
        self.reason = reason
        super().__init__(f"Actor {actor_id} may not perform {operation}: {reason}")


# Lookup failures


class NotFoundError(PointsKernelError):
    """Base exception for referenced entities that do not exist."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account with given id or utorid does not exist."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_ref: int | str):
        self.account_ref = account_ref
        super().__init__(f"Account not found: {account_ref}")


class EventNotFoundError(NotFoundError):
    """Event with given id does not exist."""

    code: str = "EVENT_NOT_FOUND"

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")


class TransactionNotFoundError(NotFoundError):
    """Transaction with given id does not exist."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


# Promotion failures


class PromotionInvalidError(PointsKernelError):
    """
    A referenced promotion cannot be applied to this purchase.

    The whole purchase is rejected; promotions are never partially applied.
    """

    code: str = "PROMOTION_INVALID"

    def __init__(self, promotion_id: int, reason: str):
        self.promotion_id = promotion_id
        self.reason = reason
        super().__init__(f"Promotion {promotion_id} is invalid: {reason}")


class PromotionNotFoundError(PromotionInvalidError, NotFoundError):
    """Purchase references a promotion id that does not exist."""

    code: str = "PROMOTION_NOT_FOUND"

    def __init__(self, promotion_id: int):
        super().__init__(promotion_id, "promotion does not exist")


# Capacity failures


class InsufficientBalanceError(PointsKernelError):
    """Operation would take an account's available points below zero."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, account_id: int, requested: int, available: int | None = None):
        self.account_id = account_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient points on account {account_id}: "
            f"requested {requested}, available {available}"
        )


class InsufficientPoolError(PointsKernelError):
    """Event award exceeds the event's remaining point pool."""

    code: str = "INSUFFICIENT_POOL"

    def __init__(self, event_id: int, required: int, remaining: int):
        self.event_id = event_id
        self.required = required
        self.remaining = remaining
        super().__init__(
            f"Event {event_id} pool has {remaining} points remaining, "
            f"{required} required"
        )


class AlreadyProcessedError(PointsKernelError):
    """Redemption has already been fulfilled."""

    code: str = "ALREADY_PROCESSED"

    def __init__(self, transaction_id: int, processed_by_id: int | None = None):
        self.transaction_id = transaction_id
        self.processed_by_id = processed_by_id
        super().__init__(
            f"Redemption {transaction_id} was already processed by {processed_by_id}"
        )


# Store-level failures


class ConflictError(PointsKernelError):
    """
    The atomic unit lost a race with a concurrent unit.

    Safe to retry: the unit was rolled back and left no side effects.
    """

    code: str = "CONFLICT"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Conflict during {operation}: {reason}")


class ImmutabilityViolationError(PointsKernelError):
    """Attempted to update or delete an append-only ledger record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: int | str | None, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
