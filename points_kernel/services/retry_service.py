"""
Conflict retry -- re-run an atomic unit that lost a race.

Responsibility:
    ``retry_on_conflict`` re-invokes an operation that raised
    ConflictError, up to a configured limit.  Only ConflictError is
    retried: typed business rejections (insufficient balance, invalid
    promotion, ...) are deterministic and propagate on the first attempt.

Architecture position:
    Kernel > Services -- imperative shell.  Used by LedgerEngine.with_retries
    and by callers that batch engine calls.

Invariants enforced:
    - A retried operation is always a fresh atomic unit; the failed one
      was rolled back before ConflictError was raised.
    - The final ConflictError is re-raised unchanged when retries run out.
"""

from collections.abc import Callable
from typing import TypeVar

from points_kernel.exceptions import ConflictError
from points_kernel.logging_config import get_logger

logger = get_logger("services.retry_service")

T = TypeVar("T")

# Safety limit -- prevents unbounded retry loops from bad configuration
MAX_RETRIES = 10


def retry_on_conflict(operation: Callable[[], T], max_retries: int = 3) -> T:
    """
    Run ``operation``, retrying on ConflictError.

    Args:
        operation: Zero-argument callable performing one atomic unit.
        max_retries: Retries after the first attempt (capped at
            MAX_RETRIES).

    Returns:
        Whatever ``operation`` returns.

    Raises:
        ConflictError: If every attempt conflicted.
        PointsKernelError: Any other typed error, immediately.
    """
    limit = max(0, min(max_retries, MAX_RETRIES))
    attempt = 0
    while True:
        try:
            return operation()
        except ConflictError as exc:
            if attempt >= limit:
                logger.warning(
                    "conflict_retries_exhausted",
                    extra={"attempts": attempt + 1, "operation": exc.operation},
                )
                raise
            attempt += 1
            logger.info(
                "conflict_retry",
                extra={"attempt": attempt, "operation": exc.operation, "reason": exc.reason},
            )
