"""
Role authority -- maps an actor's role to the permissions it grants.

Responsibility:
    Decide whether a role may perform an operation, using the role ->
    permission table from LedgerConfig.  Identity and role come from the
    caller (authentication is external); this module only re-validates the
    role against the operation.

Architecture position:
    Kernel > Domain -- pure, no I/O.
"""

from points_config.schema import LedgerConfig

from points_kernel.exceptions import UnauthorizedError

# Permission strings used by the ledger engine
PURCHASE_CREATE = "purchase.create"
ADJUSTMENT_CREATE = "adjustment.create"
TRANSFER_CREATE = "transfer.create"
REDEMPTION_CREATE = "redemption.create"
REDEMPTION_PROCESS = "redemption.process"
EVENT_AWARD = "event.award"
ACCOUNT_FLAG_SUSPICIOUS = "account.flag_suspicious"


def check_permission(
    config: LedgerConfig,
    role: str | None,
    required_permission: str,
) -> tuple[bool, str]:
    """Check whether ``role`` holds ``required_permission``.

    Returns:
        (allowed, reason).  reason is empty when allowed, or a short
        message when denied.
    """
    if not role or not str(role).strip():
        return (False, "no role provided")

    if role not in config.role_names:
        return (False, f"unknown role '{role}'")

    if required_permission not in config.permissions_for(role):
        return (False, f"permission '{required_permission}' not granted to role '{role}'")

    return (True, "")


def require_permission(
    config: LedgerConfig,
    actor_id: int | str | None,
    role: str | None,
    required_permission: str,
) -> None:
    """
    Raise UnauthorizedError unless ``role`` holds ``required_permission``.

    Raises:
        UnauthorizedError: naming the permission as the operation.
    """
    allowed, reason = check_permission(config, role, required_permission)
    if not allowed:
        raise UnauthorizedError(actor_id, required_permission, reason)
