"""
Configuration schema (``points_config.schema``).

Responsibility
--------------
Frozen dataclasses describing a parsed points configuration set.  The
loader produces them; the ledger engine and authority consume them.

Invariants enforced
-------------------
* Every dataclass is frozen, so a loaded config cannot drift at runtime.
* ``LedgerConfig.role_permissions`` is fully resolved: inheritance has
  already been flattened by the loader.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class RoleDef:
    """Single role definition: permissions and optional inheritance."""

    name: str
    permissions: tuple[str, ...]
    inherits: tuple[str, ...] = ()


@dataclass(frozen=True)
class LedgerConfig:
    """
    The runtime configuration artifact.

    Attributes:
        config_id: Name of the configuration set.
        version: Configuration version.
        point_value: Currency spent per earned point.
        max_conflict_retries: Retry limit for retry_on_conflict().
        role_permissions: (role, permissions) pairs with inheritance
            flattened.
        checksum: SHA-256 of the canonical source document.
    """

    config_id: str
    version: int
    point_value: Decimal
    max_conflict_retries: int
    role_permissions: tuple[tuple[str, frozenset[str]], ...]
    checksum: str = ""
    roles: tuple[RoleDef, ...] = field(default=(), compare=False)

    def permissions_for(self, role: str) -> frozenset[str]:
        """Permissions granted to ``role`` (empty for unknown roles)."""
        for name, perms in self.role_permissions:
            if name == role:
                return perms
        return frozenset()

    @property
    def role_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.role_permissions)
