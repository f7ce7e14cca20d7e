"""
Configuration Loader (``points_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into a frozen
``LedgerConfig``.  The single public entry point for runtime config is
``points_config.get_active_config()``.

Invariants enforced
-------------------
* Missing required keys raise ``ValueError`` naming the key; no silent
  defaults for required fields.
* ``point_value`` must be a positive decimal.
* Role inheritance must reference defined roles and must not cycle.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Structural errors  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from points_config.schema import LedgerConfig, RoleDef


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _require(data: dict[str, Any], key: str, where: str) -> Any:
    if not isinstance(data, dict) or key not in data:
        raise ValueError(f"Missing required key '{key}' in {where}")
    return data[key]


def parse_role(data: dict[str, Any]) -> RoleDef:
    return RoleDef(
        name=str(_require(data, "name", "role definition")),
        permissions=tuple(str(p) for p in data.get("permissions") or ()),
        inherits=tuple(str(r) for r in data.get("inherits") or ()),
    )


def resolve_role_permissions(
    roles: tuple[RoleDef, ...],
) -> tuple[tuple[str, frozenset[str]], ...]:
    """
    Flatten role inheritance into (role, permissions) pairs.

    Raises:
        ValueError: on duplicate roles, unknown parents, or cycles.
    """
    by_name: dict[str, RoleDef] = {}
    for role in roles:
        if role.name in by_name:
            raise ValueError(f"Duplicate role definition: {role.name}")
        by_name[role.name] = role

    resolved: dict[str, frozenset[str]] = {}

    def resolve(name: str, chain: tuple[str, ...]) -> frozenset[str]:
        if name in resolved:
            return resolved[name]
        if name in chain:
            raise ValueError(f"Role inheritance cycle: {' -> '.join(chain + (name,))}")
        if name not in by_name:
            raise ValueError(f"Role '{chain[-1]}' inherits unknown role '{name}'")
        role = by_name[name]
        perms = set(role.permissions)
        for parent in role.inherits:
            perms |= resolve(parent, chain + (name,))
        resolved[name] = frozenset(perms)
        return resolved[name]

    return tuple((role.name, resolve(role.name, ())) for role in roles)


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a raw configuration document into a LedgerConfig.

    Raises:
        ValueError: If required keys are missing or values are invalid.
    """
    ledger = _require(data, "ledger", "configuration set")
    rbac = _require(data, "rbac", "configuration set")

    raw_point_value = _require(ledger, "point_value", "ledger")
    try:
        point_value = Decimal(str(raw_point_value))
    except InvalidOperation as exc:
        raise ValueError(f"point_value is not a decimal: {raw_point_value!r}") from exc
    if not point_value.is_finite() or point_value <= 0:
        raise ValueError(f"point_value must be positive, got {raw_point_value!r}")

    max_retries = int(ledger.get("max_conflict_retries", 3))
    if max_retries < 0:
        raise ValueError(f"max_conflict_retries must be >= 0, got {max_retries}")

    roles = tuple(parse_role(r) for r in _require(rbac, "roles", "rbac"))
    if not roles:
        raise ValueError("rbac.roles must define at least one role")

    return LedgerConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        point_value=point_value,
        max_conflict_retries=max_retries,
        role_permissions=resolve_role_permissions(roles),
        checksum=compute_checksum(data),
        roles=roles,
    )
