"""
points_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.

Architecture position:
    Configuration.  Sits beside ``points_kernel``; the kernel receives a
    ``LedgerConfig`` through constructor injection and only falls back to
    ``get_active_config()`` when none is given.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``points_config_loaded`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from points_config.loader import load_yaml_file, parse_config
from points_config.schema import LedgerConfig, RoleDef

_logger = logging.getLogger("points_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned ``LedgerConfig`` has passed structural validation.
        - A ``points_config_loaded`` log entry is emitted on every call.

    Non-goals:
        - No caching across calls; callers hold the returned config.

    Args:
        path: Override path to a YAML configuration set.  Defaults to
            points_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(config_path))

    _logger.info(
        "points_config_loaded",
        extra={
            "config_id": config.config_id,
            "version": config.version,
            "checksum": config.checksum,
            "point_value": str(config.point_value),
            "role_count": len(config.role_permissions),
            "source": str(config_path),
        },
    )
    return config


__all__ = ["LedgerConfig", "RoleDef", "get_active_config"]
