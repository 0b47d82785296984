"""
asset_config -- single public entrypoint for registry configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration. It reads one YAML document (the shipped
    ``defaults/registry.yaml``, a path argument, or the file named by the
    ``ASSET_REGISTRY_CONFIG`` environment variable), validates it and
    returns a frozen ``RegistryConfig``.

Architecture position:
    Configuration. Sits above ``asset_kernel``; the kernel never imports
    this package. ``asset_config.bridges`` turns a RegistryConfig into the
    kernel's ``RegistryPolicy``.

Failure modes:
    - ``FileNotFoundError`` -- the configured file does not exist.
    - ``ValueError`` -- validation failed (unknown role or capability,
      non-positive limit, default_limit above max_limit, ...).

Audit relevance:
    Every successful call logs ``asset_config_loaded`` with the config id,
    version and checksum, tying registry behaviour to a known document.
"""

from __future__ import annotations

import os
from pathlib import Path

from asset_config.loader import load_registry_config
from asset_config.schema import RegistryConfig
from asset_kernel.logging_config import get_logger

__all__ = ["CONFIG_ENV_VAR", "DEFAULT_CONFIG_PATH", "RegistryConfig", "get_active_config"]

_logger = get_logger("config")

CONFIG_ENV_VAR = "ASSET_REGISTRY_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "registry.yaml"


def get_active_config(path: Path | str | None = None) -> RegistryConfig:
    """
    Load and validate the active registry configuration.

    Resolution order: ``path`` argument, then ``$ASSET_REGISTRY_CONFIG``,
    then the shipped defaults.
    """
    resolved = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    config = load_registry_config(resolved)
    _logger.info(
        "asset_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(resolved),
            "role_count": len(config.role_default_permissions),
        },
    )
    return config
