"""
Configuration loader (``asset_config.loader``).

Responsibility
--------------
Reads the registry YAML document and parses it into the frozen
``asset_config.schema`` dataclasses, validating as it goes. Runtime code
goes through ``asset_config.get_active_config()`` instead of calling this
module directly.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values, unknown roles, methods, identifier kinds or
  capability tags  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from asset_config.schema import (
    ComplianceSettings,
    DepreciationSettings,
    IdentifierSettings,
    PaginationSettings,
    RegistryConfig,
)
from asset_kernel.domain.authorization import Capability, Role
from asset_kernel.domain.enums import DepreciationMethod, IdentifierKind


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
    """Deterministic SHA-256 of a parsed document (sorted keys)."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _positive_int(section: str, data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValueError(f"{section}.{key} must be a positive integer, got {value!r}")
    return value


def _decimal(section: str, data: dict[str, Any], key: str, default: str) -> Decimal:
    raw = data.get(key, default)
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        raise ValueError(f"{section}.{key} is not a decimal: {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{section}.{key} must be positive, got {raw!r}")
    return value


def parse_identifiers(data: dict[str, Any]) -> IdentifierSettings:
    pad_char = str(data.get("pad_char", "0"))
    if len(pad_char) != 1:
        raise ValueError(f"identifiers.pad_char must be one character, got {pad_char!r}")

    widths = dict(IdentifierSettings().suffix_widths)
    for kind, width in (data.get("suffix_widths") or {}).items():
        IdentifierKind(kind)  # ValueError on unknown kinds
        if not isinstance(width, int) or width < 0:
            raise ValueError(f"identifiers.suffix_widths.{kind} must be >= 0, got {width!r}")
        widths[kind] = width

    return IdentifierSettings(
        max_attempts=_positive_int("identifiers", data, "max_attempts", 25),
        base_length=_positive_int("identifiers", data, "base_length", 6),
        pad_char=pad_char,
        suffix_widths=tuple(sorted(widths.items())),
    )


def parse_depreciation(data: dict[str, Any]) -> DepreciationSettings:
    method = data.get("default_method", DepreciationMethod.STRAIGHT_LINE.value)
    DepreciationMethod(method)  # ValueError on unknown methods
    return DepreciationSettings(
        days_per_year=_positive_int("depreciation", data, "days_per_year", 365),
        declining_balance_factor=_decimal("depreciation", data, "declining_balance_factor", "2"),
        quantum=_decimal("depreciation", data, "quantum", "0.01"),
        default_method=method,
    )


def parse_pagination(data: dict[str, Any]) -> PaginationSettings:
    settings = PaginationSettings(
        default_limit=_positive_int("pagination", data, "default_limit", 10),
        max_limit=_positive_int("pagination", data, "max_limit", 100),
    )
    if settings.default_limit > settings.max_limit:
        raise ValueError(
            f"pagination.default_limit ({settings.default_limit}) exceeds "
            f"max_limit ({settings.max_limit})"
        )
    return settings


def parse_role_permissions(data: dict[str, Any]) -> tuple[tuple[str, tuple[str, ...]], ...]:
    known = Capability.all()
    parsed = []
    for role, tags in data.items():
        Role(role)  # ValueError on unknown roles
        tags = tuple(sorted(set(tags or ())))
        unknown = [t for t in tags if t not in known]
        if unknown:
            raise ValueError(
                f"role_default_permissions.{role}: unknown capabilities {unknown}"
            )
        parsed.append((role, tags))
    return tuple(sorted(parsed))


def parse_registry_config(data: dict[str, Any]) -> RegistryConfig:
    """Build a validated RegistryConfig from a parsed YAML document."""
    return RegistryConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        identifiers=parse_identifiers(data.get("identifiers") or {}),
        depreciation=parse_depreciation(data.get("depreciation") or {}),
        compliance=ComplianceSettings(
            audit_interval_days=_positive_int(
                "compliance", data.get("compliance") or {}, "audit_interval_days", 365,
            ),
        ),
        pagination=parse_pagination(data.get("pagination") or {}),
        role_default_permissions=parse_role_permissions(
            data.get("role_default_permissions") or {}
        ),
        checksum=compute_checksum(data),
    )


def load_registry_config(path: Path) -> RegistryConfig:
    return parse_registry_config(load_yaml_file(path))
