"""
Configuration schema (``asset_config.schema``).

Frozen dataclasses mirroring the YAML document. These are configuration
artifacts, not kernel types: ``asset_config.bridges`` converts them into
the kernel's ``RegistryPolicy``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class IdentifierSettings:
    max_attempts: int = 25
    base_length: int = 6
    pad_char: str = "0"
    # identifier kind value -> zero-padded suffix width
    suffix_widths: tuple[tuple[str, int], ...] = (
        ("tenant_code", 0),
        ("employee_id", 3),
        ("asset_number", 4),
        ("work_order_number", 4),
    )


@dataclass(frozen=True)
class DepreciationSettings:
    days_per_year: int = 365
    declining_balance_factor: Decimal = Decimal("2")
    quantum: Decimal = Decimal("0.01")
    default_method: str = "straight_line"


@dataclass(frozen=True)
class ComplianceSettings:
    audit_interval_days: int = 365


@dataclass(frozen=True)
class PaginationSettings:
    default_limit: int = 10
    max_limit: int = 100


@dataclass(frozen=True)
class RegistryConfig:
    """
    The whole registry configuration, as loaded.

    ``checksum`` is the SHA-256 of the canonical source document and
    identifies exactly which configuration governed a run.
    """

    config_id: str
    version: int
    identifiers: IdentifierSettings = field(default_factory=IdentifierSettings)
    depreciation: DepreciationSettings = field(default_factory=DepreciationSettings)
    compliance: ComplianceSettings = field(default_factory=ComplianceSettings)
    pagination: PaginationSettings = field(default_factory=PaginationSettings)
    # role value -> capability tags seeded onto new users of that role
    role_default_permissions: tuple[tuple[str, tuple[str, ...]], ...] = ()
    checksum: str = ""

    def permissions_for(self, role: str) -> tuple[str, ...]:
        for name, tags in self.role_default_permissions:
            if name == role:
                return tags
        return ()
