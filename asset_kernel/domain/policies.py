"""
Kernel policy values.

Tunables the services read, as frozen dataclasses with working defaults.
The kernel never loads configuration itself; ``asset_config.bridges``
builds a ``RegistryPolicy`` from the YAML configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from asset_kernel.domain.authorization import Role
from asset_kernel.domain.enums import DepreciationMethod, IdentifierKind


@dataclass(frozen=True)
class IdentifierPolicy:
    max_attempts: int = 25
    base_length: int = 6
    pad_char: str = "0"
    suffix_widths: Mapping[IdentifierKind, int] = field(
        default_factory=lambda: MappingProxyType({
            IdentifierKind.TENANT_CODE: 0,
            IdentifierKind.EMPLOYEE_ID: 3,
            IdentifierKind.ASSET_NUMBER: 4,
            IdentifierKind.WORK_ORDER_NUMBER: 4,
        })
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_length < 1:
            raise ValueError("base_length must be at least 1")
        if len(self.pad_char) != 1:
            raise ValueError("pad_char must be a single character")


@dataclass(frozen=True)
class DepreciationPolicy:
    days_per_year: int = 365
    declining_balance_factor: Decimal = Decimal("2")
    quantum: Decimal = Decimal("0.01")
    default_method: DepreciationMethod = DepreciationMethod.STRAIGHT_LINE


@dataclass(frozen=True)
class CompliancePolicy:
    audit_interval_days: int = 365


@dataclass(frozen=True)
class PaginationPolicy:
    default_limit: int = 10
    max_limit: int = 100

    def clamp(self, limit: int | None) -> int:
        if limit is None or limit < 1:
            return self.default_limit
        return min(limit, self.max_limit)


@dataclass(frozen=True)
class RegistryPolicy:
    identifiers: IdentifierPolicy = field(default_factory=IdentifierPolicy)
    depreciation: DepreciationPolicy = field(default_factory=DepreciationPolicy)
    compliance: CompliancePolicy = field(default_factory=CompliancePolicy)
    pagination: PaginationPolicy = field(default_factory=PaginationPolicy)
    # Used only to seed new users; authorization never reads it
    role_default_permissions: Mapping[Role, frozenset[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def default_permissions_for(self, role: Role) -> frozenset[str]:
        return frozenset(self.role_default_permissions.get(role, frozenset()))
