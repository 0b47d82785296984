"""
Config -> Kernel bridges.

Converts a loaded ``RegistryConfig`` into the kernel's ``RegistryPolicy``.
Lives in asset_config (the producer) because the kernel never imports
asset_config.

Usage:
    from asset_config import get_active_config
    from asset_config.bridges import build_registry_policy

    policy = build_registry_policy(get_active_config())
    ledger = AssetLedger(session, clock, policy)
"""

from __future__ import annotations

from types import MappingProxyType

from asset_config.schema import RegistryConfig
from asset_kernel.domain.authorization import Role
from asset_kernel.domain.enums import DepreciationMethod, IdentifierKind
from asset_kernel.domain.policies import (
    CompliancePolicy,
    DepreciationPolicy,
    IdentifierPolicy,
    PaginationPolicy,
    RegistryPolicy,
)


def build_identifier_policy(config: RegistryConfig) -> IdentifierPolicy:
    settings = config.identifiers
    return IdentifierPolicy(
        max_attempts=settings.max_attempts,
        base_length=settings.base_length,
        pad_char=settings.pad_char,
        suffix_widths=MappingProxyType({
            IdentifierKind(kind): width for kind, width in settings.suffix_widths
        }),
    )


def build_registry_policy(config: RegistryConfig) -> RegistryPolicy:
    """Build the full kernel policy from configuration."""
    dep = config.depreciation
    return RegistryPolicy(
        identifiers=build_identifier_policy(config),
        depreciation=DepreciationPolicy(
            days_per_year=dep.days_per_year,
            declining_balance_factor=dep.declining_balance_factor,
            quantum=dep.quantum,
            default_method=DepreciationMethod(dep.default_method),
        ),
        compliance=CompliancePolicy(
            audit_interval_days=config.compliance.audit_interval_days,
        ),
        pagination=PaginationPolicy(
            default_limit=config.pagination.default_limit,
            max_limit=config.pagination.max_limit,
        ),
        role_default_permissions=MappingProxyType({
            Role(role): frozenset(tags)
            for role, tags in config.role_default_permissions
        }),
    )
