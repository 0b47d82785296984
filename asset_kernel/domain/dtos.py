"""
Request and record value objects crossing the service boundary.

Requests come in from the (external) HTTP layer; records go back out.
Services never hand ORM rows to callers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Generic, TypeVar
from uuid import UUID

from asset_kernel.domain.authorization import Role
from asset_kernel.domain.enums import (
    ApprovalStatus,
    AssetCondition,
    AssetStatus,
    ComplianceStatus,
    Criticality,
    DepreciationMethod,
    MaintenanceCategory,
    MovementType,
    WorkOrderPriority,
    WorkOrderStatus,
)

T = TypeVar("T")


# -----------------------------------------------------------------------------
# Assets
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetCreateRequest:
    name: str
    purchase_cost: Decimal | None = None
    purchase_date: date | None = None
    useful_life_years: Decimal | int | None = None
    salvage_value: Decimal = Decimal("0")
    depreciation_method: DepreciationMethod | None = None
    category: str | None = None
    description: str | None = None
    serial_number: str | None = None
    brand: str | None = None
    model: str | None = None
    location_id: UUID | None = None
    assigned_to_id: UUID | None = None
    condition: AssetCondition = AssetCondition.GOOD
    criticality: Criticality = Criticality.MEDIUM
    total_expected_units: Decimal | None = None
    units_to_date: Decimal | None = None
    notes: str | None = None
    # super_admin only: create inside another tenant
    tenant_id: UUID | None = None


@dataclass(frozen=True)
class AssetUpdateRequest:
    """Partial update. ``None`` leaves a field unchanged."""
    name: str | None = None
    description: str | None = None
    category: str | None = None
    serial_number: str | None = None
    brand: str | None = None
    model: str | None = None
    location_id: UUID | None = None
    assigned_to_id: UUID | None = None
    condition: AssetCondition | None = None
    criticality: Criticality | None = None
    notes: str | None = None
    purchase_cost: Decimal | None = None
    purchase_date: date | None = None
    salvage_value: Decimal | None = None
    useful_life_years: Decimal | int | None = None
    depreciation_method: DepreciationMethod | None = None
    total_expected_units: Decimal | None = None

    def changed_fields(self) -> dict[str, object]:
        return {k: v for k, v in vars(self).items() if v is not None}


@dataclass(frozen=True)
class AssetRecord:
    id: UUID
    tenant_id: UUID
    asset_number: str
    name: str
    status: AssetStatus
    condition: AssetCondition
    criticality: Criticality
    depreciation_method: DepreciationMethod
    accumulated_depreciation: Decimal
    book_value: Decimal
    compliance_status: ComplianceStatus
    version: int
    salvage_value: Decimal = Decimal("0")
    purchase_cost: Decimal | None = None
    purchase_date: date | None = None
    useful_life_years: Decimal | None = None
    description: str | None = None
    category_code: str | None = None
    serial_number: str | None = None
    brand: str | None = None
    model: str | None = None
    location_id: UUID | None = None
    assigned_to_id: UUID | None = None
    notes: str | None = None
    total_expected_units: Decimal | None = None
    units_to_date: Decimal | None = None
    disposal_date: date | None = None
    last_audit_date: date | None = None
    next_audit_date: date | None = None
    status_trigger_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class AssetFilters:
    status: AssetStatus | None = None
    condition: AssetCondition | None = None
    criticality: Criticality | None = None
    category_code: str | None = None
    location_id: UUID | None = None
    assigned_to_id: UUID | None = None
    search: str | None = None
    # Honoured for super_admin only; everyone else is pinned to their tenant
    tenant_id: UUID | None = None


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    limit: int | None = None


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


# -----------------------------------------------------------------------------
# Movements
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class MovementRequest:
    movement_type: MovementType
    to_location_id: UUID | None = None
    to_user_id: UUID | None = None
    reason: str | None = None


@dataclass(frozen=True)
class MovementRecord:
    id: UUID
    tenant_id: UUID
    asset_id: UUID
    movement_type: MovementType
    approval_status: ApprovalStatus
    requested_by_id: UUID
    version: int
    from_location_id: UUID | None = None
    to_location_id: UUID | None = None
    from_user_id: UUID | None = None
    to_user_id: UUID | None = None
    reason: str | None = None
    decided_by_id: UUID | None = None
    decided_at: datetime | None = None
    rejection_reason: str | None = None
    applied_at: datetime | None = None


# -----------------------------------------------------------------------------
# Work orders
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkOrderRequest:
    title: str
    description: str | None = None
    priority: WorkOrderPriority = WorkOrderPriority.MEDIUM
    maintenance_category: MaintenanceCategory = MaintenanceCategory.CORRECTIVE
    estimated_cost: Decimal | None = None
    assigned_to_id: UUID | None = None
    scheduled_date: date | None = None


@dataclass(frozen=True)
class WorkOrderCompletion:
    labor_cost: Decimal | None = None
    parts_cost: Decimal | None = None
    vendor_cost: Decimal | None = None
    actual_hours: Decimal | None = None
    completion_notes: str | None = None
    maintenance_trigger_id: UUID | None = None
    resulting_condition: AssetCondition | None = None


@dataclass(frozen=True)
class WorkOrderRecord:
    id: UUID
    tenant_id: UUID
    asset_id: UUID
    work_order_number: str
    title: str
    priority: WorkOrderPriority
    maintenance_category: MaintenanceCategory
    status: WorkOrderStatus
    version: int
    description: str | None = None
    assigned_to_id: UUID | None = None
    scheduled_date: date | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    estimated_cost: Decimal | None = None
    labor_cost: Decimal | None = None
    parts_cost: Decimal | None = None
    vendor_cost: Decimal | None = None
    actual_cost: Decimal | None = None
    actual_hours: Decimal | None = None
    completion_notes: str | None = None
    maintenance_trigger_id: UUID | None = None


# -----------------------------------------------------------------------------
# Tenants and users
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class TenantRegistration:
    company_name: str
    admin_email: str
    admin_first_name: str
    admin_last_name: str
    subscription_plan: str = "basic"
    subscription_expires_at: datetime | None = None


@dataclass(frozen=True)
class UserInvite:
    email: str
    first_name: str
    last_name: str
    role: Role = Role.USER
    # None means "seed from the role's configured defaults"
    permissions: frozenset[str] | None = None
    tenant_id: UUID | None = None


@dataclass(frozen=True)
class TenantRecord:
    id: UUID
    code: str
    name: str
    is_active: bool
    subscription_plan: str
    version: int
    subscription_expires_at: datetime | None = None


@dataclass(frozen=True)
class UserRecord:
    id: UUID
    tenant_id: UUID
    employee_id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    version: int
    permissions: frozenset[str] = field(default_factory=frozenset)
    is_active: bool = True


@dataclass(frozen=True)
class TenantOnboarding:
    tenant: TenantRecord
    admin: UserRecord
