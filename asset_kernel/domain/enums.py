"""
Registry vocabulary.

The closed value sets shared by the domain engines, ORM models and
services. Stored as their ``.value`` strings.
"""

from enum import Enum


class AssetStatus(str, Enum):
    """Asset lifecycle states."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"
    DISPOSED = "disposed"
    STOLEN = "stolen"
    LOST = "lost"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {AssetStatus.DISPOSED, AssetStatus.STOLEN, AssetStatus.LOST}
)


class AssetCondition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    DAMAGED = "damaged"


class Criticality(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ComplianceStatus(str, Enum):
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    PENDING = "pending"


class DepreciationMethod(str, Enum):
    """Supported depreciation methods."""
    STRAIGHT_LINE = "straight_line"
    DECLINING_BALANCE = "declining_balance"
    UNITS_OF_PRODUCTION = "units_of_production"


class MovementType(str, Enum):
    """What an AssetMovement asks for once approved."""
    TRANSFER = "transfer"
    LOAN = "loan"
    RETURN = "return"
    DISPOSAL = "disposal"
    STOLEN = "stolen"
    LOST = "lost"
    CORRECTIVE_MAINTENANCE = "corrective_maintenance"
    PREVENTIVE_MAINTENANCE = "preventive_maintenance"

    @property
    def target_status(self) -> "AssetStatus | None":
        """Asset status the movement drives, or None for custody/location moves."""
        return _MOVEMENT_TARGET_STATUS.get(self)


_MOVEMENT_TARGET_STATUS = {
    MovementType.DISPOSAL: AssetStatus.DISPOSED,
    MovementType.STOLEN: AssetStatus.STOLEN,
    MovementType.LOST: AssetStatus.LOST,
    MovementType.CORRECTIVE_MAINTENANCE: AssetStatus.MAINTENANCE,
    MovementType.PREVENTIVE_MAINTENANCE: AssetStatus.MAINTENANCE,
}


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WorkOrderStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"


class WorkOrderPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MaintenanceCategory(str, Enum):
    PREVENTIVE = "preventive"
    CORRECTIVE = "corrective"
    PREDICTIVE = "predictive"


class IdentifierKind(str, Enum):
    """Kinds of human-readable codes the allocator hands out."""
    TENANT_CODE = "tenant_code"
    EMPLOYEE_ID = "employee_id"
    ASSET_NUMBER = "asset_number"
    WORK_ORDER_NUMBER = "work_order_number"

    @property
    def is_global(self) -> bool:
        return self is IdentifierKind.TENANT_CODE


class AuditAction(str, Enum):
    """Kinds of audited mutation."""
    TENANT_REGISTERED = "tenant_registered"
    TENANT_ACTIVATED = "tenant_activated"
    TENANT_DEACTIVATED = "tenant_deactivated"
    USER_CREATED = "user_created"
    ASSET_CREATED = "asset_created"
    ASSET_UPDATED = "asset_updated"
    ASSET_DELETED = "asset_deleted"
    ASSET_STATUS_CHANGED = "asset_status_changed"
    ASSET_LIFECYCLE_OVERRIDE = "asset_lifecycle_override"
    ASSET_DEPRECIATION_REFRESHED = "asset_depreciation_refreshed"
    ASSET_USAGE_RECORDED = "asset_usage_recorded"
    ASSET_COMPLIANCE_AUDITED = "asset_compliance_audited"
    MOVEMENT_REQUESTED = "movement_requested"
    MOVEMENT_APPROVED = "movement_approved"
    MOVEMENT_REJECTED = "movement_rejected"
    WORK_ORDER_OPENED = "work_order_opened"
    WORK_ORDER_STATUS_CHANGED = "work_order_status_changed"
    WORK_ORDER_COMPLETED = "work_order_completed"
