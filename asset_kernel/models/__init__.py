"""ORM models. Importing this package registers every table on Base.metadata."""

from asset_kernel.models.asset import Asset
from asset_kernel.models.audit_log import AuditLog
from asset_kernel.models.movement import AssetMovement
from asset_kernel.models.tenant import Tenant, UserAccount
from asset_kernel.models.work_order import WorkOrder

__all__ = [
    "Asset",
    "AssetMovement",
    "AuditLog",
    "Tenant",
    "UserAccount",
    "WorkOrder",
]
