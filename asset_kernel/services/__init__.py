"""Services for the asset kernel (write side and tenant-scoped reads)."""

from asset_kernel.services.asset_ledger import AssetLedger
from asset_kernel.services.audit_recorder import AuditRecorder, AuditTrace, AuditTraceEntry
from asset_kernel.services.base import RegistryService
from asset_kernel.services.identifier_allocator import IdentifierAllocator
from asset_kernel.services.movement_service import MovementService
from asset_kernel.services.tenant_service import TenantService
from asset_kernel.services.work_order_service import WorkOrderService

__all__ = [
    "AssetLedger",
    "AuditRecorder",
    "AuditTrace",
    "AuditTraceEntry",
    "IdentifierAllocator",
    "MovementService",
    "RegistryService",
    "TenantService",
    "WorkOrderService",
]
