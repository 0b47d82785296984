"""
WorkOrder ORM model.

A maintenance task against one asset. Completion is the only event that
returns an asset from ``maintenance`` to ``active``. Completed and
cancelled rows are frozen by the immutability listeners.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from asset_kernel.db.base import TrackedBase


class WorkOrder(TrackedBase):
    __tablename__ = "work_orders"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets.id"), nullable=False)
    work_order_number: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    maintenance_category: Mapped[str] = mapped_column(String(20), nullable=False, default="corrective")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    assigned_to_id: Mapped[UUID | None]
    scheduled_date: Mapped[date | None]
    started_at: Mapped[datetime | None]
    completed_at: Mapped[datetime | None]

    estimated_cost: Mapped[Decimal | None]
    labor_cost: Mapped[Decimal | None]
    parts_cost: Mapped[Decimal | None]
    vendor_cost: Mapped[Decimal | None]
    actual_cost: Mapped[Decimal | None]
    actual_hours: Mapped[Decimal | None]
    completion_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # status_trigger_id of the asset while in maintenance at completion
    maintenance_trigger_id: Mapped[UUID | None]

    version: Mapped[int] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "work_order_number", name="uq_work_orders_tenant_number"),
        Index("idx_work_orders_asset_status", "asset_id", "status"),
    )
    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from asset_kernel.domain.dtos import WorkOrderRecord
        from asset_kernel.domain.enums import (
            MaintenanceCategory,
            WorkOrderPriority,
            WorkOrderStatus,
        )
        return WorkOrderRecord(
            id=self.id,
            tenant_id=self.tenant_id,
            asset_id=self.asset_id,
            work_order_number=self.work_order_number,
            title=self.title,
            description=self.description,
            priority=WorkOrderPriority(self.priority),
            maintenance_category=MaintenanceCategory(self.maintenance_category),
            status=WorkOrderStatus(self.status),
            assigned_to_id=self.assigned_to_id,
            scheduled_date=self.scheduled_date,
            started_at=self.started_at,
            completed_at=self.completed_at,
            estimated_cost=self.estimated_cost,
            labor_cost=self.labor_cost,
            parts_cost=self.parts_cost,
            vendor_cost=self.vendor_cost,
            actual_cost=self.actual_cost,
            actual_hours=self.actual_hours,
            completion_notes=self.completion_notes,
            maintenance_trigger_id=self.maintenance_trigger_id,
            version=self.version,
        )

    def to_trigger(self, other_open: int = 0):
        from asset_kernel.domain.enums import WorkOrderStatus
        from asset_kernel.domain.lifecycle import WorkOrderTrigger
        return WorkOrderTrigger(
            work_order_id=self.id,
            asset_id=self.asset_id,
            status=WorkOrderStatus(self.status),
            other_open=other_open,
        )

    def __repr__(self) -> str:
        return f"<WorkOrder {self.work_order_number} {self.status}>"
