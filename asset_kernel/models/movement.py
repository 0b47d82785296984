"""
AssetMovement ORM model.

A request to change an asset's status, location or custodian. Decided
exactly once (pending -> approved | rejected); the row is frozen after
that by the immutability listeners.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from asset_kernel.db.base import TrackedBase


class AssetMovement(TrackedBase):
    __tablename__ = "asset_movements"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets.id"), nullable=False)
    movement_type: Mapped[str] = mapped_column(String(40), nullable=False)
    from_location_id: Mapped[UUID | None]
    to_location_id: Mapped[UUID | None]
    from_user_id: Mapped[UUID | None]
    to_user_id: Mapped[UUID | None]
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    approval_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    requested_by_id: Mapped[UUID] = mapped_column(nullable=False)
    decided_by_id: Mapped[UUID | None]
    decided_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    applied_at: Mapped[datetime | None]

    version: Mapped[int] = mapped_column(nullable=False)

    __table_args__ = (
        Index("idx_asset_movements_asset", "asset_id"),
        Index("idx_asset_movements_tenant_status", "tenant_id", "approval_status"),
    )
    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from asset_kernel.domain.dtos import MovementRecord
        from asset_kernel.domain.enums import ApprovalStatus, MovementType
        return MovementRecord(
            id=self.id,
            tenant_id=self.tenant_id,
            asset_id=self.asset_id,
            movement_type=MovementType(self.movement_type),
            from_location_id=self.from_location_id,
            to_location_id=self.to_location_id,
            from_user_id=self.from_user_id,
            to_user_id=self.to_user_id,
            reason=self.reason,
            approval_status=ApprovalStatus(self.approval_status),
            requested_by_id=self.requested_by_id,
            decided_by_id=self.decided_by_id,
            decided_at=self.decided_at,
            rejection_reason=self.rejection_reason,
            applied_at=self.applied_at,
            version=self.version,
        )

    def to_trigger(self):
        from asset_kernel.domain.enums import ApprovalStatus, MovementType
        from asset_kernel.domain.lifecycle import MovementTrigger
        return MovementTrigger(
            movement_id=self.id,
            asset_id=self.asset_id,
            movement_type=MovementType(self.movement_type),
            approval_status=ApprovalStatus(self.approval_status),
        )

    def __repr__(self) -> str:
        return f"<AssetMovement {self.movement_type} {self.approval_status} asset={self.asset_id}>"
