"""
Asset ORM model (``asset_kernel.models.asset``).

Persists the registry entry plus its derived financial fields. The
derived fields (``accumulated_depreciation``, ``book_value``) are written
only by AssetLedger from a DepreciationEngine result.

Invariants enforced
-------------------
* ``(tenant_id, asset_number)`` unique (uq_assets_tenant_number).
* ``version`` is the mapper's version counter: a flush against a row
  whose version moved raises StaleDataError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from asset_kernel.db.base import TrackedBase


class Asset(TrackedBase):
    """
    A tracked physical or IT asset.

    Table: ``assets``
    """

    __tablename__ = "assets"

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    asset_number: Mapped[str] = mapped_column(String(40), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    serial_number: Mapped[str | None] = mapped_column(String(200), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location_id: Mapped[UUID | None]
    assigned_to_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    condition: Mapped[str] = mapped_column(String(20), nullable=False, default="good")
    criticality: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")

    purchase_cost: Mapped[Decimal | None]
    purchase_date: Mapped[date | None]
    salvage_value: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    useful_life_years: Mapped[Decimal | None]
    depreciation_method: Mapped[str] = mapped_column(
        String(30), nullable=False, default="straight_line",
    )
    accumulated_depreciation: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    book_value: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_expected_units: Mapped[Decimal | None]
    units_to_date: Mapped[Decimal | None]
    disposal_date: Mapped[date | None]
    # movement or work order that produced the current status
    status_trigger_id: Mapped[UUID | None]

    last_audit_date: Mapped[date | None]
    next_audit_date: Mapped[date | None]
    compliance_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    version: Mapped[int] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "asset_number", name="uq_assets_tenant_number"),
        Index("idx_assets_tenant_status", "tenant_id", "status"),
        Index("idx_assets_tenant_category", "tenant_id", "category_code"),
        Index("idx_assets_assigned_to", "assigned_to_id"),
    )
    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from asset_kernel.domain.dtos import AssetRecord
        from asset_kernel.domain.enums import (
            AssetCondition,
            AssetStatus,
            ComplianceStatus,
            Criticality,
            DepreciationMethod,
        )
        return AssetRecord(
            id=self.id,
            tenant_id=self.tenant_id,
            asset_number=self.asset_number,
            name=self.name,
            description=self.description,
            category_code=self.category_code,
            serial_number=self.serial_number,
            brand=self.brand,
            model=self.model,
            location_id=self.location_id,
            assigned_to_id=self.assigned_to_id,
            notes=self.notes,
            status=AssetStatus(self.status),
            condition=AssetCondition(self.condition),
            criticality=Criticality(self.criticality),
            purchase_cost=self.purchase_cost,
            purchase_date=self.purchase_date,
            salvage_value=self.salvage_value,
            useful_life_years=self.useful_life_years,
            depreciation_method=DepreciationMethod(self.depreciation_method),
            accumulated_depreciation=self.accumulated_depreciation,
            book_value=self.book_value,
            total_expected_units=self.total_expected_units,
            units_to_date=self.units_to_date,
            disposal_date=self.disposal_date,
            status_trigger_id=self.status_trigger_id,
            last_audit_date=self.last_audit_date,
            next_audit_date=self.next_audit_date,
            compliance_status=ComplianceStatus(self.compliance_status),
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<Asset(id={self.id!r}, asset_number={self.asset_number!r}, "
            f"status={self.status!r}, version={self.version!r})>"
        )
