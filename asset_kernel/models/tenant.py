"""
Module: asset_kernel.models.tenant
Responsibility: ORM persistence for tenants (companies) and their users.
Architecture position: Kernel > Models. May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - Tenant.code is globally unique (uq_tenants_code).
    - UserAccount.employee_id is unique within a tenant.
    - Both carry a version counter; a stale flush raises StaleDataError.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from asset_kernel.db.base import TrackedBase


class Tenant(TrackedBase):
    """A company workspace. Owns every other row through ``tenant_id``."""

    __tablename__ = "tenants"

    __table_args__ = (
        UniqueConstraint("code", name="uq_tenants_code"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    subscription_plan: Mapped[str] = mapped_column(String(50), nullable=False, default="basic")
    subscription_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(nullable=False)
    __mapper_args__ = {"version_id_col": version}

    @property
    def tenant_id(self) -> UUID:
        # A tenant is its own scope for authorization
        return self.id

    def is_operational(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        return self.subscription_expires_at is None or self.subscription_expires_at > now

    def to_dto(self):
        from asset_kernel.domain.dtos import TenantRecord
        return TenantRecord(
            id=self.id,
            code=self.code,
            name=self.name,
            is_active=self.is_active,
            subscription_plan=self.subscription_plan,
            subscription_expires_at=self.subscription_expires_at,
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<Tenant {self.code} active={self.is_active}>"


class UserAccount(TrackedBase):
    """A principal's stored identity. Authentication lives elsewhere."""

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_id", name="uq_users_tenant_employee"),
        UniqueConstraint("email", name="uq_users_email"),
        Index("idx_users_tenant_role", "tenant_id", "role"),
    )

    tenant_id: Mapped[UUID] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    employee_id: Mapped[str] = mapped_column(String(30), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    permissions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    version: Mapped[int] = mapped_column(nullable=False)
    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from asset_kernel.domain.authorization import Role
        from asset_kernel.domain.dtos import UserRecord
        return UserRecord(
            id=self.id,
            tenant_id=self.tenant_id,
            employee_id=self.employee_id,
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
            role=Role(self.role),
            permissions=frozenset(self.permissions or ()),
            is_active=self.is_active,
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<UserAccount {self.employee_id} role={self.role}>"
