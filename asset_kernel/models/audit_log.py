"""
Module: asset_kernel.models.audit_log
Responsibility: ORM persistence for the per-entity audit hash chain.
Architecture position: Kernel > Models. May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listener + PostgreSQL trigger).
    - (entity_type, entity_id, entity_seq) unique; entity_seq counts from 1
      per entity, so one entity's history has a single total order.
    - checksum = H(entity_type | entity_id | entity_seq | action |
      payload_hash | prev_checksum or GENESIS). Validated by AuditRecorder.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when validation finds a checksum mismatch.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from asset_kernel.db.base import Base, UUIDString


class AuditLog(Base):
    """
    One audited mutation.

    ``before``/``after`` are JSON snapshots of the changed entity. Only the
    AuditRecorder writes rows; it also computes the hashes.
    """

    __tablename__ = "audit_logs"

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "entity_seq", name="uq_audit_logs_entity_seq"),
        Index("idx_audit_logs_tenant", "tenant_id", "occurred_at"),
        Index("idx_audit_logs_action", "action"),
    )

    tenant_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    entity_seq: Mapped[int] = mapped_column(nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    compliance_event: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)

    @property
    def is_genesis(self) -> bool:
        return self.prev_checksum is None

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.entity_type}:{self.entity_id} #{self.entity_seq}>"
