"""
AuditRecorder -- append-only, hash-chained audit trail.

Responsibility:
    Writes one AuditLog row per mutation, inside the caller's unit of
    work, chained to the previous row for the same entity. Validates
    chains and returns per-entity traces.

Architecture position:
    Kernel > Services. Called by AssetLedger, MovementService,
    WorkOrderService and TenantService. Never commits.

Invariants enforced:
    - Append-only (ORM listener + PostgreSQL trigger on AuditLog).
    - Per-entity total order: entity_seq = predecessor + 1, backed by the
      (entity_type, entity_id, entity_seq) unique constraint. Callers hold
      the entity's row lock while appending.
    - checksum = H(entity_type | entity_id | entity_seq | action |
      payload_hash | prev_checksum or GENESIS). Timestamps are not hashed.

Failure modes:
    - AuditWriteError: the row could not be flushed. The caller's unit of
      work must roll back; an unaudited mutation never commits.
    - AuditChainBrokenError: stored hashes or links do not recompute.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, is_dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.domain.enums import AuditAction
from asset_kernel.exceptions import AuditChainBrokenError, AuditWriteError
from asset_kernel.logging_config import get_logger
from asset_kernel.models.audit_log import AuditLog
from asset_kernel.utils.hashing import canonicalize_json, hash_audit_record, hash_payload

logger = get_logger("services.audit_recorder")


def snapshot(value: Any) -> dict[str, Any] | None:
    """JSON-native copy of a record dataclass or dict, as stored in the log."""
    if value is None:
        return None
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    return json.loads(canonicalize_json(value))


def _payload(row_or_kwargs: Any) -> dict[str, Any]:
    get = (
        row_or_kwargs.get
        if isinstance(row_or_kwargs, dict)
        else lambda k: getattr(row_or_kwargs, k)
    )
    tenant_id = get("tenant_id")
    actor_id = get("actor_id")
    return {
        "tenant_id": str(tenant_id) if tenant_id is not None else None,
        "actor_id": str(actor_id) if actor_id is not None else None,
        "before": get("before"),
        "after": get("after"),
        "compliance_event": bool(get("compliance_event")),
    }


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID | None
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    compliance_event: bool
    checksum: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit rows for one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


class AuditRecorder:
    """
    Creates and validates audit rows.

    Does NOT call ``session.commit()``; the caller owns the transaction.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def _last_row(self, entity_type: str, entity_id: UUID) -> AuditLog | None:
        return self._session.execute(
            select(AuditLog)
            .where(
                AuditLog.entity_type == entity_type,
                AuditLog.entity_id == entity_id,
            )
            .order_by(AuditLog.entity_seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def append(
        self,
        *,
        tenant_id: UUID | None,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID | None,
        before: Any = None,
        after: Any = None,
        compliance_event: bool = False,
    ) -> AuditLog:
        """
        Append one row to ``entity_type:entity_id``'s chain and flush it.

        ``before``/``after`` may be record dataclasses or dicts; they are
        stored as JSON snapshots.

        Raises:
            AuditWriteError: the row could not be written.
        """
        try:
            previous = self._last_row(entity_type, entity_id)
            seq = previous.entity_seq + 1 if previous else 1
            prev_checksum = previous.checksum if previous else None

            fields = {
                "tenant_id": tenant_id,
                "actor_id": actor_id,
                "before": snapshot(before),
                "after": snapshot(after),
                "compliance_event": compliance_event,
            }
            payload_hash = hash_payload(_payload(fields))
            checksum = hash_audit_record(
                entity_type=entity_type,
                entity_id=str(entity_id),
                entity_seq=seq,
                action=action.value,
                payload_hash=payload_hash,
                prev_checksum=prev_checksum,
            )

            row = AuditLog(
                entity_type=entity_type,
                entity_id=entity_id,
                entity_seq=seq,
                action=action.value,
                occurred_at=self._clock.now(),
                payload_hash=payload_hash,
                prev_checksum=prev_checksum,
                checksum=checksum,
                **fields,
            )
            self._session.add(row)
            self._session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "audit_log_write_failed",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "action": action.value,
                },
                exc_info=True,
            )
            raise AuditWriteError(entity_type, str(entity_id), str(exc)) from exc

        logger.info(
            "audit_log_appended",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "entity_seq": seq,
                "compliance_event": compliance_event,
            },
        )
        return row

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _rows(self, entity_type: str, entity_id: UUID) -> list[AuditLog]:
        return list(
            self._session.execute(
                select(AuditLog)
                .where(
                    AuditLog.entity_type == entity_type,
                    AuditLog.entity_id == entity_id,
                )
                .order_by(AuditLog.entity_seq)
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def validate_chain(self, entity_type: str, entity_id: UUID) -> bool:
        """
        Recompute every row of one entity's chain.

        Returns True, or raises AuditChainBrokenError at the first row whose
        payload hash, checksum, sequence or back-link does not match.
        """
        rows = self._rows(entity_type, entity_id)
        prev_checksum: str | None = None
        for expected_seq, row in enumerate(rows, start=1):
            payload_hash = hash_payload(_payload(row))
            expected_checksum = hash_audit_record(
                entity_type=row.entity_type,
                entity_id=str(row.entity_id),
                entity_seq=row.entity_seq,
                action=row.action,
                payload_hash=payload_hash,
                prev_checksum=row.prev_checksum,
            )
            mismatch = None
            if row.entity_seq != expected_seq:
                mismatch = (f"seq {expected_seq}", f"seq {row.entity_seq}")
            elif row.prev_checksum != prev_checksum:
                mismatch = (prev_checksum or "GENESIS", row.prev_checksum or "GENESIS")
            elif payload_hash != row.payload_hash:
                mismatch = (payload_hash, row.payload_hash)
            elif expected_checksum != row.checksum:
                mismatch = (expected_checksum, row.checksum)

            if mismatch is not None:
                logger.critical(
                    "audit_chain_broken",
                    extra={
                        "entity_type": entity_type,
                        "entity_id": str(entity_id),
                        "entity_seq": row.entity_seq,
                    },
                )
                raise AuditChainBrokenError(str(row.id), *mismatch)
            prev_checksum = row.checksum

        logger.info(
            "audit_chain_valid",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "row_count": len(rows),
            },
        )
        return True

    def validate_tenant(self, tenant_id: UUID) -> int:
        """Validate every entity chain of a tenant. Returns the chain count."""
        keys = self._session.execute(
            select(AuditLog.entity_type, AuditLog.entity_id)
            .where(AuditLog.tenant_id == tenant_id)
            .distinct()
        ).all()
        for entity_type, entity_id in keys:
            self.validate_chain(entity_type, entity_id)
        return len(keys)

    def trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        rows = self._rows(entity_type, entity_id)
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=row.entity_seq,
                    action=row.action,
                    occurred_at=row.occurred_at,
                    actor_id=row.actor_id,
                    before=row.before,
                    after=row.after,
                    compliance_event=row.compliance_event,
                    checksum=row.checksum,
                )
                for row in rows
            ),
        )
