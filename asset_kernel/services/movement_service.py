"""
MovementService -- request and decide asset movements.

A movement is requested (pending) and decided exactly once. Approval
applies its effect to the asset in the same unit of work: status-bearing
types (disposal, stolen, lost, maintenance) go through
``AssetLedger.apply_transition`` with the movement as trigger; transfer,
loan and return change location and custodian.

All decision fields are set before the single flush that records the
decision; after that flush the row is frozen by the immutability
listeners.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from asset_kernel.domain.authorization import Action, AuthorizationEngine, Principal
from asset_kernel.domain.clock import Clock
from asset_kernel.domain.dtos import MovementRecord, MovementRequest
from asset_kernel.domain.enums import (
    ApprovalStatus,
    AssetStatus,
    AuditAction,
    MovementType,
)
from asset_kernel.domain.lifecycle import LifecycleStateMachine
from asset_kernel.domain.policies import RegistryPolicy
from asset_kernel.exceptions import (
    AssetNotFoundError,
    MovementNotFoundError,
    ValidationError,
)
from asset_kernel.logging_config import get_logger
from asset_kernel.models import Asset, AssetMovement
from asset_kernel.services.asset_ledger import AssetLedger
from asset_kernel.services.base import RegistryService

logger = get_logger("services.movement")


class MovementService(RegistryService):

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: RegistryPolicy | None = None,
        *,
        authorization: AuthorizationEngine | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(
            session, clock, policy,
            authorization=authorization, auto_commit=auto_commit,
        )
        self._lifecycle = LifecycleStateMachine()
        self._ledger = AssetLedger(
            session, self._clock, self._policy,
            authorization=self._auth, auto_commit=False,
        )
        self._audit = self._ledger.auditor

    def request(
        self,
        principal: Principal,
        asset_id: UUID,
        request: MovementRequest,
    ) -> MovementRecord:
        """Create a pending movement for an asset in the caller's tenant."""
        movement_type = MovementType(request.movement_type)
        with self._unit_of_work("movement.request", principal, asset_id, "asset_movement"):
            asset = self._ledger.load_for_update(asset_id)
            self._auth.authorize(principal, Action.MOVEMENT_REQUEST, asset).require()
            self._operational_tenant(asset.tenant_id)
            self._lifecycle.can_request_movement(AssetStatus(asset.status), movement_type)
            _validate_destination(movement_type, request)

            now = self._clock.now()
            movement = AssetMovement(
                tenant_id=asset.tenant_id,
                asset_id=asset.id,
                movement_type=movement_type.value,
                from_location_id=asset.location_id,
                to_location_id=request.to_location_id,
                from_user_id=asset.assigned_to_id,
                to_user_id=request.to_user_id,
                reason=request.reason,
                approval_status=ApprovalStatus.PENDING.value,
                requested_by_id=principal.user_id,
                created_at=now,
                updated_at=now,
                created_by_id=principal.user_id,
                updated_by_id=principal.user_id,
            )
            self._session.add(movement)
            self._session.flush()

            record = movement.to_dto()
            self._audit.append(
                tenant_id=movement.tenant_id,
                entity_type="asset_movement",
                entity_id=movement.id,
                action=AuditAction.MOVEMENT_REQUESTED,
                actor_id=principal.user_id,
                after=record,
            )
            logger.info(
                "movement_requested",
                extra={
                    "movement_id": str(movement.id),
                    "asset_id": str(asset_id),
                    "movement_type": movement_type.value,
                },
            )
        return record

    def approve(self, principal: Principal, movement_id: UUID) -> MovementRecord:
        """
        Approve a pending movement and apply it to the asset.

        Raises:
            IllegalTransitionError: the movement is already decided, or the
                asset can no longer make the change (nothing is applied).
        """
        with self._unit_of_work("movement.approve", principal, movement_id, "asset_movement"):
            movement = self._lock(movement_id)
            self._auth.authorize(principal, Action.MOVEMENT_APPROVE, movement).require()
            self._operational_tenant(movement.tenant_id)
            asset = self._ledger.load_for_update(movement.asset_id)

            movement_type = MovementType(movement.movement_type)
            self._lifecycle.validate_movement_decision(
                ApprovalStatus(movement.approval_status), ApprovalStatus.APPROVED,
            )
            self._lifecycle.can_request_movement(AssetStatus(asset.status), movement_type)

            record = self._decide(principal, movement, ApprovalStatus.APPROVED)
            self._apply(principal, asset, movement, movement_type)
            logger.info(
                "movement_approved",
                extra={
                    "movement_id": str(movement_id),
                    "asset_id": str(asset.id),
                    "movement_type": movement_type.value,
                },
            )
        return record

    def reject(
        self,
        principal: Principal,
        movement_id: UUID,
        reason: str | None = None,
    ) -> MovementRecord:
        with self._unit_of_work("movement.reject", principal, movement_id, "asset_movement"):
            movement = self._lock(movement_id)
            self._auth.authorize(principal, Action.MOVEMENT_APPROVE, movement).require()
            self._operational_tenant(movement.tenant_id)
            self._lifecycle.validate_movement_decision(
                ApprovalStatus(movement.approval_status), ApprovalStatus.REJECTED,
            )
            record = self._decide(
                principal, movement, ApprovalStatus.REJECTED, rejection_reason=reason,
            )
            logger.info("movement_rejected", extra={"movement_id": str(movement_id)})
        return record

    def get(self, principal: Principal, movement_id: UUID) -> MovementRecord:
        movement = self._session.get(AssetMovement, movement_id)
        if movement is None:
            raise MovementNotFoundError(str(movement_id))
        self._auth.authorize(principal, Action.ASSET_READ, movement).require()
        return movement.to_dto()

    def list_for_asset(self, principal: Principal, asset_id: UUID) -> tuple[MovementRecord, ...]:
        """Every movement of one asset, oldest first."""
        asset = self._session.get(Asset, asset_id)
        if asset is None:
            raise AssetNotFoundError(str(asset_id))
        self._auth.authorize(principal, Action.ASSET_READ, asset).require()
        rows = self._session.execute(
            select(AssetMovement)
            .where(AssetMovement.asset_id == asset_id)
            .order_by(AssetMovement.created_at, AssetMovement.id)
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    # ------------------------------------------------------------------

    def _lock(self, movement_id: UUID) -> AssetMovement:
        movement = self._session.execute(
            select(AssetMovement)
            .where(AssetMovement.id == movement_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if movement is None:
            raise MovementNotFoundError(str(movement_id))
        return movement

    def _decide(
        self,
        principal: Principal,
        movement: AssetMovement,
        decision: ApprovalStatus,
        rejection_reason: str | None = None,
    ) -> MovementRecord:
        before = movement.to_dto()
        now = self._clock.now()
        movement.approval_status = decision.value
        movement.decided_by_id = principal.user_id
        movement.decided_at = now
        movement.rejection_reason = rejection_reason
        if decision is ApprovalStatus.APPROVED:
            # approval applies the movement in the same unit of work
            movement.applied_at = now
        movement.updated_at = now
        movement.updated_by_id = principal.user_id
        self._session.flush()

        record = movement.to_dto()
        self._audit.append(
            tenant_id=movement.tenant_id,
            entity_type="asset_movement",
            entity_id=movement.id,
            action=(
                AuditAction.MOVEMENT_APPROVED
                if decision is ApprovalStatus.APPROVED
                else AuditAction.MOVEMENT_REJECTED
            ),
            actor_id=principal.user_id,
            before=before,
            after=record,
        )
        return record

    def _apply(
        self,
        principal: Principal,
        asset: Asset,
        movement: AssetMovement,
        movement_type: MovementType,
    ) -> None:
        target = movement_type.target_status
        if target is not None:
            self._ledger.apply_transition(principal, asset, target, movement.to_trigger())
            return

        location_id = movement.to_location_id or asset.location_id
        if movement_type is MovementType.TRANSFER:
            assigned_to_id = movement.to_user_id or asset.assigned_to_id
        else:
            # loan hands custody to to_user; return hands it back (or clears it)
            assigned_to_id = movement.to_user_id
        self._ledger.apply_field_changes(
            principal, asset,
            {"location_id": location_id, "assigned_to_id": assigned_to_id},
        )


def _validate_destination(movement_type: MovementType, request: MovementRequest) -> None:
    if movement_type is MovementType.TRANSFER and not (
        request.to_location_id or request.to_user_id
    ):
        raise ValidationError(
            "A transfer needs a destination location or user",
            field="to_location_id",
        )
    if movement_type is MovementType.LOAN and request.to_user_id is None:
        raise ValidationError("A loan needs a receiving user", field="to_user_id")
