"""
WorkOrderService -- maintenance work orders and their cost roll-up.

Work orders move open -> in_progress -> completed, with on_hold and
cancelled on the side. Completing the last open work order of an asset in
``maintenance`` returns that asset to ``active`` in the same unit of work;
completion is the only way out of maintenance.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from asset_kernel.domain.authorization import Action, AuthorizationEngine, Principal
from asset_kernel.domain.clock import Clock
from asset_kernel.domain.dtos import WorkOrderCompletion, WorkOrderRecord, WorkOrderRequest
from asset_kernel.domain.enums import (
    AssetStatus,
    AuditAction,
    IdentifierKind,
    WorkOrderStatus,
)
from asset_kernel.domain.lifecycle import LifecycleStateMachine
from asset_kernel.domain.policies import RegistryPolicy
from asset_kernel.exceptions import (
    AssetNotFoundError,
    IllegalTransitionError,
    ValidationError,
    WorkOrderNotFoundError,
)
from asset_kernel.logging_config import get_logger
from asset_kernel.models import Asset, WorkOrder
from asset_kernel.services.asset_ledger import AssetLedger
from asset_kernel.services.base import RegistryService

logger = get_logger("services.work_order")

_ZERO = Decimal("0")


def _non_negative(name: str, value: Decimal | None) -> None:
    if value is not None and value < 0:
        raise ValidationError(f"{name} must not be negative", field=name)


class WorkOrderService(RegistryService):
    """Open, progress and complete work orders against assets."""

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

    def open(
        self,
        principal: Principal,
        asset_id: UUID,
        request: WorkOrderRequest,
    ) -> WorkOrderRecord:
        """Open a work order with an allocated ``WO-<year>-<NNNN>`` number."""
        with self._unit_of_work("work_order.open", principal, asset_id, "work_order"):
            asset = self._ledger.load_for_update(asset_id)
            self._auth.authorize(principal, Action.WORK_ORDER_MANAGE, asset).require()
            self._operational_tenant(asset.tenant_id)
            status = AssetStatus(asset.status)
            if status.is_terminal:
                raise IllegalTransitionError(
                    "work_order", "none", WorkOrderStatus.OPEN.value,
                    f"asset is '{status.value}'",
                )
            if not (request.title or "").strip():
                raise ValidationError("Work order title must not be empty", field="title")
            _non_negative("estimated_cost", request.estimated_cost)

            now = self._clock.now()

            def build(code: str) -> WorkOrder:
                return WorkOrder(
                    tenant_id=asset.tenant_id,
                    asset_id=asset.id,
                    work_order_number=code,
                    title=request.title.strip(),
                    description=request.description,
                    priority=request.priority.value,
                    maintenance_category=request.maintenance_category.value,
                    status=WorkOrderStatus.OPEN.value,
                    assigned_to_id=request.assigned_to_id,
                    scheduled_date=request.scheduled_date,
                    estimated_cost=request.estimated_cost,
                    created_at=now,
                    updated_at=now,
                    created_by_id=principal.user_id,
                    updated_by_id=principal.user_id,
                )

            work_order = self._ledger.allocator.allocate(
                asset.tenant_id, IdentifierKind.WORK_ORDER_NUMBER, None, build,
            ).entity

            record = work_order.to_dto()
            self._audit.append(
                tenant_id=asset.tenant_id,
                entity_type="work_order",
                entity_id=work_order.id,
                action=AuditAction.WORK_ORDER_OPENED,
                actor_id=principal.user_id,
                after=record,
            )
            logger.info(
                "work_order_opened",
                extra={
                    "work_order_id": str(work_order.id),
                    "work_order_number": work_order.work_order_number,
                    "asset_id": str(asset_id),
                },
            )
        return record

    def start(self, principal: Principal, work_order_id: UUID) -> WorkOrderRecord:
        return self._change_status(principal, work_order_id, WorkOrderStatus.IN_PROGRESS)

    def hold(self, principal: Principal, work_order_id: UUID) -> WorkOrderRecord:
        return self._change_status(principal, work_order_id, WorkOrderStatus.ON_HOLD)

    def resume(self, principal: Principal, work_order_id: UUID) -> WorkOrderRecord:
        return self._change_status(principal, work_order_id, WorkOrderStatus.IN_PROGRESS)

    def cancel(self, principal: Principal, work_order_id: UUID) -> WorkOrderRecord:
        return self._change_status(principal, work_order_id, WorkOrderStatus.CANCELLED)

    def complete(
        self,
        principal: Principal,
        work_order_id: UUID,
        completion: WorkOrderCompletion | None = None,
    ) -> WorkOrderRecord:
        """
        Complete an in-progress work order and roll its costs up.

        actual_cost = labor_cost + parts_cost + vendor_cost (missing parts
        count as zero). If this was the asset's last open work order and
        the asset is in maintenance, the asset returns to active; a
        ``resulting_condition`` is then applied as well.
        """
        completion = completion or WorkOrderCompletion()
        with self._unit_of_work("work_order.complete", principal, work_order_id, "work_order"):
            work_order = self._lock(work_order_id)
            self._auth.authorize(principal, Action.WORK_ORDER_COMPLETE, work_order).require()
            self._operational_tenant(work_order.tenant_id)
            asset = self._ledger.load_for_update(work_order.asset_id)
            others_open = self._ledger.open_work_orders(asset.id, excluding=work_order.id)

            self._lifecycle.validate_work_order_transition(
                WorkOrderStatus(work_order.status), WorkOrderStatus.COMPLETED,
            )
            for name in ("labor_cost", "parts_cost", "vendor_cost", "actual_hours"):
                _non_negative(name, getattr(completion, name))
            if completion.resulting_condition is not None:
                self._lifecycle.validate_condition_change(AssetStatus(asset.status))

            before = work_order.to_dto()
            now = self._clock.now()
            work_order.status = WorkOrderStatus.COMPLETED.value
            work_order.completed_at = now
            work_order.labor_cost = completion.labor_cost
            work_order.parts_cost = completion.parts_cost
            work_order.vendor_cost = completion.vendor_cost
            work_order.actual_cost = (
                (completion.labor_cost or _ZERO)
                + (completion.parts_cost or _ZERO)
                + (completion.vendor_cost or _ZERO)
            )
            work_order.actual_hours = completion.actual_hours
            work_order.completion_notes = completion.completion_notes
            if AssetStatus(asset.status) is AssetStatus.MAINTENANCE:
                work_order.maintenance_trigger_id = asset.status_trigger_id
            work_order.updated_at = now
            work_order.updated_by_id = principal.user_id
            self._session.flush()

            record = work_order.to_dto()
            self._audit.append(
                tenant_id=work_order.tenant_id,
                entity_type="work_order",
                entity_id=work_order.id,
                action=AuditAction.WORK_ORDER_COMPLETED,
                actor_id=principal.user_id,
                before=before,
                after=record,
            )

            if AssetStatus(asset.status) is AssetStatus.MAINTENANCE and not others_open:
                self._ledger.apply_transition(
                    principal, asset, AssetStatus.ACTIVE,
                    work_order.to_trigger(other_open=others_open),
                )
            if completion.resulting_condition is not None:
                self._ledger.apply_field_changes(
                    principal, asset, {"condition": completion.resulting_condition},
                )
            logger.info(
                "work_order_completed",
                extra={
                    "work_order_id": str(work_order_id),
                    "actual_cost": work_order.actual_cost,
                    "asset_status": asset.status,
                },
            )
        return record

    def get(self, principal: Principal, work_order_id: UUID) -> WorkOrderRecord:
        work_order = self._session.get(WorkOrder, work_order_id)
        if work_order is None:
            raise WorkOrderNotFoundError(str(work_order_id))
        self._auth.authorize(principal, Action.ASSET_READ, work_order).require()
        return work_order.to_dto()

    def list_for_asset(
        self, principal: Principal, asset_id: UUID
    ) -> tuple[WorkOrderRecord, ...]:
        asset = self._session.get(Asset, asset_id)
        if asset is None:
            raise AssetNotFoundError(str(asset_id))
        self._auth.authorize(principal, Action.ASSET_READ, asset).require()
        rows = self._session.execute(
            select(WorkOrder)
            .where(WorkOrder.asset_id == asset_id)
            .order_by(WorkOrder.created_at, WorkOrder.work_order_number)
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    # ------------------------------------------------------------------

    def _lock(self, work_order_id: UUID) -> WorkOrder:
        work_order = self._session.execute(
            select(WorkOrder)
            .where(WorkOrder.id == work_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if work_order is None:
            raise WorkOrderNotFoundError(str(work_order_id))
        return work_order

    def _change_status(
        self,
        principal: Principal,
        work_order_id: UUID,
        requested: WorkOrderStatus,
    ) -> WorkOrderRecord:
        with self._unit_of_work(
            f"work_order.{requested.value}", principal, work_order_id, "work_order",
        ):
            work_order = self._lock(work_order_id)
            self._auth.authorize(principal, Action.WORK_ORDER_MANAGE, work_order).require()
            self._operational_tenant(work_order.tenant_id)
            current = WorkOrderStatus(work_order.status)
            transition = self._lifecycle.validate_work_order_transition(current, requested)

            before = work_order.to_dto()
            now = self._clock.now()
            work_order.status = requested.value
            if requested is WorkOrderStatus.IN_PROGRESS and work_order.started_at is None:
                work_order.started_at = now
            work_order.updated_at = now
            work_order.updated_by_id = principal.user_id
            self._session.flush()

            record = work_order.to_dto()
            self._audit.append(
                tenant_id=work_order.tenant_id,
                entity_type="work_order",
                entity_id=work_order.id,
                action=AuditAction.WORK_ORDER_STATUS_CHANGED,
                actor_id=principal.user_id,
                before=before,
                after=record,
            )
            logger.info(
                "work_order_status_changed",
                extra={
                    "work_order_id": str(work_order_id),
                    "from_status": current.value,
                    "to_status": requested.value,
                    "transition": transition.action,
                },
            )
        return record
