"""
LifecycleStateMachine -- legal status changes for assets, movements and
work orders.

Asset transitions are declared as data (``ASSET_LIFECYCLE``); each carries
a guard naming the triggering record it needs. A transition is legal only
once that record has reached its own terminal state: an approved
AssetMovement of the matching type, or a completed WorkOrder. Pending
records never move an asset.

``disposed``, ``stolen`` and ``lost`` are terminal. The only way out is an
administrative override back to ``active`` or ``inactive``; the caller is
responsible for having authorized the override capability.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from asset_kernel.domain.enums import (
    ApprovalStatus,
    AssetStatus,
    MovementType,
    TERMINAL_STATUSES,
    WorkOrderStatus,
)
from asset_kernel.exceptions import IllegalTransitionError
from asset_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycle")


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def targets(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)


# -----------------------------------------------------------------------------
# Triggering records
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class MovementTrigger:
    movement_id: UUID
    asset_id: UUID
    movement_type: MovementType
    approval_status: ApprovalStatus

    @property
    def record_id(self) -> UUID:
        return self.movement_id


@dataclass(frozen=True)
class WorkOrderTrigger:
    work_order_id: UUID
    asset_id: UUID
    status: WorkOrderStatus
    # other work orders of the asset not yet completed or cancelled
    other_open: int = 0

    @property
    def record_id(self) -> UUID:
        return self.work_order_id


Trigger = MovementTrigger | WorkOrderTrigger


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

APPROVED_MAINTENANCE_MOVEMENT = Guard(
    name="approved_maintenance_movement",
    description="Approved corrective or preventive maintenance movement",
)

COMPLETED_WORK_ORDER = Guard(
    name="completed_work_order",
    description="Work order for the asset has reached completed",
)

APPROVED_LOSS_MOVEMENT = Guard(
    name="approved_loss_movement",
    description="Approved disposal, stolen or lost movement of the matching type",
)

_A = AssetStatus

ASSET_LIFECYCLE = Workflow(
    name="asset_lifecycle",
    initial_state=_A.ACTIVE.value,
    states=tuple(s.value for s in AssetStatus),
    terminal_states=tuple(s.value for s in TERMINAL_STATUSES),
    transitions=(
        Transition(_A.ACTIVE.value, _A.INACTIVE.value, action="deactivate"),
        Transition(_A.INACTIVE.value, _A.ACTIVE.value, action="reactivate"),
        Transition(
            _A.ACTIVE.value, _A.MAINTENANCE.value,
            action="send_to_maintenance", guard=APPROVED_MAINTENANCE_MOVEMENT,
        ),
        Transition(
            _A.MAINTENANCE.value, _A.ACTIVE.value,
            action="return_from_maintenance", guard=COMPLETED_WORK_ORDER,
        ),
        *(
            Transition(src.value, dst.value, action=f"mark_{dst.value}", guard=APPROVED_LOSS_MOVEMENT)
            for src in (_A.ACTIVE, _A.INACTIVE, _A.MAINTENANCE)
            for dst in (_A.DISPOSED, _A.STOLEN, _A.LOST)
        ),
    ),
)

# Reachable from a terminal state only with the override capability
OVERRIDE_TARGETS = frozenset({AssetStatus.ACTIVE, AssetStatus.INACTIVE})

_W = WorkOrderStatus

WORK_ORDER_LIFECYCLE = Workflow(
    name="work_order",
    initial_state=_W.OPEN.value,
    states=tuple(s.value for s in WorkOrderStatus),
    terminal_states=(_W.COMPLETED.value, _W.CANCELLED.value),
    transitions=(
        Transition(_W.OPEN.value, _W.IN_PROGRESS.value, action="start"),
        Transition(_W.OPEN.value, _W.ON_HOLD.value, action="hold"),
        Transition(_W.OPEN.value, _W.CANCELLED.value, action="cancel"),
        Transition(_W.IN_PROGRESS.value, _W.COMPLETED.value, action="complete"),
        Transition(_W.IN_PROGRESS.value, _W.ON_HOLD.value, action="hold"),
        Transition(_W.IN_PROGRESS.value, _W.CANCELLED.value, action="cancel"),
        Transition(_W.ON_HOLD.value, _W.IN_PROGRESS.value, action="resume"),
        Transition(_W.ON_HOLD.value, _W.CANCELLED.value, action="cancel"),
    ),
)

_M = ApprovalStatus

MOVEMENT_APPROVAL = Workflow(
    name="movement_approval",
    initial_state=_M.PENDING.value,
    states=tuple(s.value for s in ApprovalStatus),
    terminal_states=(_M.APPROVED.value, _M.REJECTED.value),
    transitions=(
        Transition(_M.PENDING.value, _M.APPROVED.value, action="approve"),
        Transition(_M.PENDING.value, _M.REJECTED.value, action="reject"),
    ),
)

logger.debug(
    "lifecycle_workflows_registered",
    extra={
        "workflows": [w.name for w in (ASSET_LIFECYCLE, WORK_ORDER_LIFECYCLE, MOVEMENT_APPROVAL)],
        "asset_transition_count": len(ASSET_LIFECYCLE.transitions),
    },
)


# -----------------------------------------------------------------------------
# State machine
# -----------------------------------------------------------------------------


class LifecycleStateMachine:
    """Validates requested transitions; never mutates anything itself."""

    def validate_asset_transition(
        self,
        current: AssetStatus,
        requested: AssetStatus,
        trigger: Trigger | None = None,
        *,
        override: bool = False,
    ) -> Transition:
        """
        Return the Transition to apply, or raise IllegalTransitionError.

        Args:
            current: The asset's status as read under lock.
            requested: The status the caller wants.
            trigger: The movement or work order driving the change, if any.
            override: Caller holds the lifecycle override capability.
        """
        current = AssetStatus(current)
        requested = AssetStatus(requested)

        def illegal(reason: str) -> IllegalTransitionError:
            return IllegalTransitionError("asset", current.value, requested.value, reason)

        if current is requested:
            raise illegal("asset is already in that state")

        if current.is_terminal:
            if override and requested in OVERRIDE_TARGETS:
                return Transition(current.value, requested.value, action="lifecycle_override")
            raise illegal(f"'{current.value}' is terminal")

        transition = ASSET_LIFECYCLE.find(current.value, requested.value)
        if transition is None:
            raise illegal("no such transition")

        if transition.guard is APPROVED_MAINTENANCE_MOVEMENT:
            self._require_movement(
                trigger, requested, illegal,
                allowed_types=(
                    MovementType.CORRECTIVE_MAINTENANCE,
                    MovementType.PREVENTIVE_MAINTENANCE,
                ),
            )
        elif transition.guard is APPROVED_LOSS_MOVEMENT:
            self._require_movement(
                trigger, requested, illegal,
                allowed_types=tuple(
                    t for t in MovementType if t.target_status is requested
                ),
            )
        elif transition.guard is COMPLETED_WORK_ORDER:
            if not isinstance(trigger, WorkOrderTrigger):
                raise illegal("requires a completed work order")
            if trigger.status is not WorkOrderStatus.COMPLETED:
                raise illegal(f"work order {trigger.work_order_id} is '{trigger.status.value}'")
            if trigger.other_open:
                raise illegal(
                    f"{trigger.other_open} other work order(s) for the asset still open"
                )

        return transition

    @staticmethod
    def _require_movement(trigger, requested, illegal, allowed_types) -> None:
        if not isinstance(trigger, MovementTrigger):
            raise illegal("requires an approved asset movement")
        if trigger.movement_type not in allowed_types:
            raise illegal(
                f"movement {trigger.movement_id} of type "
                f"'{trigger.movement_type.value}' cannot produce '{requested.value}'"
            )
        if trigger.approval_status is not ApprovalStatus.APPROVED:
            raise illegal(
                f"movement {trigger.movement_id} is '{trigger.approval_status.value}'"
            )

    def can_request_movement(self, current: AssetStatus, movement_type: MovementType) -> None:
        """
        Raise IllegalTransitionError if a movement of this type could never
        apply to an asset in ``current``.
        """
        current = AssetStatus(current)
        target = movement_type.target_status
        if current.is_terminal:
            raise IllegalTransitionError(
                "asset", current.value, (target or current).value,
                f"'{current.value}' is terminal",
            )
        if target is not None and ASSET_LIFECYCLE.find(current.value, target.value) is None:
            raise IllegalTransitionError(
                "asset", current.value, target.value,
                f"'{movement_type.value}' movement not allowed",
            )

    def validate_condition_change(self, status: AssetStatus) -> None:
        status = AssetStatus(status)
        if status.is_terminal:
            raise IllegalTransitionError(
                "asset condition", status.value, status.value,
                "condition cannot change on a terminal asset",
            )

    def validate_movement_decision(
        self, current: ApprovalStatus, requested: ApprovalStatus
    ) -> Transition:
        return _validate_record(MOVEMENT_APPROVAL, "asset_movement", current, requested)

    def validate_work_order_transition(
        self, current: WorkOrderStatus, requested: WorkOrderStatus
    ) -> Transition:
        return _validate_record(WORK_ORDER_LIFECYCLE, "work_order", current, requested)


def _validate_record(workflow: Workflow, entity: str, current, requested) -> Transition:
    transition = workflow.find(current.value, requested.value)
    if transition is None:
        reason = (
            f"'{current.value}' is terminal"
            if current.value in workflow.terminal_states
            else "no such transition"
        )
        raise IllegalTransitionError(entity, current.value, requested.value, reason)
    return transition
