"""
MovementService tests: request, decide once, apply on approval.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from asset_kernel.domain.dtos import AssetUpdateRequest, MovementRequest
from asset_kernel.domain.enums import ApprovalStatus, AssetStatus, MovementType
from asset_kernel.exceptions import (
    CrossTenantAccessError,
    IllegalTransitionError,
    InsufficientRoleError,
    MovementNotFoundError,
    ValidationError,
)

WAREHOUSE = uuid4()
BRANCH_OFFICE = uuid4()


class TestRequest:

    def test_pending_with_origin_captured(self, movements, ledger, acme_admin, acme_user, laptop):
        ledger.update(
            acme_admin, laptop.id, laptop.version,
            AssetUpdateRequest(location_id=WAREHOUSE),
        )
        movement = movements.request(
            acme_user, laptop.id,
            MovementRequest(MovementType.TRANSFER, to_location_id=BRANCH_OFFICE, reason="relocation"),
        )
        assert movement.approval_status is ApprovalStatus.PENDING
        assert movement.from_location_id == WAREHOUSE
        assert movement.to_location_id == BRANCH_OFFICE
        assert movement.requested_by_id == acme_user.user_id
        assert movement.decided_at is None

    def test_request_is_audited_and_leaves_asset_alone(self, movements, ledger, acme_user, laptop):
        movement = movements.request(
            acme_user, laptop.id, MovementRequest(MovementType.DISPOSAL),
        )
        trail = ledger.auditor.trace("asset_movement", movement.id)
        assert trail.actions == ("movement_requested",)
        assert ledger.get(acme_user, laptop.id).version == laptop.version

    def test_transfer_needs_destination(self, movements, acme_user, laptop):
        with pytest.raises(ValidationError, match="destination"):
            movements.request(acme_user, laptop.id, MovementRequest(MovementType.TRANSFER))

    def test_loan_needs_receiver(self, movements, acme_user, laptop):
        with pytest.raises(ValidationError) as exc:
            movements.request(
                acme_user, laptop.id,
                MovementRequest(MovementType.LOAN, to_location_id=BRANCH_OFFICE),
            )
        assert exc.value.field == "to_user_id"

    def test_viewer_cannot_request(self, movements, acme_viewer, laptop):
        with pytest.raises(InsufficientRoleError):
            movements.request(acme_viewer, laptop.id, MovementRequest(MovementType.LOST))

    def test_other_tenant_cannot_request(self, movements, globex_admin, laptop):
        with pytest.raises(CrossTenantAccessError):
            movements.request(globex_admin, laptop.id, MovementRequest(MovementType.LOST))

    def test_maintenance_only_from_active(self, movements, ledger, acme_manager, laptop):
        ledger.transition(acme_manager, laptop.id, AssetStatus.INACTIVE)
        with pytest.raises(IllegalTransitionError, match="not allowed"):
            movements.request(
                acme_manager, laptop.id,
                MovementRequest(MovementType.PREVENTIVE_MAINTENANCE),
            )


class TestApprove:

    def test_transfer_moves_location_keeps_custodian(
        self, movements, ledger, acme_admin, acme_manager, acme_user, laptop,
    ):
        loan = movements.request(
            acme_admin, laptop.id, MovementRequest(MovementType.LOAN, to_user_id=acme_user.user_id),
        )
        movements.approve(acme_manager, loan.id)

        transfer = movements.request(
            acme_admin, laptop.id, MovementRequest(MovementType.TRANSFER, to_location_id=BRANCH_OFFICE),
        )
        movements.approve(acme_manager, transfer.id)

        asset = ledger.get(acme_admin, laptop.id)
        assert asset.location_id == BRANCH_OFFICE
        assert asset.assigned_to_id == acme_user.user_id
        assert asset.status is AssetStatus.ACTIVE

    def test_loan_then_return(self, movements, ledger, acme_admin, acme_manager, acme_user, laptop):
        loan = movements.request(
            acme_admin, laptop.id, MovementRequest(MovementType.LOAN, to_user_id=acme_user.user_id),
        )
        movements.approve(acme_manager, loan.id)
        assert ledger.get(acme_admin, laptop.id).assigned_to_id == acme_user.user_id

        back = movements.request(acme_user, laptop.id, MovementRequest(MovementType.RETURN))
        assert back.from_user_id == acme_user.user_id
        movements.approve(acme_manager, back.id)
        assert ledger.get(acme_admin, laptop.id).assigned_to_id is None

    def test_approval_records_decision(self, movements, acme_user, acme_manager, clock, laptop):
        movement = movements.request(acme_user, laptop.id, MovementRequest(MovementType.LOST))
        clock.advance(seconds=60)
        decided = movements.approve(acme_manager, movement.id)
        assert decided.approval_status is ApprovalStatus.APPROVED
        assert decided.decided_by_id == acme_manager.user_id
        assert decided.decided_at == clock.now()
        assert decided.applied_at == clock.now()
        assert decided.version == movement.version + 1

    def test_disposal_freezes_values(self, movements, ledger, acme_user, acme_manager, laptop, clock):
        movement = movements.request(acme_user, laptop.id, MovementRequest(MovementType.DISPOSAL))
        movements.approve(acme_manager, movement.id)

        disposed = ledger.get(acme_user, laptop.id)
        assert disposed.status is AssetStatus.DISPOSED
        assert disposed.disposal_date == date(2024, 1, 1)
        assert disposed.accumulated_depreciation == Decimal("250")

        clock.advance(days=400)
        refreshed = ledger.refresh_depreciation(acme_manager, laptop.id)
        assert refreshed.accumulated_depreciation == Decimal("250")
        assert refreshed.book_value == Decimal("950")

    @pytest.mark.parametrize(
        "movement_type, status",
        [
            (MovementType.STOLEN, AssetStatus.STOLEN),
            (MovementType.LOST, AssetStatus.LOST),
            (MovementType.CORRECTIVE_MAINTENANCE, AssetStatus.MAINTENANCE),
            (MovementType.PREVENTIVE_MAINTENANCE, AssetStatus.MAINTENANCE),
        ],
    )
    def test_status_bearing_types(
        self, movements, ledger, acme_user, acme_manager, laptop, movement_type, status,
    ):
        movement = movements.request(acme_user, laptop.id, MovementRequest(movement_type))
        movements.approve(acme_manager, movement.id)

        assert ledger.get(acme_user, laptop.id).status is status
        entry = ledger.audit_trail(acme_manager, laptop.id).entries[-1]
        assert entry.action == "asset_status_changed"
        assert entry.compliance_event is status.is_terminal

    def test_user_cannot_approve(self, movements, acme_user, laptop):
        movement = movements.request(acme_user, laptop.id, MovementRequest(MovementType.LOST))
        with pytest.raises(InsufficientRoleError):
            movements.approve(acme_user, movement.id)

    def test_unknown_movement(self, movements, acme_manager):
        with pytest.raises(MovementNotFoundError):
            movements.approve(acme_manager, uuid4())

    def test_stale_approval_applies_nothing(self, movements, ledger, acme_user, acme_manager, laptop):
        stolen = movements.request(acme_user, laptop.id, MovementRequest(MovementType.STOLEN))
        lost = movements.request(acme_user, laptop.id, MovementRequest(MovementType.LOST))
        movements.approve(acme_manager, stolen.id)

        with pytest.raises(IllegalTransitionError, match="terminal"):
            movements.approve(acme_manager, lost.id)
        assert movements.get(acme_manager, lost.id).approval_status is ApprovalStatus.PENDING
        assert ledger.get(acme_manager, laptop.id).status is AssetStatus.STOLEN


class TestDecidedOnce:

    @pytest.fixture
    def pending(self, movements, acme_user, laptop):
        return movements.request(acme_user, laptop.id, MovementRequest(MovementType.LOST))

    def test_reject_keeps_asset(self, movements, ledger, acme_manager, pending, laptop):
        rejected = movements.reject(acme_manager, pending.id, reason="found in drawer")
        assert rejected.approval_status is ApprovalStatus.REJECTED
        assert rejected.rejection_reason == "found in drawer"
        assert rejected.applied_at is None
        assert ledger.get(acme_manager, laptop.id).status is AssetStatus.ACTIVE

    def test_approved_cannot_be_rejected(self, movements, acme_manager, pending):
        movements.approve(acme_manager, pending.id)
        with pytest.raises(IllegalTransitionError):
            movements.reject(acme_manager, pending.id)

    def test_rejected_cannot_be_approved(self, movements, acme_manager, pending):
        movements.reject(acme_manager, pending.id)
        with pytest.raises(IllegalTransitionError):
            movements.approve(acme_manager, pending.id)

    def test_audit_chain_for_decision(self, movements, ledger, acme_manager, pending):
        movements.reject(acme_manager, pending.id)
        trail = ledger.auditor.trace("asset_movement", pending.id)
        assert trail.actions == ("movement_requested", "movement_rejected")
        assert trail.entries[1].before["approval_status"] == "pending"
        assert trail.entries[1].after["approval_status"] == "rejected"


def test_list_for_asset_oldest_first(movements, acme_user, acme_manager, clock, laptop):
    first = movements.request(acme_user, laptop.id, MovementRequest(MovementType.LOST))
    movements.reject(acme_manager, first.id)
    clock.advance(seconds=5)
    second = movements.request(acme_user, laptop.id, MovementRequest(MovementType.STOLEN))

    listed = movements.list_for_asset(acme_user, laptop.id)
    assert [m.id for m in listed] == [first.id, second.id]
