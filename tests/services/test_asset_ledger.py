"""
AssetLedger tests.

Verifies:
- create allocates a number, derives financial fields and audits
- update is guarded by the version stamp and never lowers depreciation
- transitions, overrides and deletes follow the lifecycle rules
- every mutation is all-or-nothing together with its audit row
- reads are tenant-scoped
"""

from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from asset_kernel.domain.authorization import Capability, Role
from asset_kernel.domain.dtos import (
    AssetCreateRequest,
    AssetFilters,
    AssetUpdateRequest,
    MovementRequest,
    Pagination,
    WorkOrderRequest,
)
from asset_kernel.domain.enums import (
    AssetCondition,
    AssetStatus,
    ComplianceStatus,
    DepreciationMethod,
    MovementType,
)
from asset_kernel.exceptions import (
    AssetNotFoundError,
    AuditWriteError,
    ConcurrentModificationError,
    CrossTenantAccessError,
    IllegalTransitionError,
    InactiveTenantError,
    InsufficientRoleError,
    InvalidAssetDataError,
    ValidationError,
)


def dispose(movements, requester, approver, asset_id):
    movement = movements.request(
        requester, asset_id, MovementRequest(MovementType.DISPOSAL, reason="End of life"),
    )
    return movements.approve(approver, movement.id)


class TestCreate:

    def test_allocates_number_and_derives_values(self, laptop, acme):
        assert laptop.asset_number == "LAP-2024-0001"
        assert laptop.tenant_id == acme.tenant.id
        assert laptop.status is AssetStatus.ACTIVE
        assert laptop.compliance_status is ComplianceStatus.PENDING
        assert laptop.version == 1
        # (1200 - 200) / 4 years, one year elapsed
        assert laptop.accumulated_depreciation == Decimal("250")
        assert laptop.book_value == Decimal("950")

    def test_audited_as_creation(self, ledger, laptop, acme_manager):
        trail = ledger.audit_trail(acme_manager, laptop.id)
        assert trail.actions == ("asset_created",)
        assert trail.entries[0].before is None
        assert trail.entries[0].after["asset_number"] == "LAP-2024-0001"

    def test_numbers_increment_within_category(self, ledger, acme_admin, laptop_request):
        numbers = [ledger.create(acme_admin, laptop_request).asset_number for _ in range(3)]
        assert numbers == ["LAP-2024-0001", "LAP-2024-0002", "LAP-2024-0003"]

    def test_without_cost_has_zero_values(self, ledger, acme_admin):
        record = ledger.create(acme_admin, AssetCreateRequest(name="Desk chair"))
        assert record.asset_number == "AST-2024-0001"
        assert record.accumulated_depreciation == Decimal("0")
        assert record.book_value == Decimal("0")

    def test_cost_without_schedule_is_not_depreciated(self, ledger, acme_admin):
        record = ledger.create(
            acme_admin, AssetCreateRequest(name="Artwork", purchase_cost=Decimal("5000")),
        )
        assert record.accumulated_depreciation == Decimal("0")
        assert record.book_value == Decimal("5000")

    def test_units_of_production_starts_at_zero_usage(self, ledger, acme_admin):
        record = ledger.create(acme_admin, AssetCreateRequest(
            name="Press", category="Machinery",
            purchase_cost=Decimal("1000"), purchase_date=date(2023, 1, 1),
            useful_life_years=10,
            depreciation_method=DepreciationMethod.UNITS_OF_PRODUCTION,
            total_expected_units=Decimal("1000"),
        ))
        assert record.units_to_date == Decimal("0")
        assert record.accumulated_depreciation == Decimal("0")

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"name": "  "}, "name"),
            ({"purchase_cost": Decimal("-1")}, "purchase_cost"),
            ({"salvage_value": Decimal("5000")}, "salvage_value"),
            ({"useful_life_years": 0}, "useful_life_years"),
            (
                {"depreciation_method": DepreciationMethod.UNITS_OF_PRODUCTION},
                "total_expected_units",
            ),
        ],
    )
    def test_invalid_data_rejected(self, ledger, acme_admin, laptop_request, overrides, field):
        with pytest.raises(InvalidAssetDataError) as exc:
            ledger.create(acme_admin, replace(laptop_request, **overrides))
        assert exc.value.field == field
        assert ledger.query(acme_admin).total == 0

    def test_viewer_cannot_create(self, ledger, acme_viewer, laptop_request):
        with pytest.raises(InsufficientRoleError):
            ledger.create(acme_viewer, laptop_request)

    def test_tenant_id_in_request_ignored_for_tenant_users(self, ledger, acme_admin, globex, laptop_request):
        record = ledger.create(acme_admin, replace(laptop_request, tenant_id=globex.tenant.id))
        assert record.tenant_id == acme_admin.tenant_id

    def test_super_admin_creates_in_named_tenant(self, ledger, super_admin, acme, laptop_request):
        record = ledger.create(super_admin, replace(laptop_request, tenant_id=acme.tenant.id))
        assert record.tenant_id == acme.tenant.id

    def test_deactivated_tenant_rejects_writes(
        self, ledger, tenant_service, super_admin, acme, acme_admin, laptop_request,
    ):
        tenant_service.set_tenant_active(super_admin, acme.tenant.id, False)
        with pytest.raises(InactiveTenantError, match="deactivated"):
            ledger.create(acme_admin, laptop_request)

    def test_deactivated_tenant_rejects_depreciation_refresh(
        self, ledger, tenant_service, super_admin, clock, acme, acme_admin, laptop,
    ):
        tenant_service.set_tenant_active(super_admin, acme.tenant.id, False)
        clock.advance(days=365)
        with pytest.raises(InactiveTenantError, match="deactivated"):
            ledger.refresh_depreciation(acme_admin, laptop.id)
        stored = ledger.get(acme_admin, laptop.id)
        assert stored.accumulated_depreciation == laptop.accumulated_depreciation
        assert stored.version == laptop.version

    def test_expired_subscription_rejects_writes(
        self, ledger, register_tenant, tenant_service, laptop_request,
    ):
        lapsed = register_tenant(
            "Lapsed Ltd", subscription_expires_at=datetime(2023, 6, 1, tzinfo=timezone.utc),
        )
        admin = tenant_service.principal_for(lapsed.admin.id)
        with pytest.raises(InactiveTenantError, match="expired"):
            ledger.create(admin, laptop_request)

    def test_audit_failure_rolls_back_creation(
        self, ledger, acme_admin, laptop_request, monkeypatch, captured_logs,
    ):
        def fail(**kwargs):
            raise AuditWriteError("asset", str(kwargs["entity_id"]), "disk full")

        monkeypatch.setattr(ledger.auditor, "append", fail)
        with pytest.raises(AuditWriteError):
            ledger.create(acme_admin, laptop_request)
        monkeypatch.undo()

        assert ledger.query(acme_admin).total == 0
        failed = [r for r in captured_logs() if r["message"] == "registry_operation_failed"]
        assert failed[0]["operation"] == "asset.create"
        assert failed[0]["exc_code"] == "AUDIT_WRITE_FAILED"


class TestUpdate:

    def test_partial_update_bumps_version(self, ledger, acme_admin, laptop):
        updated = ledger.update(
            acme_admin, laptop.id, laptop.version,
            AssetUpdateRequest(name="ThinkPad X1 Carbon", condition=AssetCondition.FAIR),
        )
        assert updated.name == "ThinkPad X1 Carbon"
        assert updated.condition is AssetCondition.FAIR
        assert updated.serial_number == "SN-001"
        assert updated.version == laptop.version + 1

    def test_update_audited_with_before_and_after(self, ledger, acme_admin, laptop):
        ledger.update(acme_admin, laptop.id, laptop.version, AssetUpdateRequest(notes="dented lid"))
        entry = ledger.audit_trail(acme_admin, laptop.id).entries[-1]
        assert entry.action == "asset_updated"
        assert entry.before["notes"] is None
        assert entry.after["notes"] == "dented lid"

    def test_stale_version_rejected(self, ledger, acme_admin, laptop):
        ledger.update(acme_admin, laptop.id, laptop.version, AssetUpdateRequest(notes="first"))
        with pytest.raises(ConcurrentModificationError) as exc:
            ledger.update(acme_admin, laptop.id, laptop.version, AssetUpdateRequest(notes="second"))
        assert exc.value.expected_version == laptop.version
        assert exc.value.actual_version == laptop.version + 1
        assert ledger.get(acme_admin, laptop.id).notes == "first"

    def test_empty_update_is_a_no_op(self, ledger, acme_admin, laptop):
        same = ledger.update(acme_admin, laptop.id, laptop.version, AssetUpdateRequest())
        assert same.version == laptop.version
        assert ledger.audit_trail(acme_admin, laptop.id).actions == ("asset_created",)

    def test_financial_change_recomputes(self, ledger, acme_admin, laptop):
        updated = ledger.update(
            acme_admin, laptop.id, laptop.version,
            AssetUpdateRequest(purchase_cost=Decimal("2200")),
        )
        assert updated.accumulated_depreciation == Decimal("500")
        assert updated.book_value == Decimal("1700")

    def test_change_lowering_depreciation_rejected(self, ledger, acme_admin, laptop):
        with pytest.raises(ValidationError, match="lower"):
            ledger.update(
                acme_admin, laptop.id, laptop.version,
                AssetUpdateRequest(useful_life_years=Decimal("10")),
            )
        assert ledger.get(acme_admin, laptop.id).useful_life_years == Decimal("4")

    def test_salvage_above_cost_rejected(self, ledger, acme_admin, laptop):
        with pytest.raises(InvalidAssetDataError):
            ledger.update(
                acme_admin, laptop.id, laptop.version,
                AssetUpdateRequest(salvage_value=Decimal("5000")),
            )

    def test_other_tenant_cannot_update(self, ledger, globex_admin, laptop):
        with pytest.raises(CrossTenantAccessError):
            ledger.update(globex_admin, laptop.id, laptop.version, AssetUpdateRequest(notes="x"))

    def test_terminal_asset_condition_frozen(self, ledger, movements, acme_admin, acme_manager, laptop):
        dispose(movements, acme_admin, acme_manager, laptop.id)
        current = ledger.get(acme_admin, laptop.id)
        with pytest.raises(IllegalTransitionError):
            ledger.update(
                acme_admin, laptop.id, current.version,
                AssetUpdateRequest(condition=AssetCondition.DAMAGED),
            )

    def test_terminal_asset_financials_frozen(self, ledger, movements, acme_admin, acme_manager, laptop):
        dispose(movements, acme_admin, acme_manager, laptop.id)
        current = ledger.get(acme_admin, laptop.id)
        with pytest.raises(InvalidAssetDataError, match="frozen"):
            ledger.update(
                acme_admin, laptop.id, current.version,
                AssetUpdateRequest(purchase_cost=Decimal("5000")),
            )


class TestTransition:

    def test_manager_deactivates(self, ledger, acme_manager, laptop):
        record = ledger.transition(acme_manager, laptop.id, AssetStatus.INACTIVE)
        assert record.status is AssetStatus.INACTIVE
        entry = ledger.audit_trail(acme_manager, laptop.id).entries[-1]
        assert entry.action == "asset_status_changed"
        assert not entry.compliance_event

    def test_user_cannot_transition(self, ledger, acme_user, laptop):
        with pytest.raises(InsufficientRoleError):
            ledger.transition(acme_user, laptop.id, AssetStatus.INACTIVE)

    def test_maintenance_needs_movement(self, ledger, acme_manager, laptop):
        with pytest.raises(IllegalTransitionError):
            ledger.transition(acme_manager, laptop.id, AssetStatus.MAINTENANCE)

    def test_trigger_from_other_asset_rejected(
        self, ledger, movements, acme_admin, acme_manager, laptop, laptop_request,
    ):
        other = ledger.create(acme_admin, laptop_request)
        movement = movements.request(
            acme_admin, other.id, MovementRequest(MovementType.STOLEN),
        )
        with pytest.raises(ValidationError, match="another asset"):
            ledger.transition(acme_manager, laptop.id, AssetStatus.STOLEN, movement.id)

    def test_unknown_trigger_rejected(self, ledger, acme_manager, laptop):
        with pytest.raises(ValidationError, match="not found"):
            ledger.transition(acme_manager, laptop.id, AssetStatus.LOST, uuid4())

    def test_version_checked_when_given(self, ledger, acme_manager, laptop):
        with pytest.raises(ConcurrentModificationError):
            ledger.transition(acme_manager, laptop.id, AssetStatus.INACTIVE, version=99)

    def test_super_admin_overrides_terminal_state(
        self, ledger, movements, acme_admin, acme_manager, super_admin, laptop,
    ):
        dispose(movements, acme_admin, acme_manager, laptop.id)
        record = ledger.transition(super_admin, laptop.id, AssetStatus.ACTIVE)

        assert record.status is AssetStatus.ACTIVE
        assert record.disposal_date is None
        entry = ledger.audit_trail(acme_manager, laptop.id).entries[-1]
        assert entry.action == "asset_lifecycle_override"
        assert entry.compliance_event

    def test_override_capability_can_be_granted(
        self, ledger, movements, make_principal, acme_admin, acme_manager, laptop,
    ):
        dispose(movements, acme_admin, acme_manager, laptop.id)
        holder = make_principal(
            acme_admin, Role.MANAGER, permissions={Capability.ASSET_LIFECYCLE_OVERRIDE},
        )
        assert ledger.transition(holder, laptop.id, AssetStatus.INACTIVE).status is AssetStatus.INACTIVE

    def test_admin_without_override_cannot_leave_terminal(
        self, ledger, movements, acme_admin, acme_manager, laptop,
    ):
        dispose(movements, acme_admin, acme_manager, laptop.id)
        with pytest.raises(IllegalTransitionError, match="terminal"):
            ledger.transition(acme_admin, laptop.id, AssetStatus.ACTIVE)


class TestTriggerReuse:
    """A movement or work order drives exactly one status change."""

    @pytest.fixture
    def repaired(self, movements, work_orders, acme_user, acme_manager, laptop):
        """One full maintenance round: approved movement, completed work order."""
        movement = movements.request(
            acme_user, laptop.id, MovementRequest(MovementType.CORRECTIVE_MAINTENANCE),
        )
        movements.approve(acme_manager, movement.id)
        wo = work_orders.open(acme_user, laptop.id, WorkOrderRequest(title="Fan"))
        work_orders.start(acme_user, wo.id)
        work_orders.complete(acme_manager, wo.id)
        return movement, wo

    def test_status_trigger_recorded(self, ledger, acme_user, laptop, repaired):
        _, wo = repaired
        asset = ledger.get(acme_user, laptop.id)
        assert asset.status is AssetStatus.ACTIVE
        assert asset.status_trigger_id == wo.id

    def test_applied_movement_cannot_be_replayed(
        self, ledger, acme_manager, laptop, repaired,
    ):
        movement, _ = repaired
        with pytest.raises(IllegalTransitionError, match="already applied"):
            ledger.transition(acme_manager, laptop.id, AssetStatus.MAINTENANCE, movement.id)
        assert ledger.get(acme_manager, laptop.id).status is AssetStatus.ACTIVE

    def test_old_work_order_cannot_end_later_maintenance(
        self, ledger, movements, work_orders, acme_user, acme_manager, laptop, repaired,
    ):
        _, old_wo = repaired
        again = movements.request(
            acme_user, laptop.id, MovementRequest(MovementType.PREVENTIVE_MAINTENANCE),
        )
        movements.approve(acme_manager, again.id)
        pending = work_orders.open(acme_user, laptop.id, WorkOrderRequest(title="Hinge"))

        with pytest.raises(IllegalTransitionError, match="current maintenance"):
            ledger.transition(acme_manager, laptop.id, AssetStatus.ACTIVE, old_wo.id)

        work_orders.cancel(acme_user, pending.id)
        with pytest.raises(IllegalTransitionError, match="current maintenance"):
            ledger.transition(acme_manager, laptop.id, AssetStatus.ACTIVE, old_wo.id)
        assert ledger.get(acme_manager, laptop.id).status is AssetStatus.MAINTENANCE

    def test_completed_order_releases_after_sibling_cancelled(
        self, ledger, movements, work_orders, acme_user, acme_manager, laptop,
    ):
        movement = movements.request(
            acme_user, laptop.id, MovementRequest(MovementType.CORRECTIVE_MAINTENANCE),
        )
        movements.approve(acme_manager, movement.id)
        done = work_orders.open(acme_user, laptop.id, WorkOrderRequest(title="Screen"))
        dropped = work_orders.open(acme_user, laptop.id, WorkOrderRequest(title="Paint"))
        work_orders.start(acme_user, done.id)
        work_orders.complete(acme_manager, done.id)
        work_orders.cancel(acme_user, dropped.id)
        assert ledger.get(acme_user, laptop.id).status is AssetStatus.MAINTENANCE

        record = ledger.transition(acme_manager, laptop.id, AssetStatus.ACTIVE, done.id)
        assert record.status is AssetStatus.ACTIVE
        assert record.status_trigger_id == done.id


class TestDelete:

    def test_asset_without_history_is_removed(self, ledger, acme_admin):
        record = ledger.create(acme_admin, AssetCreateRequest(name="Whiteboard"))
        assert ledger.delete(acme_admin, record.id, record.version) is None

        with pytest.raises(AssetNotFoundError):
            ledger.get(acme_admin, record.id)
        trail = ledger.auditor.trace("asset", record.id)
        assert trail.actions == ("asset_created", "asset_deleted")
        assert trail.entries[-1].compliance_event

    def test_asset_with_cost_needs_disposal_movement(self, ledger, acme_admin, laptop):
        with pytest.raises(IllegalTransitionError):
            ledger.delete(acme_admin, laptop.id, laptop.version)
        assert ledger.get(acme_admin, laptop.id).status is AssetStatus.ACTIVE

    def test_asset_with_movements_is_not_removed(self, ledger, movements, acme_admin):
        record = ledger.create(acme_admin, AssetCreateRequest(name="Projector"))
        movements.request(acme_admin, record.id, MovementRequest(
            MovementType.TRANSFER, to_location_id=uuid4(),
        ))
        with pytest.raises(IllegalTransitionError):
            ledger.delete(acme_admin, record.id, record.version)

    def test_disposed_asset_delete_returns_record(
        self, ledger, movements, acme_admin, acme_manager, laptop,
    ):
        dispose(movements, acme_admin, acme_manager, laptop.id)
        current = ledger.get(acme_admin, laptop.id)
        record = ledger.delete(acme_admin, laptop.id, current.version)
        assert record.status is AssetStatus.DISPOSED
        assert ledger.get(acme_admin, laptop.id).version == current.version

    def test_manager_cannot_delete(self, ledger, acme_manager, laptop):
        with pytest.raises(InsufficientRoleError):
            ledger.delete(acme_manager, laptop.id, laptop.version)


class TestUsageAndCompliance:

    @pytest.fixture
    def press(self, ledger, acme_admin):
        return ledger.create(acme_admin, AssetCreateRequest(
            name="Press", category="Machinery",
            purchase_cost=Decimal("1000"), purchase_date=date(2023, 1, 1),
            useful_life_years=10,
            depreciation_method=DepreciationMethod.UNITS_OF_PRODUCTION,
            total_expected_units=Decimal("1000"),
        ))

    def test_usage_drives_depreciation(self, ledger, acme_admin, press):
        record = ledger.record_usage(acme_admin, press.id, press.version, Decimal("250"))
        assert record.accumulated_depreciation == Decimal("250")
        assert record.book_value == Decimal("750")
        assert ledger.audit_trail(acme_admin, press.id).last_action == "asset_usage_recorded"

    def test_usage_meter_never_goes_back(self, ledger, acme_admin, press):
        record = ledger.record_usage(acme_admin, press.id, press.version, Decimal("250"))
        with pytest.raises(InvalidAssetDataError, match="cannot go back"):
            ledger.record_usage(acme_admin, press.id, record.version, Decimal("100"))

    def test_compliance_audit_schedules_next(self, ledger, acme_admin, laptop):
        record = ledger.record_compliance_audit(
            acme_admin, laptop.id, laptop.version, date(2024, 1, 1), ComplianceStatus.COMPLIANT,
        )
        assert record.last_audit_date == date(2024, 1, 1)
        assert record.next_audit_date == date(2024, 12, 31)
        assert record.compliance_status is ComplianceStatus.COMPLIANT
        assert ledger.audit_trail(acme_admin, laptop.id).entries[-1].compliance_event

    def test_refresh_follows_the_clock(self, ledger, acme_admin, laptop, clock):
        clock.advance(days=365)
        record = ledger.refresh_depreciation(acme_admin, laptop.id)
        assert record.accumulated_depreciation == Decimal("500")
        assert record.version == laptop.version + 1

        again = ledger.refresh_depreciation(acme_admin, laptop.id)
        assert again.version == record.version
        assert ledger.audit_trail(acme_admin, laptop.id).actions == (
            "asset_created", "asset_depreciation_refreshed",
        )


class TestReads:

    def test_get_across_tenants_denied(self, ledger, globex_admin, laptop):
        with pytest.raises(CrossTenantAccessError):
            ledger.get(globex_admin, laptop.id)

    def test_get_missing(self, ledger, acme_admin):
        with pytest.raises(AssetNotFoundError):
            ledger.get(acme_admin, uuid4())

    def test_viewer_cannot_read_audit_trail(self, ledger, acme_viewer, laptop):
        with pytest.raises(InsufficientRoleError):
            ledger.audit_trail(acme_viewer, laptop.id)

    @pytest.fixture
    def two_tenants(self, ledger, acme_admin, globex_admin, laptop_request):
        ledger.create(acme_admin, laptop_request)
        ledger.create(acme_admin, replace(laptop_request, name="Dell XPS", serial_number="DX-9"))
        ledger.create(globex_admin, replace(laptop_request, name="MacBook"))

    def test_query_is_tenant_scoped(self, ledger, acme_admin, globex, two_tenants):
        page = ledger.query(acme_admin)
        assert page.total == 2
        assert {a.tenant_id for a in page.items} == {acme_admin.tenant_id}

        # tenant filter is ignored for non-super_admin
        pinned = ledger.query(acme_admin, AssetFilters(tenant_id=globex.tenant.id))
        assert pinned.total == 2

    def test_super_admin_sees_all_or_filters(self, ledger, super_admin, globex, two_tenants):
        assert ledger.query(super_admin).total == 3
        only_globex = ledger.query(super_admin, AssetFilters(tenant_id=globex.tenant.id))
        assert [a.name for a in only_globex.items] == ["MacBook"]

    def test_newest_first(self, ledger, acme_admin, two_tenants):
        numbers = [a.asset_number for a in ledger.query(acme_admin).items]
        assert numbers == ["LAP-2024-0002", "LAP-2024-0001"]

    @pytest.mark.parametrize("term", ["dell", "DX-9", "lap-2024-0002"])
    def test_search_is_case_insensitive(self, ledger, acme_admin, two_tenants, term):
        page = ledger.query(acme_admin, AssetFilters(search=term))
        assert [a.name for a in page.items] == ["Dell XPS"]

    def test_search_treats_wildcards_literally(self, ledger, acme_admin, two_tenants):
        assert ledger.query(acme_admin, AssetFilters(search="%")).total == 0

    def test_filters(self, ledger, acme_manager, acme_admin, two_tenants):
        first = ledger.query(acme_admin).items[-1]
        ledger.transition(acme_manager, first.id, AssetStatus.INACTIVE)
        inactive = ledger.query(acme_admin, AssetFilters(status=AssetStatus.INACTIVE))
        assert [a.id for a in inactive.items] == [first.id]
        assert ledger.query(acme_admin, AssetFilters(category_code="Laptops")).total == 2
        assert ledger.query(acme_admin, AssetFilters(category_code="Servers")).total == 0

    def test_pagination(self, ledger, acme_admin, two_tenants):
        page = ledger.query(acme_admin, pagination=Pagination(page=2, limit=1))
        assert page.limit == 1
        assert page.total == 2
        assert page.total_pages == 2
        assert page.has_prev and not page.has_next
        assert len(page.items) == 1

    def test_limit_is_clamped(self, ledger, acme_admin, two_tenants):
        assert ledger.query(acme_admin, pagination=Pagination(limit=5000)).limit == 100
        assert ledger.query(acme_admin, pagination=Pagination(limit=0)).limit == 10


def test_clock_drives_timestamps(ledger, acme_admin, laptop_request, clock):
    clock.advance(days=3)
    record = ledger.create(acme_admin, laptop_request)
    assert record.created_at == datetime(2024, 1, 4, 12, tzinfo=timezone.utc)
