"""
AssetLedger -- the asset registry's write path.

Responsibility:
    Orchestrates create / update / transition / delete of assets as one
    atomic unit of work each:

        authorize -> validate -> allocate asset number (create)
        -> DepreciationEngine for derived fields
        -> LifecycleStateMachine (status changes)
        -> persist -> AuditRecorder.append

    Also serves tenant-scoped reads (get, query, audit trail).

Architecture position:
    Kernel > Services. Uses the pure domain engines and the
    IdentifierAllocator / AuditRecorder shell services. MovementService and
    WorkOrderService share its session and call ``apply_transition`` for
    the status effect of an approved movement or completed work order.

Invariants enforced:
    - book_value = purchase_cost - accumulated_depreciation, with
      salvage_value <= book_value <= purchase_cost.
    - accumulated_depreciation never decreases.
    - A stale version stamp is rejected with ConcurrentModificationError,
      never overwritten. Rows are read under SELECT ... FOR UPDATE.
    - Nothing commits without its audit row.

Derived fields are computed as of the clock's current date, so the value
stored on the day of disposal equals the frozen disposal value.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from asset_kernel.domain.authorization import (
    Action,
    AuthorizationEngine,
    Principal,
    ResourceRef,
)
from asset_kernel.domain.clock import Clock
from asset_kernel.domain.depreciation import DepreciationEngine
from asset_kernel.domain.dtos import (
    AssetCreateRequest,
    AssetFilters,
    AssetRecord,
    AssetUpdateRequest,
    Page,
    Pagination,
)
from asset_kernel.domain.enums import (
    AssetStatus,
    AuditAction,
    ComplianceStatus,
    DepreciationMethod,
    IdentifierKind,
    WorkOrderStatus,
)
from asset_kernel.domain.lifecycle import (
    WORK_ORDER_LIFECYCLE,
    LifecycleStateMachine,
    Transition,
    Trigger,
)
from asset_kernel.domain.policies import RegistryPolicy
from asset_kernel.exceptions import (
    AssetNotFoundError,
    ConcurrentModificationError,
    IllegalTransitionError,
    InvalidAssetDataError,
    ValidationError,
)
from asset_kernel.logging_config import get_logger
from asset_kernel.models import Asset, AssetMovement, WorkOrder
from asset_kernel.services.audit_recorder import AuditRecorder, AuditTrace
from asset_kernel.services.base import RegistryService
from asset_kernel.services.identifier_allocator import IdentifierAllocator

logger = get_logger("services.asset_ledger")

_ZERO = Decimal("0")

_FINANCIAL_FIELDS = frozenset({
    "purchase_cost",
    "purchase_date",
    "salvage_value",
    "useful_life_years",
    "depreciation_method",
    "total_expected_units",
})

_ENUM_FIELDS = frozenset({"condition", "criticality", "depreciation_method"})


def _validate_financials(
    *,
    purchase_cost: Decimal | None,
    salvage_value: Decimal | None,
    useful_life_years: Decimal | None,
    depreciation_method: DepreciationMethod,
    total_expected_units: Decimal | None,
    units_to_date: Decimal | None,
) -> None:
    """Raise InvalidAssetDataError for values no depreciation method accepts."""
    salvage = salvage_value if salvage_value is not None else _ZERO
    if purchase_cost is not None and purchase_cost < 0:
        raise InvalidAssetDataError("purchase_cost", "must not be negative")
    if salvage < 0:
        raise InvalidAssetDataError("salvage_value", "must not be negative")
    if purchase_cost is not None and salvage > purchase_cost:
        raise InvalidAssetDataError("salvage_value", "must not exceed purchase cost")
    if purchase_cost is None and salvage > 0:
        raise InvalidAssetDataError("salvage_value", "requires a purchase cost")
    if useful_life_years is not None and useful_life_years <= 0:
        raise InvalidAssetDataError("useful_life_years", "must be positive")
    if units_to_date is not None and units_to_date < 0:
        raise InvalidAssetDataError("units_to_date", "must not be negative")
    if depreciation_method is DepreciationMethod.UNITS_OF_PRODUCTION:
        if total_expected_units is None or total_expected_units <= 0:
            raise InvalidAssetDataError(
                "total_expected_units",
                "units_of_production requires a positive expected-units capacity",
            )


class AssetLedger(RegistryService):
    """
    Asset write and read operations.

    Every public method is one unit of work. With ``auto_commit=True``
    (default) it commits on success and rolls back on failure; with
    ``auto_commit=False`` it only flushes into the caller's transaction.
    """

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
        dep = self._policy.depreciation
        self._depreciation = DepreciationEngine(
            days_per_year=dep.days_per_year,
            declining_balance_factor=dep.declining_balance_factor,
            quantum=dep.quantum,
        )
        self._lifecycle = LifecycleStateMachine()
        self._audit = AuditRecorder(session, self._clock)
        self._allocator = IdentifierAllocator(session, self._clock, self._policy.identifiers)

    @property
    def depreciation_engine(self) -> DepreciationEngine:
        return self._depreciation

    @property
    def auditor(self) -> AuditRecorder:
        return self._audit

    @property
    def allocator(self) -> IdentifierAllocator:
        return self._allocator

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, principal: Principal, request: AssetCreateRequest) -> AssetRecord:
        """
        Register a new asset with an allocated asset number.

        Raises:
            AuthorizationError, InactiveTenantError, InvalidAssetDataError,
            AllocationExhaustedError, StorageError.
        """
        tenant_id = principal.tenant_id
        if principal.is_super_admin and request.tenant_id is not None:
            tenant_id = request.tenant_id

        with self._unit_of_work("asset.create", principal):
            self._auth.authorize(principal, Action.ASSET_CREATE, ResourceRef(tenant_id)).require()
            self._operational_tenant(tenant_id)

            if not (request.name or "").strip():
                raise InvalidAssetDataError("name", "must not be empty")
            method = request.depreciation_method or self._policy.depreciation.default_method
            life = (
                Decimal(str(request.useful_life_years))
                if request.useful_life_years is not None
                else None
            )
            units_to_date = request.units_to_date
            if method is DepreciationMethod.UNITS_OF_PRODUCTION and units_to_date is None:
                units_to_date = _ZERO
            _validate_financials(
                purchase_cost=request.purchase_cost,
                salvage_value=request.salvage_value,
                useful_life_years=life,
                depreciation_method=method,
                total_expected_units=request.total_expected_units,
                units_to_date=units_to_date,
            )
            now = self._clock.now()

            def build(code: str) -> Asset:
                asset = Asset(
                    tenant_id=tenant_id,
                    asset_number=code,
                    name=request.name.strip(),
                    description=request.description,
                    category_code=request.category,
                    serial_number=request.serial_number,
                    brand=request.brand,
                    model=request.model,
                    location_id=request.location_id,
                    assigned_to_id=request.assigned_to_id,
                    notes=request.notes,
                    status=AssetStatus.ACTIVE.value,
                    condition=request.condition.value,
                    criticality=request.criticality.value,
                    purchase_cost=request.purchase_cost,
                    purchase_date=request.purchase_date,
                    salvage_value=request.salvage_value or _ZERO,
                    useful_life_years=life,
                    depreciation_method=method.value,
                    total_expected_units=request.total_expected_units,
                    units_to_date=units_to_date,
                    compliance_status=ComplianceStatus.PENDING.value,
                    created_at=now,
                    updated_at=now,
                    created_by_id=principal.user_id,
                    updated_by_id=principal.user_id,
                )
                self._set_derived(asset)
                return asset

            asset = self._allocator.allocate(
                tenant_id, IdentifierKind.ASSET_NUMBER, request.category, build,
            ).entity

            record = asset.to_dto()
            self._audit.append(
                tenant_id=tenant_id,
                entity_type="asset",
                entity_id=asset.id,
                action=AuditAction.ASSET_CREATED,
                actor_id=principal.user_id,
                after=record,
            )
            logger.info(
                "asset_created",
                extra={"asset_id": str(asset.id), "asset_number": asset.asset_number},
            )
        return record

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(
        self,
        principal: Principal,
        asset_id: UUID,
        version: int,
        request: AssetUpdateRequest,
    ) -> AssetRecord:
        """
        Apply a partial update guarded by the caller's version stamp.

        Raises:
            ConcurrentModificationError: ``version`` is stale.
            IllegalTransitionError: condition change on a terminal asset.
            ValidationError: the change would lower recognized depreciation.
        """
        with self._unit_of_work("asset.update", principal, asset_id):
            asset = self.load_for_update(asset_id)
            self._auth.authorize(principal, Action.ASSET_UPDATE, asset).require()
            self._operational_tenant(asset.tenant_id)
            self._check_version(asset, version)

            changes = request.changed_fields()
            if not changes:
                return asset.to_dto()

            status = AssetStatus(asset.status)
            if "condition" in changes:
                self._lifecycle.validate_condition_change(status)
            if status.is_terminal and _FINANCIAL_FIELDS & changes.keys():
                raise InvalidAssetDataError(
                    sorted(_FINANCIAL_FIELDS & changes.keys())[0],
                    f"financial fields are frozen on a {status.value} asset",
                )
            if "name" in changes and not str(changes["name"]).strip():
                raise InvalidAssetDataError("name", "must not be empty")

            before = asset.to_dto()
            for name, value in changes.items():
                if name in _ENUM_FIELDS:
                    value = value.value
                elif name == "useful_life_years":
                    value = Decimal(str(value))
                elif name == "category":
                    name = "category_code"
                setattr(asset, name, value)

            method = DepreciationMethod(asset.depreciation_method)
            if (
                method is DepreciationMethod.UNITS_OF_PRODUCTION
                and asset.units_to_date is None
            ):
                asset.units_to_date = _ZERO
            _validate_financials(
                purchase_cost=asset.purchase_cost,
                salvage_value=asset.salvage_value,
                useful_life_years=asset.useful_life_years,
                depreciation_method=method,
                total_expected_units=asset.total_expected_units,
                units_to_date=asset.units_to_date,
            )
            self._set_derived(asset, previous=before.accumulated_depreciation)
            record = self._finish(
                principal, asset, AuditAction.ASSET_UPDATED, before,
            )
            logger.info(
                "asset_updated",
                extra={"asset_id": str(asset_id), "fields": sorted(changes)},
            )
        return record

    # ------------------------------------------------------------------
    # Transition
    # ------------------------------------------------------------------

    def transition(
        self,
        principal: Principal,
        asset_id: UUID,
        requested_status: AssetStatus,
        triggering_record_id: UUID | None = None,
        version: int | None = None,
    ) -> AssetRecord:
        """
        Change an asset's status.

        ``triggering_record_id`` names the AssetMovement or WorkOrder that
        drives the change; guarded transitions need it to be approved or
        completed. A principal holding the lifecycle override capability
        may bring a disposed, stolen or lost asset back to active or
        inactive without a triggering record.
        """
        requested_status = AssetStatus(requested_status)
        with self._unit_of_work("asset.transition", principal, asset_id):
            asset = self.load_for_update(asset_id)
            self._auth.authorize(principal, Action.ASSET_TRANSITION, asset).require()
            self._operational_tenant(asset.tenant_id)
            if version is not None:
                self._check_version(asset, version)

            override = False
            if AssetStatus(asset.status).is_terminal:
                override = self._auth.authorize(
                    principal, Action.ASSET_LIFECYCLE_OVERRIDE, asset,
                ).allowed
            trigger = self._load_trigger(asset, triggering_record_id, requested_status)
            record = self.apply_transition(
                principal, asset, requested_status, trigger, override=override,
            )
        return record

    def apply_transition(
        self,
        principal: Principal,
        asset: Asset,
        requested_status: AssetStatus,
        trigger: Trigger | None,
        *,
        override: bool = False,
    ) -> AssetRecord:
        """
        Validate and apply a status change to a locked asset.

        Runs inside the caller's unit of work; the caller has already
        authorized the action that produced ``trigger``.
        """
        current = AssetStatus(asset.status)
        transition: Transition = self._lifecycle.validate_asset_transition(
            current, requested_status, trigger, override=override,
        )
        before = asset.to_dto()

        asset.status = requested_status.value
        asset.status_trigger_id = (
            trigger.record_id if trigger is not None and transition.guard is not None else None
        )
        if requested_status is AssetStatus.DISPOSED:
            asset.disposal_date = self._clock.today()
        elif current is AssetStatus.DISPOSED:
            asset.disposal_date = None
        self._set_derived(asset, previous=before.accumulated_depreciation)

        is_override = transition.action == "lifecycle_override"
        record = self._finish(
            principal,
            asset,
            AuditAction.ASSET_LIFECYCLE_OVERRIDE if is_override else AuditAction.ASSET_STATUS_CHANGED,
            before,
            compliance_event=is_override or requested_status.is_terminal,
        )
        logger.info(
            "asset_status_changed",
            extra={
                "asset_id": str(asset.id),
                "from_status": current.value,
                "to_status": requested_status.value,
                "transition": transition.action,
            },
        )
        return record

    def apply_field_changes(
        self,
        principal: Principal,
        asset: Asset,
        changes: dict[str, object],
    ) -> AssetRecord:
        """
        Set registry fields (location, custodian, condition) on a locked,
        non-terminal asset inside the caller's unit of work.
        """
        self._lifecycle.validate_condition_change(AssetStatus(asset.status))
        before = asset.to_dto()
        for name, value in changes.items():
            setattr(asset, name, value.value if name in _ENUM_FIELDS else value)
        return self._finish(principal, asset, AuditAction.ASSET_UPDATED, before)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(
        self,
        principal: Principal,
        asset_id: UUID,
        version: int,
        triggering_record_id: UUID | None = None,
    ) -> AssetRecord | None:
        """
        Remove an asset.

        Physical when the asset has no financial history (returns None);
        otherwise logical, as the ``disposed`` transition, which needs an
        approved disposal movement (returns the disposed record). An asset
        already disposed is returned unchanged.
        """
        with self._unit_of_work("asset.delete", principal, asset_id):
            asset = self.load_for_update(asset_id)
            self._auth.authorize(principal, Action.ASSET_DELETE, asset).require()
            self._operational_tenant(asset.tenant_id)
            self._check_version(asset, version)

            if AssetStatus(asset.status) is AssetStatus.DISPOSED:
                # Already logically deleted by its approved disposal movement
                record = asset.to_dto()
            elif self._has_financial_history(asset):
                trigger = self._load_trigger(asset, triggering_record_id, AssetStatus.DISPOSED)
                record = self.apply_transition(
                    principal, asset, AssetStatus.DISPOSED, trigger,
                )
            else:
                self._audit.append(
                    tenant_id=asset.tenant_id,
                    entity_type="asset",
                    entity_id=asset.id,
                    action=AuditAction.ASSET_DELETED,
                    actor_id=principal.user_id,
                    before=asset.to_dto(),
                    compliance_event=True,
                )
                self._session.delete(asset)
                self._session.flush()
                record = None
                logger.info("asset_deleted", extra={"asset_id": str(asset_id)})
        return record

    def _has_financial_history(self, asset: Asset) -> bool:
        if asset.purchase_cost is not None or asset.accumulated_depreciation > 0:
            return True
        for model in (AssetMovement, WorkOrder):
            found = self._session.execute(
                select(model.id).where(model.asset_id == asset.id).limit(1)
            ).first()
            if found is not None:
                return True
        return False

    # ------------------------------------------------------------------
    # Usage, compliance, depreciation refresh
    # ------------------------------------------------------------------

    def record_usage(
        self,
        principal: Principal,
        asset_id: UUID,
        version: int,
        units_to_date: Decimal,
    ) -> AssetRecord:
        """Advance the units-of-production usage meter (never backwards)."""
        with self._unit_of_work("asset.record_usage", principal, asset_id):
            asset = self.load_for_update(asset_id)
            self._auth.authorize(principal, Action.ASSET_UPDATE, asset).require()
            self._operational_tenant(asset.tenant_id)
            self._check_version(asset, version)

            if AssetStatus(asset.status).is_terminal:
                raise InvalidAssetDataError(
                    "units_to_date", f"usage is frozen on a {asset.status} asset"
                )
            if units_to_date < 0:
                raise InvalidAssetDataError("units_to_date", "must not be negative")
            if asset.units_to_date is not None and units_to_date < asset.units_to_date:
                raise InvalidAssetDataError(
                    "units_to_date",
                    f"usage meter cannot go back from {asset.units_to_date}",
                )

            before = asset.to_dto()
            asset.units_to_date = units_to_date
            self._set_derived(asset, previous=before.accumulated_depreciation)
            record = self._finish(principal, asset, AuditAction.ASSET_USAGE_RECORDED, before)
        return record

    def record_compliance_audit(
        self,
        principal: Principal,
        asset_id: UUID,
        version: int,
        audit_date: date,
        compliance_status: ComplianceStatus,
    ) -> AssetRecord:
        """Record a physical/compliance audit and schedule the next one."""
        with self._unit_of_work("asset.record_compliance_audit", principal, asset_id):
            asset = self.load_for_update(asset_id)
            self._auth.authorize(principal, Action.ASSET_UPDATE, asset).require()
            self._operational_tenant(asset.tenant_id)
            self._check_version(asset, version)

            before = asset.to_dto()
            interval = timedelta(days=self._policy.compliance.audit_interval_days)
            asset.last_audit_date = audit_date
            asset.next_audit_date = audit_date + interval
            asset.compliance_status = ComplianceStatus(compliance_status).value
            record = self._finish(
                principal, asset, AuditAction.ASSET_COMPLIANCE_AUDITED, before,
                compliance_event=True,
            )
        return record

    def refresh_depreciation(self, principal: Principal, asset_id: UUID) -> AssetRecord:
        """Recompute derived financial fields as of today; audited when they move."""
        with self._unit_of_work("asset.refresh_depreciation", principal, asset_id):
            asset = self.load_for_update(asset_id)
            self._auth.authorize(principal, Action.ASSET_UPDATE, asset).require()
            self._operational_tenant(asset.tenant_id)

            before = asset.to_dto()
            self._set_derived(asset, previous=before.accumulated_depreciation)
            if (
                asset.accumulated_depreciation == before.accumulated_depreciation
                and asset.book_value == before.book_value
            ):
                return before
            record = self._finish(
                principal, asset, AuditAction.ASSET_DEPRECIATION_REFRESHED, before,
            )
        return record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, principal: Principal, asset_id: UUID) -> AssetRecord:
        asset = self._session.get(Asset, asset_id)
        if asset is None:
            raise AssetNotFoundError(str(asset_id))
        self._auth.authorize(principal, Action.ASSET_READ, asset).require()
        return asset.to_dto()

    def audit_trail(self, principal: Principal, asset_id: UUID) -> AuditTrace:
        asset = self._session.get(Asset, asset_id)
        if asset is None:
            raise AssetNotFoundError(str(asset_id))
        self._auth.authorize(principal, Action.AUDIT_READ, asset).require()
        return self._audit.trace("asset", asset_id)

    def query(
        self,
        principal: Principal,
        filters: AssetFilters | None = None,
        pagination: Pagination | None = None,
    ) -> Page[AssetRecord]:
        """
        Tenant-scoped, filtered, newest-first page of assets.

        The tenant filter comes from ``AuthorizationEngine.scope_filter``;
        ``filters.tenant_id`` only narrows further for super_admin.
        """
        filters = filters or AssetFilters()
        pagination = pagination or Pagination()
        self._auth.authorize(
            principal, Action.ASSET_READ, ResourceRef(principal.tenant_id),
        ).require()

        scope = self._auth.scope_filter(principal)
        stmt = scope.apply(select(Asset), Asset.tenant_id)
        if scope.unrestricted and filters.tenant_id is not None:
            stmt = stmt.where(Asset.tenant_id == filters.tenant_id)

        if filters.status is not None:
            stmt = stmt.where(Asset.status == AssetStatus(filters.status).value)
        if filters.condition is not None:
            stmt = stmt.where(Asset.condition == filters.condition.value)
        if filters.criticality is not None:
            stmt = stmt.where(Asset.criticality == filters.criticality.value)
        if filters.category_code is not None:
            stmt = stmt.where(Asset.category_code == filters.category_code)
        if filters.location_id is not None:
            stmt = stmt.where(Asset.location_id == filters.location_id)
        if filters.assigned_to_id is not None:
            stmt = stmt.where(Asset.assigned_to_id == filters.assigned_to_id)
        if filters.search:
            term = filters.search.strip()
            stmt = stmt.where(
                or_(
                    Asset.name.icontains(term, autoescape=True),
                    Asset.asset_number.icontains(term, autoescape=True),
                    Asset.serial_number.icontains(term, autoescape=True),
                )
            )

        total = self._session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

        limit = self._policy.pagination.clamp(pagination.limit)
        page = max(pagination.page, 1)
        rows = self._session.execute(
            stmt.order_by(Asset.created_at.desc(), Asset.asset_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()
        return Page(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            page=page,
            limit=limit,
        )

    # ------------------------------------------------------------------
    # Helpers shared with MovementService / WorkOrderService
    # ------------------------------------------------------------------

    def load_for_update(self, asset_id: UUID) -> Asset:
        """Read the asset under a row lock, refreshing any cached copy."""
        asset = self._session.execute(
            select(Asset)
            .where(Asset.id == asset_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if asset is None:
            raise AssetNotFoundError(str(asset_id))
        return asset

    def _check_version(self, asset: Asset, version: int) -> None:
        if asset.version != version:
            logger.info(
                "asset_version_conflict",
                extra={
                    "asset_id": str(asset.id),
                    "expected_version": version,
                    "actual_version": asset.version,
                },
            )
            raise ConcurrentModificationError(
                "asset", str(asset.id),
                expected_version=version, actual_version=asset.version,
            )

    def open_work_orders(self, asset_id: UUID, excluding: UUID | None = None) -> int:
        """Work orders of the asset that are neither completed nor cancelled."""
        stmt = select(func.count(WorkOrder.id)).where(
            WorkOrder.asset_id == asset_id,
            WorkOrder.status.not_in(WORK_ORDER_LIFECYCLE.terminal_states),
        )
        if excluding is not None:
            stmt = stmt.where(WorkOrder.id != excluding)
        return self._session.execute(stmt).scalar_one()

    def _load_trigger(
        self,
        asset: Asset,
        record_id: UUID | None,
        requested: AssetStatus,
    ) -> Trigger | None:
        """
        Load the record named as a transition's trigger.

        A trigger drives one status change only. An approved movement was
        applied by its own approval. A completed work order can only end
        the maintenance period it was completed in.
        """
        if record_id is None:
            return None
        record = self._session.get(AssetMovement, record_id)
        if record is None:
            record = self._session.get(WorkOrder, record_id)
        if record is None:
            raise ValidationError(
                f"Triggering record {record_id} not found",
                field="triggering_record_id",
            )
        if record.asset_id != asset.id:
            raise ValidationError(
                f"Triggering record {record_id} belongs to another asset",
                field="triggering_record_id",
            )

        if isinstance(record, AssetMovement):
            if record.applied_at is not None:
                raise IllegalTransitionError(
                    "asset", asset.status, requested.value,
                    f"movement {record_id} was already applied",
                )
            return record.to_trigger()

        current = AssetStatus(asset.status)
        if current is AssetStatus.MAINTENANCE and record.status == WorkOrderStatus.COMPLETED.value:
            if (
                asset.status_trigger_id is None
                or record.maintenance_trigger_id != asset.status_trigger_id
            ):
                raise IllegalTransitionError(
                    "asset", current.value, requested.value,
                    f"work order {record_id} was not completed during the current maintenance",
                )
        return record.to_trigger(
            other_open=self.open_work_orders(asset.id, excluding=record.id),
        )

    def _set_derived(self, asset: Asset, previous: Decimal | None = None) -> None:
        """
        Write accumulated depreciation and book value from the engine.

        Incomplete financial data yields zero depreciation. ``previous`` is
        the already-recognized amount, which may never decrease.
        """
        if asset.purchase_cost is None:
            accumulated, book = _ZERO, _ZERO
        elif asset.purchase_date is None or asset.useful_life_years is None:
            accumulated, book = _ZERO, asset.purchase_cost
        else:
            result = self._depreciation.compute_as_of(asset, self._clock.today())
            accumulated, book = result.accumulated_depreciation, result.book_value

        if previous is not None and accumulated < previous:
            raise ValidationError(
                f"Change would lower recognized accumulated depreciation "
                f"from {previous} to {accumulated}",
                field="accumulated_depreciation",
            )
        asset.accumulated_depreciation = accumulated
        asset.book_value = book

    def _finish(
        self,
        principal: Principal,
        asset: Asset,
        action: AuditAction,
        before: AssetRecord,
        *,
        compliance_event: bool = False,
    ) -> AssetRecord:
        """Stamp, flush (version bump) and audit a mutated asset."""
        asset.updated_at = self._clock.now()
        asset.updated_by_id = principal.user_id
        self._session.flush()
        record = asset.to_dto()
        self._audit.append(
            tenant_id=asset.tenant_id,
            entity_type="asset",
            entity_id=asset.id,
            action=action,
            actor_id=principal.user_id,
            before=before,
            after=record,
            compliance_event=compliance_event,
        )
        return record
