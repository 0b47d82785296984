"""
IdentifierAllocator -- collision-free human-readable codes.

Responsibility:
    Hands out tenant codes, employee IDs, asset numbers and work-order
    numbers that are unique within their scope even when two requests
    race for the same base.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by TenantService, AssetLedger and WorkOrderService inside their
    own unit of work.

Invariants enforced:
    - The store's unique constraint is the only arbiter. Nothing is
      reserved ahead of time: the code is inserted together with the
      entity that owns it, so a rollback of the caller's transaction
      releases the code with it.
    - Each attempt runs inside a SAVEPOINT, so a conflict rolls back only
      that attempt and never the caller's earlier work.
    - Attempts are bounded by ``IdentifierPolicy.max_attempts``.

Failure modes:
    - AllocationExhaustedError (via ``allocate``) when every attempt
      collided.
    - IntegrityError from a different constraint (e.g. a duplicate email)
      is re-raised unchanged for the caller to translate.
"""

from __future__ import annotations

from typing import Callable, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.domain.enums import IdentifierKind
from asset_kernel.domain.identifiers import (
    Allocated,
    Conflict,
    Exhausted,
    IdentifierFormat,
    asset_number_prefix,
    derive_base,
    work_order_prefix,
)
from asset_kernel.domain.policies import IdentifierPolicy
from asset_kernel.exceptions import AllocationExhaustedError
from asset_kernel.logging_config import get_logger
from asset_kernel.models import Asset, Tenant, UserAccount, WorkOrder

logger = get_logger("services.identifier_allocator")

T = TypeVar("T")

# kind -> (model, code column name)
_SCOPES = {
    IdentifierKind.TENANT_CODE: (Tenant, "code"),
    IdentifierKind.EMPLOYEE_ID: (UserAccount, "employee_id"),
    IdentifierKind.ASSET_NUMBER: (Asset, "asset_number"),
    IdentifierKind.WORK_ORDER_NUMBER: (WorkOrder, "work_order_number"),
}


class IdentifierAllocator:
    """
    Optimistic insert-and-retry allocation.

    ``build`` receives the candidate code and returns a new, unsaved ORM
    entity carrying it. The allocator adds and flushes that entity; on a
    unique-constraint conflict it discards it and asks ``build`` again
    with the next candidate.

    Usage:
        allocated = allocator.allocate(
            tenant_id, IdentifierKind.ASSET_NUMBER, "Laptops",
            lambda code: Asset(asset_number=code, ...),
        )
        asset = allocated.entity
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: IdentifierPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or IdentifierPolicy()

    def format_for(self, kind: IdentifierKind) -> IdentifierFormat:
        return IdentifierFormat(
            kind=kind,
            suffix_width=self._policy.suffix_widths.get(kind, 0),
            unsuffixed_first=kind is IdentifierKind.TENANT_CODE,
        )

    def prefix_for(
        self,
        kind: IdentifierKind,
        candidate_base: str | None,
        year: int | None = None,
    ) -> str:
        """
        The fixed part of every code of this kind for ``candidate_base``.

        ``candidate_base`` is the company name for tenant codes, the tenant
        code for employee IDs and the category for asset numbers; work-order
        numbers ignore it.
        """
        year = year or self._clock.now().year
        if kind is IdentifierKind.TENANT_CODE:
            return derive_base(
                candidate_base, self._policy.base_length, self._policy.pad_char
            )
        if kind is IdentifierKind.EMPLOYEE_ID:
            return (candidate_base or "").upper()
        if kind is IdentifierKind.ASSET_NUMBER:
            return asset_number_prefix(candidate_base, year)
        return work_order_prefix(year)

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def try_allocate(
        self,
        tenant_id: UUID | None,
        kind: IdentifierKind,
        candidate_base: str | None,
        build: Callable[[str], T],
        *,
        year: int | None = None,
    ) -> Allocated[T] | Exhausted:
        """Allocate a code and persist its entity, or report exhaustion."""
        prefix = self.prefix_for(kind, candidate_base, year)
        fmt = self.format_for(kind)
        attempt = self._start_hint(tenant_id, kind, prefix)

        for tries in range(1, self._policy.max_attempts + 1):
            code = fmt.render(prefix, attempt)
            outcome = self._attempt(tenant_id, kind, code, build)
            if isinstance(outcome, Allocated):
                logger.debug(
                    "identifier_allocated",
                    extra={
                        "kind": kind.value,
                        "code": code,
                        "attempts": tries,
                    },
                )
                return Allocated(code=code, entity=outcome.entity, attempts=tries)

            logger.debug(
                "identifier_conflict_retry",
                extra={"kind": kind.value, "code": outcome.code, "attempt": tries},
            )
            # Jump past everything committed since the first hint
            attempt = max(attempt + 1, self._start_hint(tenant_id, kind, prefix))

        logger.warning(
            "identifier_allocation_exhausted",
            extra={
                "kind": kind.value,
                "prefix": prefix,
                "attempts": self._policy.max_attempts,
            },
        )
        return Exhausted(kind=kind, prefix=prefix, attempts=self._policy.max_attempts)

    def allocate(
        self,
        tenant_id: UUID | None,
        kind: IdentifierKind,
        candidate_base: str | None,
        build: Callable[[str], T],
        *,
        year: int | None = None,
    ) -> Allocated[T]:
        """
        Like ``try_allocate`` but raises on exhaustion.

        Raises:
            AllocationExhaustedError: max_attempts candidates all collided.
        """
        outcome = self.try_allocate(tenant_id, kind, candidate_base, build, year=year)
        if isinstance(outcome, Exhausted):
            raise AllocationExhaustedError(kind.value, outcome.prefix, outcome.attempts)
        return outcome

    def _attempt(
        self,
        tenant_id: UUID | None,
        kind: IdentifierKind,
        code: str,
        build: Callable[[str], T],
    ) -> Allocated[T] | Conflict:
        entity = build(code)
        savepoint = self._session.begin_nested()
        try:
            self._session.add(entity)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            if not self._exists(tenant_id, kind, code):
                # Some other constraint failed; not ours to retry
                raise
            return Conflict(code=code)
        savepoint.commit()
        return Allocated(code=code, entity=entity, attempts=1)

    # ------------------------------------------------------------------
    # Scope queries
    # ------------------------------------------------------------------

    def _scoped(self, stmt, tenant_id: UUID | None, kind: IdentifierKind):
        model, _ = _SCOPES[kind]
        if kind.is_global:
            return stmt
        return stmt.where(model.tenant_id == tenant_id)

    def _exists(self, tenant_id: UUID | None, kind: IdentifierKind, code: str) -> bool:
        model, column_name = _SCOPES[kind]
        column = getattr(model, column_name)
        stmt = self._scoped(select(column).where(column == code), tenant_id, kind)
        return self._session.execute(stmt.limit(1)).first() is not None

    def _start_hint(self, tenant_id: UUID | None, kind: IdentifierKind, prefix: str) -> int:
        """
        First attempt number worth trying: past the codes already taken.

        Only a hint; a code freed or skipped in between is simply not reused.
        """
        model, column_name = _SCOPES[kind]
        column = getattr(model, column_name)
        stmt = self._scoped(
            select(func.count()).select_from(model).where(
                column.startswith(prefix, autoescape=True)
            ),
            tenant_id,
            kind,
        )
        taken = self._session.execute(stmt).scalar_one()
        if kind is IdentifierKind.TENANT_CODE:
            # Attempt 0 is the bare base; BASE1, BASE2 ... follow
            return taken
        return taken + 1
