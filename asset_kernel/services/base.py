"""
RegistryService -- shared unit-of-work handling for the registry services.

Responsibility:
    Gives every mutating service the same transaction contract: one
    operation is one atomic unit of work, committed on success and rolled
    back on any failure when the service owns the session
    (``auto_commit=True``). With ``auto_commit=False`` the caller owns
    commit/rollback and the service only flushes.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Failure translation (inside ``_unit_of_work``):
    - StaleDataError      -> ConcurrentModificationError
    - IntegrityError      -> ValidationError (a constraint the allocator
                             does not own, e.g. a duplicate email)
    - other DBAPIError    -> StorageError
    Kernel exceptions pass through unchanged.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from asset_kernel.domain.authorization import AuthorizationEngine, Principal
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.domain.policies import RegistryPolicy
from asset_kernel.exceptions import (
    ConcurrentModificationError,
    InactiveTenantError,
    StorageError,
    TenantNotFoundError,
    ValidationError,
)
from asset_kernel.logging_config import LogContext, get_logger
from asset_kernel.models import Tenant

logger = get_logger("services.base")


class RegistryService:
    """Base for AssetLedger, MovementService, WorkOrderService, TenantService."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: RegistryPolicy | None = None,
        *,
        authorization: AuthorizationEngine | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or RegistryPolicy()
        self._auth = authorization or AuthorizationEngine()
        self._auto_commit = auto_commit

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def policy(self) -> RegistryPolicy:
        return self._policy

    @contextmanager
    def _unit_of_work(
        self,
        operation: str,
        principal: Principal | None = None,
        entity_id: UUID | None = None,
        entity_type: str = "asset",
    ) -> Iterator[None]:
        bound = LogContext.get_all()
        with LogContext.bind(
            correlation_id=bound.get("correlation_id") or uuid4(),
            tenant_id=principal.tenant_id if principal else None,
            actor_id=principal.user_id if principal else None,
            entity_id=entity_id,
        ):
            t0 = time.monotonic()
            try:
                try:
                    yield
                    if self._auto_commit:
                        self._session.commit()
                    else:
                        self._session.flush()
                except StaleDataError as exc:
                    raise ConcurrentModificationError(
                        entity_type, str(entity_id) if entity_id else "unknown"
                    ) from exc
                except IntegrityError as exc:
                    raise ValidationError(
                        f"Constraint violated during {operation}: {exc.orig}"
                    ) from exc
                except DBAPIError as exc:
                    raise StorageError(operation, str(exc.orig)) from exc
            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                logger.warning(
                    "registry_operation_failed",
                    extra={"operation": operation, "duration_ms": duration_ms},
                    exc_info=True,
                )
                raise
            logger.debug(
                "registry_operation_completed",
                extra={
                    "operation": operation,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )

    def _operational_tenant(self, tenant_id: UUID) -> Tenant:
        """Load a tenant that may accept writes, or raise."""
        tenant = self._session.get(Tenant, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(str(tenant_id))
        if not tenant.is_active:
            raise InactiveTenantError(str(tenant_id), "tenant is deactivated")
        if not tenant.is_operational(self._clock.now()):
            raise InactiveTenantError(str(tenant_id), "subscription has expired")
        return tenant
