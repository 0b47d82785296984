"""
AuthorizationEngine -- closed-rule role/permission decisions.

Responsibility:
    Decide whether an authenticated principal may perform an action on a
    tenant-owned resource, and produce the tenant filter every listing
    query must carry.

Architecture position:
    Kernel > Domain. Pure: no I/O, no session, no ambient "current user".
    Services call ``authorize`` before touching storage and
    ``Decision.require()`` to stop on a deny.

Rule precedence (first match wins):
    0. Inactive principal            -> deny(InactivePrincipal)
    1. Tenant mismatch (not super_admin) -> deny(CrossTenantAccess)
    2. Action capability in principal.permissions -> allow
    3. principal.role >= action's role floor -> allow
    4. otherwise deny(MissingPermission) when the action has no role floor,
       deny(InsufficientRole) when it does.

``authorize`` never raises for a denial; it returns a Decision.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from asset_kernel.exceptions import (
    AuthorizationError,
    CrossTenantAccessError,
    InactivePrincipalError,
    InsufficientRoleError,
    MissingPermissionError,
)
from asset_kernel.logging_config import get_logger

logger = get_logger("domain.authorization")


class Role(str, Enum):
    """Fixed, ordered role set. Only SUPER_ADMIN crosses tenants."""
    VIEWER = "viewer"
    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @property
    def rank(self) -> int:
        return _ROLE_ORDER.index(self)

    def at_least(self, floor: "Role") -> bool:
        return self.rank >= floor.rank


_ROLE_ORDER = (
    Role.VIEWER,
    Role.USER,
    Role.MANAGER,
    Role.ADMIN,
    Role.SUPER_ADMIN,
)


class Capability:
    """Capability tags a principal may hold explicitly."""
    COMPANY_READ = "company:read"
    COMPANY_WRITE = "company:write"
    COMPANY_MANAGE_ALL = "company:manage_all"
    USER_READ = "user:read"
    USER_WRITE = "user:write"
    USER_MANAGE = "user:manage"
    ASSET_READ = "asset:read"
    ASSET_WRITE = "asset:write"
    ASSET_DELETE = "asset:delete"
    ASSET_TRANSITION = "asset:transition"
    ASSET_LIFECYCLE_OVERRIDE = "asset:lifecycle_override"
    MOVEMENT_REQUEST = "movement:request"
    MOVEMENT_APPROVE = "movement:approve"
    WORK_ORDER_MANAGE = "work_order:manage"
    AUDIT_READ = "audit:read"

    @classmethod
    def all(cls) -> frozenset[str]:
        return frozenset(
            v for k, v in vars(cls).items() if k.isupper() and isinstance(v, str)
        )


@dataclass(frozen=True)
class ActionPolicy:
    label: str
    capability: str
    # None means the capability must be held explicitly
    min_role: Role | None


class Action(Enum):
    """Every guarded operation, with the capability and role floor it needs."""
    ASSET_READ = ActionPolicy("asset.read", Capability.ASSET_READ, Role.VIEWER)
    ASSET_CREATE = ActionPolicy("asset.create", Capability.ASSET_WRITE, Role.USER)
    ASSET_UPDATE = ActionPolicy("asset.update", Capability.ASSET_WRITE, Role.USER)
    ASSET_DELETE = ActionPolicy("asset.delete", Capability.ASSET_DELETE, Role.ADMIN)
    ASSET_TRANSITION = ActionPolicy("asset.transition", Capability.ASSET_TRANSITION, Role.MANAGER)
    ASSET_LIFECYCLE_OVERRIDE = ActionPolicy("asset.lifecycle_override", Capability.ASSET_LIFECYCLE_OVERRIDE, None)
    MOVEMENT_REQUEST = ActionPolicy("movement.request", Capability.MOVEMENT_REQUEST, Role.USER)
    MOVEMENT_APPROVE = ActionPolicy("movement.approve", Capability.MOVEMENT_APPROVE, Role.MANAGER)
    WORK_ORDER_MANAGE = ActionPolicy("work_order.manage", Capability.WORK_ORDER_MANAGE, Role.USER)
    WORK_ORDER_COMPLETE = ActionPolicy("work_order.complete", Capability.WORK_ORDER_MANAGE, Role.MANAGER)
    AUDIT_READ = ActionPolicy("audit.read", Capability.AUDIT_READ, Role.MANAGER)
    USER_INVITE = ActionPolicy("user.invite", Capability.USER_MANAGE, Role.ADMIN)
    TENANT_MANAGE = ActionPolicy("tenant.manage", Capability.COMPANY_MANAGE_ALL, Role.SUPER_ADMIN)

    @property
    def label(self) -> str:
        return self.value.label

    @property
    def capability(self) -> str:
        return self.value.capability

    @property
    def min_role(self) -> Role | None:
        return self.value.min_role


class DenyReason(str, Enum):
    CROSS_TENANT_ACCESS = "CrossTenantAccess"
    INSUFFICIENT_ROLE = "InsufficientRole"
    MISSING_PERMISSION = "MissingPermission"
    INACTIVE_PRINCIPAL = "InactivePrincipal"


_DENY_ERRORS: dict[DenyReason, type[AuthorizationError]] = {
    DenyReason.CROSS_TENANT_ACCESS: CrossTenantAccessError,
    DenyReason.INSUFFICIENT_ROLE: InsufficientRoleError,
    DenyReason.MISSING_PERMISSION: MissingPermissionError,
    DenyReason.INACTIVE_PRINCIPAL: InactivePrincipalError,
}


@dataclass(frozen=True)
class Principal:
    """
    An already-authenticated caller.

    The kernel trusts this value as handed in; it is never read from an
    ambient request context.
    """
    user_id: UUID
    tenant_id: UUID
    role: Role
    permissions: frozenset[str] = field(default_factory=frozenset)
    is_active: bool = True

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN


class TenantOwned(Protocol):
    tenant_id: UUID


@dataclass(frozen=True)
class ResourceRef:
    """Stand-in for a resource that does not exist yet (e.g. on create)."""
    tenant_id: UUID


@dataclass(frozen=True)
class Decision:
    allowed: bool
    action: Action
    principal_id: UUID
    reason: DenyReason | None = None
    detail: str = ""

    def __post_init__(self) -> None:
        if not self.allowed and self.reason is None:
            raise ValueError("A denied Decision must carry a DenyReason")

    def __bool__(self) -> bool:
        return self.allowed

    def require(self) -> "Decision":
        """Return self if allowed, else raise the matching AuthorizationError."""
        if self.allowed:
            return self
        raise _DENY_ERRORS[self.reason](
            principal_id=str(self.principal_id),
            action=self.action.label,
            detail=self.detail,
        )


@dataclass(frozen=True)
class ScopeFilter:
    """
    Tenant narrowing derived from a principal.

    ``tenant_id`` is None only for super_admin (unrestricted).
    """
    tenant_id: UUID | None

    @property
    def unrestricted(self) -> bool:
        return self.tenant_id is None

    def __call__(self, resource: TenantOwned) -> bool:
        return self.tenant_id is None or resource.tenant_id == self.tenant_id

    def apply(self, stmt: Any, tenant_column: Any) -> Any:
        """Add ``WHERE tenant_column = :tenant_id`` to a select, when restricted."""
        if self.tenant_id is None:
            return stmt
        return stmt.where(tenant_column == self.tenant_id)


class AuthorizationEngine:
    """Stateless evaluator of the closed rule set."""

    def authorize(
        self,
        principal: Principal,
        action: Action,
        resource: TenantOwned,
    ) -> Decision:
        decision = self._evaluate(principal, action, resource)
        if not decision.allowed:
            logger.warning(
                "authorization_denied",
                extra={
                    "principal_id": str(principal.user_id),
                    "principal_tenant_id": str(principal.tenant_id),
                    "resource_tenant_id": str(resource.tenant_id),
                    "role": principal.role.value,
                    "action": action.label,
                    "reason": decision.reason.value if decision.reason else None,
                },
            )
        return decision

    def _evaluate(
        self,
        principal: Principal,
        action: Action,
        resource: TenantOwned,
    ) -> Decision:
        def deny(reason: DenyReason, detail: str) -> Decision:
            return Decision(False, action, principal.user_id, reason, detail)

        if not principal.is_active:
            return deny(DenyReason.INACTIVE_PRINCIPAL, "principal is deactivated")

        if not principal.is_super_admin and principal.tenant_id != resource.tenant_id:
            return deny(
                DenyReason.CROSS_TENANT_ACCESS,
                f"resource belongs to tenant {resource.tenant_id}",
            )

        if action.capability in principal.permissions:
            return Decision(True, action, principal.user_id)

        floor = action.min_role
        if floor is None:
            if principal.is_super_admin:
                return Decision(True, action, principal.user_id)
            return deny(
                DenyReason.MISSING_PERMISSION,
                f"requires capability '{action.capability}'",
            )
        if principal.role.at_least(floor):
            return Decision(True, action, principal.user_id)
        return deny(
            DenyReason.INSUFFICIENT_ROLE,
            f"requires role '{floor.value}' or capability '{action.capability}'",
        )

    def scope_filter(self, principal: Principal) -> ScopeFilter:
        if principal.is_super_admin:
            return ScopeFilter(tenant_id=None)
        return ScopeFilter(tenant_id=principal.tenant_id)
