"""
TenantService -- tenant sign-up, user invitations and tenant activation.

Sign-up creates the tenant (global ``tenant_code``) and its first admin
(tenant-scoped ``employee_id``) in one unit of work. New users get their
permission set from the configured role defaults unless the invitation
names one explicitly; the authorization rules never read those defaults.
Authentication is external: this service stores identities and builds
``Principal`` values from them.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from asset_kernel.domain.authorization import (
    Action,
    Capability,
    Principal,
    ResourceRef,
    Role,
)
from asset_kernel.domain.dtos import (
    TenantOnboarding,
    TenantRecord,
    TenantRegistration,
    UserInvite,
    UserRecord,
)
from asset_kernel.domain.enums import AuditAction, IdentifierKind
from asset_kernel.exceptions import (
    InsufficientRoleError,
    TenantNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from asset_kernel.logging_config import get_logger
from asset_kernel.models import Tenant, UserAccount
from asset_kernel.services.audit_recorder import AuditRecorder
from asset_kernel.services.base import RegistryService
from asset_kernel.services.identifier_allocator import IdentifierAllocator

logger = get_logger("services.tenant")


class TenantService(RegistryService):

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._audit = AuditRecorder(self._session, self._clock)
        self._allocator = IdentifierAllocator(
            self._session, self._clock, self._policy.identifiers,
        )

    @property
    def auditor(self) -> AuditRecorder:
        return self._audit

    def register(self, registration: TenantRegistration) -> TenantOnboarding:
        """Create a tenant and its first admin user."""
        company_name = (registration.company_name or "").strip()
        if not company_name:
            raise ValidationError("Company name must not be empty", field="company_name")

        with self._unit_of_work("tenant.register", entity_type="tenant"):
            self._check_email(registration.admin_email)
            now = self._clock.now()

            tenant = self._allocator.allocate(
                None,
                IdentifierKind.TENANT_CODE,
                company_name,
                lambda code: Tenant(
                    code=code,
                    name=company_name,
                    is_active=True,
                    subscription_plan=registration.subscription_plan,
                    subscription_expires_at=registration.subscription_expires_at,
                    created_at=now,
                    updated_at=now,
                ),
            ).entity

            admin = self._create_user(
                tenant,
                email=registration.admin_email,
                first_name=registration.admin_first_name,
                last_name=registration.admin_last_name,
                role=Role.ADMIN,
                permissions=self._policy.default_permissions_for(Role.ADMIN),
                actor_id=None,
            )
            tenant.created_by_id = admin.id
            tenant.updated_by_id = admin.id
            self._session.flush()

            onboarding = TenantOnboarding(tenant=tenant.to_dto(), admin=admin.to_dto())
            self._audit.append(
                tenant_id=tenant.id,
                entity_type="tenant",
                entity_id=tenant.id,
                action=AuditAction.TENANT_REGISTERED,
                actor_id=admin.id,
                after=onboarding.tenant,
                compliance_event=True,
            )
            logger.info(
                "tenant_registered",
                extra={"tenant_id": str(tenant.id), "tenant_code": tenant.code},
            )
        return onboarding

    def invite_user(self, principal: Principal, invite: UserInvite) -> UserRecord:
        """
        Add a user to the caller's tenant (any tenant, for super_admin).

        Raises:
            InsufficientRoleError: a non-super_admin tries to create a
                super_admin.
            ValidationError: duplicate email or unknown capability tags.
        """
        tenant_id = principal.tenant_id
        if principal.is_super_admin and invite.tenant_id is not None:
            tenant_id = invite.tenant_id
        role = Role(invite.role)

        with self._unit_of_work("user.invite", principal, entity_type="user"):
            self._auth.authorize(principal, Action.USER_INVITE, ResourceRef(tenant_id)).require()
            if role is Role.SUPER_ADMIN and not principal.is_super_admin:
                raise InsufficientRoleError(
                    principal_id=str(principal.user_id),
                    action=Action.USER_INVITE.label,
                    detail="only super_admin may create a super_admin",
                )
            tenant = self._operational_tenant(tenant_id)
            permissions = (
                frozenset(invite.permissions)
                if invite.permissions is not None
                else self._policy.default_permissions_for(role)
            )
            unknown = permissions - Capability.all()
            if unknown:
                raise ValidationError(
                    f"Unknown capabilities: {', '.join(sorted(unknown))}",
                    field="permissions",
                )
            self._check_email(invite.email)

            user = self._create_user(
                tenant,
                email=invite.email,
                first_name=invite.first_name,
                last_name=invite.last_name,
                role=role,
                permissions=permissions,
                actor_id=principal.user_id,
            )
            record = user.to_dto()
        return record

    def set_tenant_active(
        self,
        principal: Principal,
        tenant_id: UUID,
        active: bool,
    ) -> TenantRecord:
        with self._unit_of_work("tenant.set_active", principal, tenant_id, "tenant"):
            self._auth.authorize(principal, Action.TENANT_MANAGE, ResourceRef(tenant_id)).require()
            tenant = self._session.execute(
                select(Tenant)
                .where(Tenant.id == tenant_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if tenant is None:
                raise TenantNotFoundError(str(tenant_id))
            if tenant.is_active == active:
                return tenant.to_dto()

            before = tenant.to_dto()
            tenant.is_active = active
            tenant.updated_at = self._clock.now()
            tenant.updated_by_id = principal.user_id
            self._session.flush()
            record = tenant.to_dto()
            self._audit.append(
                tenant_id=tenant.id,
                entity_type="tenant",
                entity_id=tenant.id,
                action=AuditAction.TENANT_ACTIVATED if active else AuditAction.TENANT_DEACTIVATED,
                actor_id=principal.user_id,
                before=before,
                after=record,
                compliance_event=True,
            )
            logger.warning(
                "tenant_activation_changed",
                extra={"tenant_id": str(tenant_id), "is_active": active},
            )
        return record

    def get_tenant(self, principal: Principal, tenant_id: UUID) -> TenantRecord:
        tenant = self._session.get(Tenant, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(str(tenant_id))
        self._auth.authorize(principal, Action.ASSET_READ, tenant).require()
        return tenant.to_dto()

    def principal_for(self, user: UserAccount | UserRecord | UUID) -> Principal:
        """Build the Principal value object from a stored user."""
        if isinstance(user, UUID):
            found = self._session.get(UserAccount, user)
            if found is None:
                raise UserNotFoundError(str(user))
            user = found
        return Principal(
            user_id=user.id,
            tenant_id=user.tenant_id,
            role=Role(user.role),
            permissions=frozenset(user.permissions or ()),
            is_active=user.is_active,
        )

    # ------------------------------------------------------------------

    def _check_email(self, email: str) -> None:
        if not email or "@" not in email:
            raise ValidationError(f"Invalid email address: {email!r}", field="email")
        taken = self._session.execute(
            select(UserAccount.id).where(func.lower(UserAccount.email) == email.lower())
        ).first()
        if taken is not None:
            raise ValidationError(f"Email already registered: {email}", field="email")

    def _create_user(
        self,
        tenant: Tenant,
        *,
        email: str,
        first_name: str,
        last_name: str,
        role: Role,
        permissions: frozenset[str],
        actor_id: UUID | None,
    ) -> UserAccount:
        now = self._clock.now()
        user = self._allocator.allocate(
            tenant.id,
            IdentifierKind.EMPLOYEE_ID,
            tenant.code,
            lambda code: UserAccount(
                tenant_id=tenant.id,
                employee_id=code,
                email=email.lower(),
                first_name=first_name,
                last_name=last_name,
                role=role.value,
                permissions=sorted(permissions),
                is_active=True,
                created_at=now,
                updated_at=now,
                created_by_id=actor_id,
                updated_by_id=actor_id,
            ),
        ).entity
        self._audit.append(
            tenant_id=tenant.id,
            entity_type="user",
            entity_id=user.id,
            action=AuditAction.USER_CREATED,
            actor_id=actor_id or user.id,
            after=user.to_dto(),
        )
        logger.info(
            "user_created",
            extra={
                "user_id": str(user.id),
                "employee_id": user.employee_id,
                "role": role.value,
            },
        )
        return user
