"""
Typed exception hierarchy for the asset registry kernel.

Every failure the kernel can report is a subclass of AssetKernelError with
a class-level ``code`` (machine-readable, API-safe) and structured
attributes describing what went wrong. Callers branch on the exception
type or its category base class, never on message text:

    try:
        ledger.update(principal, asset_id, version, request)
    except ConcurrentModificationError as e:
        reload_and_retry(e.entity_id)
    except AuthorizationError as e:
        return forbidden(e.code, e.reason)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    AssetKernelError (base)
    |
    +-- ValidationError                 caller-correctable input problems
    |   +-- InvalidAssetDataError
    |   +-- InactiveTenantError
    |
    +-- NotFoundError
    |   +-- AssetNotFoundError
    |   +-- MovementNotFoundError
    |   +-- WorkOrderNotFoundError
    |   +-- TenantNotFoundError
    |   +-- UserNotFoundError
    |
    +-- AuthorizationError              never retried, surfaced as-is
    |   +-- CrossTenantAccessError
    |   +-- InsufficientRoleError
    |   +-- MissingPermissionError
    |   +-- InactivePrincipalError
    |
    +-- ConcurrencyError                retry with fresh state, bounded
    |   +-- ConcurrentModificationError
    |   +-- AllocationExhaustedError
    |
    +-- StateError                      logic/data problem, not retried
    |   +-- IllegalTransitionError
    |   +-- InsufficientUsageDataError
    |   +-- InvalidDepreciationInputError
    |
    +-- StorageError                    transient infrastructure failure
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |   +-- AuditWriteError
    |
    +-- ImmutabilityViolationError
"""

from __future__ import annotations


class AssetKernelError(Exception):
    """
    Base exception for all asset kernel errors.

    Subclasses must define a ``code`` class attribute.
    """

    code: str = "ASSET_KERNEL_ERROR"


# Validation


class ValidationError(AssetKernelError):
    """Malformed or out-of-range input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidAssetDataError(ValidationError):
    """Asset fields violate a financial or registry invariant."""

    code: str = "INVALID_ASSET_DATA"

    def __init__(self, field: str, reason: str):
        self.reason = reason
        super().__init__(f"Invalid asset field '{field}': {reason}", field=field)


class InactiveTenantError(ValidationError):
    """Tenant is deactivated or its subscription has lapsed."""

    code: str = "INACTIVE_TENANT"

    def __init__(self, tenant_id: str, reason: str):
        self.tenant_id = tenant_id
        self.reason = reason
        super().__init__(f"Tenant {tenant_id} is not active: {reason}")


# Lookup


class NotFoundError(AssetKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class AssetNotFoundError(NotFoundError):
    code: str = "ASSET_NOT_FOUND"

    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        super().__init__(f"Asset not found: {asset_id}")


class MovementNotFoundError(NotFoundError):
    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Asset movement not found: {movement_id}")


class WorkOrderNotFoundError(NotFoundError):
    code: str = "WORK_ORDER_NOT_FOUND"

    def __init__(self, work_order_id: str):
        self.work_order_id = work_order_id
        super().__init__(f"Work order not found: {work_order_id}")


class TenantNotFoundError(NotFoundError):
    code: str = "TENANT_NOT_FOUND"

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant not found: {tenant_id}")


class UserNotFoundError(NotFoundError):
    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# Authorization


class AuthorizationError(AssetKernelError):
    """
    Principal may not perform the requested action.

    Raised only by ``Decision.require()``; the authorization engine itself
    returns decisions and never raises.
    """

    code: str = "AUTHORIZATION_DENIED"
    reason: str = "Denied"

    def __init__(self, principal_id: str, action: str, detail: str = ""):
        self.principal_id = principal_id
        self.action = action
        self.detail = detail
        message = f"{self.reason}: principal {principal_id} may not {action}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class CrossTenantAccessError(AuthorizationError):
    code: str = "CROSS_TENANT_ACCESS"
    reason: str = "CrossTenantAccess"


class InsufficientRoleError(AuthorizationError):
    code: str = "INSUFFICIENT_ROLE"
    reason: str = "InsufficientRole"


class MissingPermissionError(AuthorizationError):
    code: str = "MISSING_PERMISSION"
    reason: str = "MissingPermission"


class InactivePrincipalError(AuthorizationError):
    code: str = "INACTIVE_PRINCIPAL"
    reason: str = "InactivePrincipal"


# Concurrency


class ConcurrencyError(AssetKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """
    The record changed since the caller read it.

    The caller must reload and retry with the fresh version stamp.
    """

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None and actual_version is not None:
            detail = f" (expected version {expected_version}, found {actual_version})"
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}{detail}"
        )


class AllocationExhaustedError(ConcurrencyError):
    """Every candidate code up to the attempt bound was already taken."""

    code: str = "ALLOCATION_EXHAUSTED"

    def __init__(self, kind: str, base: str, attempts: int):
        self.kind = kind
        self.base = base
        self.attempts = attempts
        super().__init__(
            f"Could not allocate a unique {kind} from base '{base}' "
            f"after {attempts} attempts"
        )


# State


class StateError(AssetKernelError):
    """Base exception for logic/data state problems."""

    code: str = "STATE_ERROR"


class IllegalTransitionError(StateError):
    """Requested state change is not permitted from the current state."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        current_state: str,
        requested_state: str,
        reason: str = "",
    ):
        self.entity_type = entity_type
        self.current_state = current_state
        self.requested_state = requested_state
        self.reason = reason
        message = (
            f"Illegal {entity_type} transition from '{current_state}' "
            f"to '{requested_state}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InsufficientUsageDataError(StateError):
    """Units-of-production depreciation requested without usage data."""

    code: str = "INSUFFICIENT_USAGE_DATA"

    def __init__(self, asset_id: str | None, missing: str):
        self.asset_id = asset_id
        self.missing = missing
        super().__init__(
            f"Cannot compute units-of-production depreciation for asset "
            f"{asset_id}: {missing} is missing"
        )


class InvalidDepreciationInputError(StateError):
    code: str = "INVALID_DEPRECIATION_INPUT"

    def __init__(self, asset_id: str | None, field: str, reason: str):
        self.asset_id = asset_id
        self.field = field
        self.reason = reason
        super().__init__(
            f"Invalid depreciation input '{field}' for asset {asset_id}: {reason}"
        )


# Storage


class StorageError(AssetKernelError):
    """
    Transient infrastructure failure in the record store.

    Safe for the caller layer to retry with backoff.
    """

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")


# Audit


class AuditError(AssetKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_log_id: str, expected_hash: str, actual_hash: str):
        self.audit_log_id = audit_log_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_log_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


class AuditWriteError(AuditError):
    """An audit row could not be written; the mutation must not commit."""

    code: str = "AUDIT_WRITE_FAILED"

    def __init__(self, entity_type: str, entity_id: str, detail: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.detail = detail
        super().__init__(
            f"Failed to audit {entity_type} {entity_id}: {detail}"
        )


# Immutability


class ImmutabilityViolationError(AssetKernelError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
