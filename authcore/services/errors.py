"""Error taxonomy shared by the auth and RBAC services."""

from __future__ import annotations


class AuthCoreError(Exception):
    """Base class for auth core service errors."""

    code = "auth_core_error"


class ConfigurationMissing(AuthCoreError):
    """Raised at startup when required secret material is absent."""

    code = "configuration_missing"


# Credential failures. Clients only ever see a generic message for these,
# except AccountLocked which needs a different remediation.


class AuthenticationError(AuthCoreError):
    code = "authentication_failed"


class InvalidCredentials(AuthenticationError):
    code = "invalid_credentials"


class AccountLocked(AuthenticationError):
    code = "account_locked"


class MembershipInactive(AuthenticationError):
    code = "membership_inactive"


# Token and session failures.


class TokenError(AuthenticationError):
    code = "invalid_token"


class TokenMalformed(TokenError):
    code = "token_malformed"


class TokenExpired(TokenError):
    code = "token_expired"


class TokenBadSignature(TokenError):
    code = "token_bad_signature"


class InvalidRefreshToken(TokenError):
    code = "invalid_refresh_token"


class SessionRevokedOrUnknown(TokenError):
    code = "session_revoked_or_unknown"


class RefreshTokenExpired(TokenError):
    code = "refresh_token_expired"


class SessionNotFound(AuthCoreError):
    code = "session_not_found"


# Authorization and RBAC administration.


class InsufficientPermission(AuthCoreError):
    code = "insufficient_permission"


class PermissionStoreUnavailable(AuthCoreError):
    """The role/permission store could not be reached; the check is retryable."""

    code = "permission_store_unavailable"


class RoleServiceError(AuthCoreError):
    code = "role_service_error"


class RoleNotFound(RoleServiceError):
    code = "role_not_found"


class PermissionNotFound(RoleServiceError):
    code = "permission_not_found"


class AssignmentNotFound(RoleServiceError):
    code = "assignment_not_found"


class RoleConflict(RoleServiceError):
    code = "role_conflict"


class RoleInUse(RoleConflict):
    code = "role_in_use"


class RoleCycleRejected(RoleConflict):
    code = "role_cycle_rejected"


class DuplicateRoleAssignment(RoleConflict):
    code = "duplicate_role_assignment"


class PrincipalNotFound(RoleServiceError):
    code = "principal_not_found"


class HierarchyEdgeNotFound(RoleServiceError):
    code = "hierarchy_edge_not_found"


class PermissionConflict(RoleConflict):
    code = "permission_conflict"
