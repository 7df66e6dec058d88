"""Pydantic schemas for API payloads."""

from authcore.schemas.assignment import (
    RoleAssignmentCreate,
    RoleAssignmentResponse,
)
from authcore.schemas.audit import AuditEvent, AuditRecordResponse
from authcore.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    PermissionsResponse,
    PrincipalSummaryResponse,
    RefreshRequest,
    TokenResponse,
)
from authcore.schemas.authorization import AuthorizationRequest, AuthorizationResponse
from authcore.schemas.permission import PermissionCreate, PermissionGroupResponse, PermissionResponse
from authcore.schemas.role import (
    RoleCreate,
    RoleHierarchyCreate,
    RoleHierarchyResponse,
    RolePermissionsUpdate,
    RoleResponse,
    RoleUpdate,
)
from authcore.schemas.session import RevokeAllResponse, SessionResponse

__all__ = [
    "AuditEvent",
    "AuditRecordResponse",
    "AuthorizationRequest",
    "AuthorizationResponse",
    "LoginRequest",
    "LogoutRequest",
    "PermissionCreate",
    "PermissionGroupResponse",
    "PermissionResponse",
    "PermissionsResponse",
    "PrincipalSummaryResponse",
    "RefreshRequest",
    "RevokeAllResponse",
    "RoleAssignmentCreate",
    "RoleAssignmentResponse",
    "RoleCreate",
    "RoleHierarchyCreate",
    "RoleHierarchyResponse",
    "RolePermissionsUpdate",
    "RoleResponse",
    "RoleUpdate",
    "SessionResponse",
    "TokenResponse",
]
