"""SQLAlchemy ORM models for the auth core."""

from authcore.models.base import Base  # noqa: F401
from authcore.models.principal import Principal  # noqa: F401
from authcore.models.auth_session import AuthSession, SessionStatus  # noqa: F401
from authcore.models.permission import Permission  # noqa: F401
from authcore.models.role import Role  # noqa: F401
from authcore.models.role_hierarchy import RoleHierarchy  # noqa: F401
from authcore.models.role_assignment import AssignmentStatus, RoleAssignment  # noqa: F401
from authcore.models.role_permission import RolePermission  # noqa: F401
from authcore.models.audit_log import AuditLog  # noqa: F401
