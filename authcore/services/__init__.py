"""Business logic service layer."""

from authcore.services.auth import AuthService  # noqa: F401
from authcore.services.cache import PermissionCacheService  # noqa: F401
from authcore.services.roles import RoleService  # noqa: F401
