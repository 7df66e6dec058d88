"""Permission names guarding the administrative API."""

from __future__ import annotations

from typing import List

# Role administration
ROLE_VIEW = "role.view"
ROLE_MANAGE = "role.manage"
ROLE_ASSIGN = "role.assign"

# Permission catalogue
PERMISSION_MANAGE = "permission.manage"

# Audit trail
AUDIT_VIEW = "audit.view"


def get_all_permissions() -> List[str]:
    """Return every administrative permission name."""
    return [
        ROLE_VIEW,
        ROLE_MANAGE,
        ROLE_ASSIGN,
        PERMISSION_MANAGE,
        AUDIT_VIEW,
    ]
