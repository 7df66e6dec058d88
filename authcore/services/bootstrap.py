"""Idempotent provisioning of the first administrator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from authcore.models.permission import Permission
from authcore.models.permissions_constants import get_all_permissions
from authcore.models.role import Role
from authcore.models.role_assignment import AssignmentStatus, RoleAssignment
from authcore.services.credentials import CredentialStore

LOGGER = logging.getLogger("authcore.services.bootstrap")


@dataclass(frozen=True)
class BootstrapResult:
    principal_id: UUID
    role_id: UUID
    principal_created: bool
    role_created: bool
    permissions_created: int


def bootstrap_admin(
    session: Session,
    *,
    username: str,
    password: str,
    email: Optional[str] = None,
    role_name: str = "Administrator",
    permissions: Optional[Iterable[str]] = None,
) -> BootstrapResult:
    """Ensure an administrator role holding ``permissions`` and a principal assigned to it.

    Safe to run repeatedly. An existing principal keeps its password.
    """

    names = sorted(set(permissions or get_all_permissions()))

    existing = {p.name: p for p in session.scalars(select(Permission).where(Permission.name.in_(names)))}
    created = 0
    for name in names:
        if name not in existing:
            permission = Permission(name=name, category=name.split(".", 1)[0])
            session.add(permission)
            existing[name] = permission
            created += 1
    session.flush()

    role = session.scalar(select(Role).where(Role.name == role_name))
    role_created = role is None
    if role is None:
        role = Role(name=role_name, description="Full administrative access", display_order=0)
        session.add(role)
    granted = {permission.name for permission in role.permissions}
    role.permissions = list(role.permissions) + [existing[name] for name in names if name not in granted]
    session.flush()

    credentials = CredentialStore(session)
    principal = credentials.find_by_username(username)
    principal_created = principal is None
    if principal is None:
        principal = credentials.create_principal(
            username=username,
            password=password,
            email=email,
            email_verified=True,
        )

    assigned = session.scalar(
        select(RoleAssignment.id).where(
            RoleAssignment.principal_id == principal.id,
            RoleAssignment.role_id == role.id,
            RoleAssignment.status == AssignmentStatus.ACTIVE,
        )
    )
    if assigned is None:
        session.add(RoleAssignment(principal_id=principal.id, role_id=role.id, notes="bootstrap"))
    session.flush()

    result = BootstrapResult(
        principal_id=principal.id,
        role_id=role.id,
        principal_created=principal_created,
        role_created=role_created,
        permissions_created=created,
    )
    LOGGER.info(
        "bootstrap_admin_completed",
        extra={
            "principal_id": str(result.principal_id),
            "role_id": str(result.role_id),
            "principal_created": principal_created,
            "role_created": role_created,
            "permissions_created": created,
        },
    )
    return result
