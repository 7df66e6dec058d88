"""Role, hierarchy, grant, and assignment mutations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authcore.events_engine.dispatcher import AuditSink
from authcore.models.identifiers import PermissionName, RoleName
from authcore.models.permission import Permission
from authcore.models.principal import Principal
from authcore.models.role import Role
from authcore.models.role_assignment import AssignmentStatus, RoleAssignment
from authcore.models.role_hierarchy import RoleHierarchy
from authcore.schemas.assignment import RoleAssignmentCreate
from authcore.schemas.permission import PermissionCreate
from authcore.schemas.role import RoleCreate, RoleUpdate
from authcore.services.cache import PermissionCacheService
from authcore.services.errors import (
    AssignmentNotFound,
    DuplicateRoleAssignment,
    HierarchyEdgeNotFound,
    PermissionConflict,
    PermissionNotFound,
    PrincipalNotFound,
    RoleConflict,
    RoleCycleRejected,
    RoleInUse,
    RoleNotFound,
)
from authcore.services.resolver import PermissionResolver
from authcore.services.role_store import RoleStore


def _today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass(frozen=True)
class RequestContext:
    """Who performed a mutation and from where."""

    actor_id: Optional[UUID] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class RoleService:
    """Coordinates role, grant, hierarchy, and assignment changes.

    Every mutation flushes its data change, invalidates the affected cache
    entries (again once the session commits), then emits an audit event. The
    audit step never raises into the caller.
    """

    def __init__(
        self,
        session: Session,
        *,
        cache_service: PermissionCacheService,
        audit: AuditSink,
        resolver: Optional[PermissionResolver] = None,
        today: Callable[[], date] = _today,
    ) -> None:
        self._session = session
        self._cache = cache_service
        self._audit_sink = audit
        self._resolver = resolver or PermissionResolver(RoleStore(session))
        self._today = today
        self._logger = logging.getLogger("authcore.services.roles")

    # Roles

    def create_role(self, payload: RoleCreate, *, context: RequestContext) -> Role:
        name = RoleName(payload.name)
        self._ensure_role_name_free(name)

        role = Role(
            name=name.value,
            description=payload.description,
            is_active=payload.is_active,
            display_order=payload.display_order,
        )
        role.permissions = self._permissions_by_name(payload.permissions)
        self._session.add(role)
        self._flush_or_conflict(f"Role '{name}' already exists")

        self._emit(
            "role.create",
            context,
            target_role_id=role.id,
            new_value=self._role_snapshot(role),
        )
        self._logger.info(
            "role_created",
            extra={"role_id": str(role.id), "actor_id": _str_or_none(context.actor_id)},
        )
        return role

    def rename_role(self, role_id: UUID, new_name: str, *, context: RequestContext) -> Role:
        role = self.get_role(role_id)
        name = RoleName(new_name.strip())
        if role.name == name.value:
            return role
        self._ensure_role_name_free(name, exclude_id=role.id)

        old_name = role.name
        role.name = name.value
        self._flush_or_conflict(f"Role '{name}' already exists")

        # Cached entries hold permission names only, so a rename needs no eviction.
        self._emit(
            "role.rename",
            context,
            target_role_id=role.id,
            old_value={"name": old_name},
            new_value={"name": role.name},
        )
        self._logger.info("role_renamed", extra={"role_id": str(role.id), "role_name": role.name})
        return role

    def update_role(self, role_id: UUID, payload: RoleUpdate, *, context: RequestContext) -> Role:
        updates = payload.model_dump(exclude_unset=True)
        if updates.get("name") is not None:
            self.rename_role(role_id, updates.pop("name"), context=context)
        updates.pop("name", None)

        role = self.get_role(role_id)
        before = {field: getattr(role, field) for field in updates}
        for field, value in updates.items():
            if field in ("is_active", "display_order") and value is None:
                continue
            setattr(role, field, value)
        self._session.flush()

        changed = {field: getattr(role, field) for field in updates if getattr(role, field) != before[field]}
        if not changed:
            return role
        if "is_active" in changed:
            self._invalidate(self._cache.principals_for_role(role.id))

        self._emit(
            "role.update",
            context,
            target_role_id=role.id,
            old_value={field: before[field] for field in changed},
            new_value=changed,
        )
        self._logger.info(
            "role_updated",
            extra={"role_id": str(role.id), "fields": sorted(changed)},
        )
        return role

    def delete_role(self, role_id: UUID, *, context: RequestContext) -> None:
        role = self.get_role(role_id)
        in_use = self._session.scalar(
            select(func.count()).select_from(RoleAssignment).where(RoleAssignment.role_id == role.id)
        )
        if in_use:
            raise RoleInUse(f"Role '{role.name}' is referenced by {in_use} assignment(s)")

        # Descendants lose what they inherited through this role.
        affected = self._resolver.store.holders_of(self._resolver.descendants(role.id))
        snapshot = self._role_snapshot(role)

        role.permissions = []
        self._session.execute(
            delete(RoleHierarchy).where(
                or_(RoleHierarchy.parent_role_id == role.id, RoleHierarchy.child_role_id == role.id)
            )
        )
        self._session.delete(role)
        self._session.flush()

        self._invalidate(affected)
        self._emit("role.delete", context, target_role_id=role_id, old_value=snapshot)
        self._logger.info(
            "role_deleted",
            extra={"role_id": str(role_id), "principals_invalidated": len(affected)},
        )

    def set_role_permissions(
        self,
        role_id: UUID,
        permission_ids: Sequence[UUID],
        *,
        context: RequestContext,
    ) -> Role:
        """Replace every direct grant of the role in one step."""

        role = self.get_role(role_id)
        wanted = set(permission_ids)
        permissions = list(self._session.scalars(select(Permission).where(Permission.id.in_(wanted)))) if wanted else []
        missing = wanted - {permission.id for permission in permissions}
        if missing:
            raise PermissionNotFound(f"Unknown permission id(s): {', '.join(sorted(str(m) for m in missing))}")

        old_names = sorted(permission.name for permission in role.permissions)
        role.permissions = sorted(permissions, key=lambda permission: permission.name)
        self._session.flush()

        invalidated = self._invalidate(self._cache.principals_for_role(role.id))
        new_names = sorted(permission.name for permission in permissions)
        self._emit(
            "role.permissions.set",
            context,
            target_role_id=role.id,
            old_value={"permissions": old_names},
            new_value={"permissions": new_names},
        )
        self._logger.info(
            "role_permissions_replaced",
            extra={
                "role_id": str(role.id),
                "permissions": len(new_names),
                "principals_invalidated": invalidated,
            },
        )
        return role

    def list_roles(self, *, include_inactive: bool = True) -> List[Role]:
        stmt = select(Role).order_by(Role.display_order.asc(), Role.name.asc())
        if not include_inactive:
            stmt = stmt.where(Role.is_active.is_(True))
        return list(self._session.scalars(stmt))

    def get_role(self, role_id: UUID) -> Role:
        role = self._session.get(Role, role_id)
        if not role:
            raise RoleNotFound(f"Role {role_id} not found")
        return role

    # Hierarchy

    def add_hierarchy_edge(
        self,
        parent_id: UUID,
        child_id: UUID,
        *,
        context: RequestContext,
        inheritance_level: int = 1,
    ) -> RoleHierarchy:
        """Make ``child_id`` inherit every grant of ``parent_id``."""

        parent = self.get_role(parent_id)
        child = self.get_role(child_id)
        if self._session.get(RoleHierarchy, (parent.id, child.id)) is not None:
            raise RoleConflict(f"Role '{child.name}' already inherits from '{parent.name}'")
        if self._resolver.graph().would_create_cycle(parent.id, child.id):
            self._logger.warning(
                "role_cycle_rejected",
                extra={"parent_role_id": str(parent.id), "child_role_id": str(child.id)},
            )
            raise RoleCycleRejected(f"Making '{child.name}' inherit from '{parent.name}' would create a cycle")

        edge = RoleHierarchy(
            parent_role_id=parent.id,
            child_role_id=child.id,
            inheritance_level=inheritance_level,
        )
        self._session.add(edge)
        self._flush_or_conflict(f"Role '{child.name}' already inherits from '{parent.name}'")

        invalidated = self._invalidate(self._cache.principals_for_role(child.id))
        self._emit(
            "role.hierarchy.add",
            context,
            target_role_id=child.id,
            new_value={"parent_role_id": str(parent.id), "child_role_id": str(child.id)},
        )
        self._logger.info(
            "role_hierarchy_edge_added",
            extra={
                "parent_role_id": str(parent.id),
                "child_role_id": str(child.id),
                "principals_invalidated": invalidated,
            },
        )
        return edge

    def remove_hierarchy_edge(self, parent_id: UUID, child_id: UUID, *, context: RequestContext) -> None:
        edge = self._session.get(RoleHierarchy, (parent_id, child_id))
        if edge is None:
            raise HierarchyEdgeNotFound(f"Role {child_id} does not inherit from {parent_id}")

        self._session.delete(edge)
        self._session.flush()

        invalidated = self._invalidate(self._cache.principals_for_role(child_id))
        self._emit(
            "role.hierarchy.remove",
            context,
            target_role_id=child_id,
            old_value={"parent_role_id": str(parent_id), "child_role_id": str(child_id)},
        )
        self._logger.info(
            "role_hierarchy_edge_removed",
            extra={
                "parent_role_id": str(parent_id),
                "child_role_id": str(child_id),
                "principals_invalidated": invalidated,
            },
        )

    def list_parents(self, role_id: UUID) -> List[RoleHierarchy]:
        self.get_role(role_id)
        stmt = select(RoleHierarchy).where(RoleHierarchy.child_role_id == role_id)
        return list(self._session.scalars(stmt))

    # Assignments

    def assign_role(self, payload: RoleAssignmentCreate, *, context: RequestContext) -> RoleAssignment:
        role = self.get_role(payload.role_id)
        if self._session.get(Principal, payload.principal_id) is None:
            raise PrincipalNotFound(f"Principal {payload.principal_id} not found")

        for existing in self._active_assignments(payload.principal_id, role.id):
            if existing.overlaps(payload.start_date, payload.end_date):
                raise DuplicateRoleAssignment(
                    f"Principal {payload.principal_id} already holds role '{role.name}' in an overlapping period"
                )

        assignment = RoleAssignment(
            principal_id=payload.principal_id,
            role_id=role.id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            status=AssignmentStatus.ACTIVE,
            assigned_by=context.actor_id,
            notes=payload.notes,
        )
        self._session.add(assignment)
        self._session.flush()

        self._invalidate([payload.principal_id])
        self._emit(
            "role.assign",
            context,
            target_role_id=role.id,
            target_principal_id=payload.principal_id,
            new_value=self._assignment_snapshot(assignment),
        )
        self._logger.info(
            "role_assigned",
            extra={
                "role_id": str(role.id),
                "principal_id": str(payload.principal_id),
                "actor_id": _str_or_none(context.actor_id),
            },
        )
        return assignment

    def remove_role(self, principal_id: UUID, role_id: UUID, *, context: RequestContext) -> List[RoleAssignment]:
        """Soft-revoke the principal's active assignments of the role."""

        assignments = self._active_assignments(principal_id, role_id)
        if not assignments:
            raise AssignmentNotFound(f"Principal {principal_id} holds no active assignment of role {role_id}")

        today = self._today()
        old_values = [self._assignment_snapshot(assignment) for assignment in assignments]
        for assignment in assignments:
            assignment.status = AssignmentStatus.REVOKED
            # Never end before the start date.
            assignment.end_date = max(today, assignment.start_date) if assignment.start_date else today
        self._session.flush()

        self._invalidate([principal_id])
        self._emit(
            "role.remove",
            context,
            target_role_id=role_id,
            target_principal_id=principal_id,
            old_value=old_values,
            new_value=[self._assignment_snapshot(assignment) for assignment in assignments],
        )
        self._logger.info(
            "role_removed",
            extra={
                "role_id": str(role_id),
                "principal_id": str(principal_id),
                "assignments": len(assignments),
                "actor_id": _str_or_none(context.actor_id),
            },
        )
        return assignments

    def list_assignments(
        self,
        *,
        principal_id: Optional[UUID] = None,
        role_id: Optional[UUID] = None,
        include_revoked: bool = False,
    ) -> List[RoleAssignment]:
        stmt = select(RoleAssignment)
        if principal_id:
            stmt = stmt.where(RoleAssignment.principal_id == principal_id)
        if role_id:
            stmt = stmt.where(RoleAssignment.role_id == role_id)
        if not include_revoked:
            stmt = stmt.where(RoleAssignment.status == AssignmentStatus.ACTIVE)
        stmt = stmt.order_by(RoleAssignment.assigned_at.desc())
        return list(self._session.scalars(stmt))

    # Permissions

    def create_permission(self, payload: PermissionCreate, *, context: RequestContext) -> Permission:
        name = PermissionName(payload.name.strip())
        if self._session.scalar(select(Permission.id).where(Permission.name == name.value)) is not None:
            raise PermissionConflict(f"Permission '{name}' already exists")

        permission = Permission(name=name.value, category=payload.category, description=payload.description)
        self._session.add(permission)
        try:
            self._session.flush()
        except IntegrityError as exc:
            raise PermissionConflict(f"Permission '{name}' already exists") from exc

        self._emit(
            "permission.create",
            context,
            target_permission_id=permission.id,
            new_value={"name": permission.name, "category": permission.category},
        )
        self._logger.info("permission_created", extra={"permission_id": str(permission.id), "permission_name": permission.name})
        return permission

    def list_permissions(self, *, category: Optional[str] = None) -> List[Permission]:
        stmt = select(Permission).order_by(Permission.name.asc())
        if category:
            stmt = stmt.where(Permission.category == category)
        return list(self._session.scalars(stmt))

    def list_permission_categories(self) -> List[str]:
        stmt = select(Permission.category).where(Permission.category.is_not(None)).distinct().order_by(Permission.category)
        return list(self._session.scalars(stmt))

    def list_permissions_grouped(self) -> List[Tuple[Optional[str], List[Permission]]]:
        """Permissions grouped by category, categories sorted, uncategorised last."""

        groups: Dict[Optional[str], List[Permission]] = {}
        for permission in self.list_permissions():
            groups.setdefault(permission.category, []).append(permission)
        return sorted(groups.items(), key=lambda item: (item[0] is None, item[0] or ""))

    def ensure_baseline_permissions(self, names: Iterable[str]) -> None:
        """Idempotently create baseline permission records."""

        names = list({name for name in names})
        if not names:
            return

        existing = set(self._session.scalars(select(Permission.name).where(Permission.name.in_(names))).all())
        for name in names:
            if name not in existing:
                self._session.add(Permission(name=name, category=name.split(".", 1)[0]))
        self._session.flush()

    # Helpers

    def _active_assignments(self, principal_id: UUID, role_id: UUID) -> List[RoleAssignment]:
        stmt = (
            select(RoleAssignment)
            .where(RoleAssignment.principal_id == principal_id)
            .where(RoleAssignment.role_id == role_id)
            .where(RoleAssignment.status == AssignmentStatus.ACTIVE)
        )
        return list(self._session.scalars(stmt))

    def _permissions_by_name(self, names: Iterable[str]) -> List[Permission]:
        wanted = {PermissionName(name.strip()).value for name in names}
        if not wanted:
            return []
        permissions = list(self._session.scalars(select(Permission).where(Permission.name.in_(wanted))))
        missing = wanted - {permission.name for permission in permissions}
        if missing:
            raise PermissionNotFound(f"Unknown permission(s): {', '.join(sorted(missing))}")
        return sorted(permissions, key=lambda permission: permission.name)

    def _ensure_role_name_free(self, name: RoleName, *, exclude_id: Optional[UUID] = None) -> None:
        stmt = select(Role.id).where(Role.name == name.value)
        if exclude_id is not None:
            stmt = stmt.where(Role.id != exclude_id)
        if self._session.scalar(stmt) is not None:
            raise RoleConflict(f"Role '{name}' already exists")

    def _flush_or_conflict(self, message: str) -> None:
        try:
            self._session.flush()
        except IntegrityError as exc:
            self._session.rollback()
            raise RoleConflict(message) from exc

    def _invalidate(self, principal_ids: Iterable[UUID]) -> int:
        """Evict now and again after commit; returns the number of principals."""

        ids = set(principal_ids)
        self._cache.invalidate_principals(ids)
        self._cache.invalidate_on_commit(self._session, ids)
        return len(ids)

    def _emit(self, action_type: str, context: RequestContext, **fields: Any) -> None:
        try:
            self._audit_sink.emit(
                action_type,
                performed_by=context.actor_id,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                **fields,
            )
        except Exception as exc:  # noqa: BLE001 - the mutation stands even if auditing fails
            self._logger.error(
                "audit_append_failed",
                extra={
                    "action_type": action_type,
                    "actor_id": _str_or_none(context.actor_id),
                    "error": repr(exc),
                },
            )

    @staticmethod
    def _role_snapshot(role: Role) -> Dict[str, Any]:
        return {
            "name": role.name,
            "description": role.description,
            "is_active": role.is_active,
            "display_order": role.display_order,
            "permissions": sorted(permission.name for permission in role.permissions),
        }

    @staticmethod
    def _assignment_snapshot(assignment: RoleAssignment) -> Dict[str, Any]:
        return {
            "assignment_id": str(assignment.id),
            "status": assignment.status.value,
            "start_date": assignment.start_date.isoformat() if assignment.start_date else None,
            "end_date": assignment.end_date.isoformat() if assignment.end_date else None,
            "notes": assignment.notes,
        }


def _str_or_none(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None
