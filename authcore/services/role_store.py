"""Read side of the role/permission store."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Set, Tuple
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from authcore.models.permission import Permission
from authcore.models.role import Role
from authcore.models.role_assignment import AssignmentStatus, RoleAssignment
from authcore.models.role_hierarchy import RoleHierarchy
from authcore.models.role_permission import RolePermission

Edge = Tuple[UUID, UUID]


class RoleStore:
    """Queries over assignments, grants, and hierarchy edges."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def effective_assignments(self, principal_id: UUID, as_of: date) -> List[UUID]:
        """Role ids effective for the principal on ``as_of``."""

        stmt = (
            select(RoleAssignment.role_id)
            .join(Role, RoleAssignment.role_id == Role.id)
            .where(RoleAssignment.principal_id == principal_id)
            .where(RoleAssignment.status == AssignmentStatus.ACTIVE)
            .where(Role.is_active.is_(True))
            .where(or_(RoleAssignment.start_date.is_(None), RoleAssignment.start_date <= as_of))
            .where(or_(RoleAssignment.end_date.is_(None), RoleAssignment.end_date >= as_of))
            .distinct()
        )
        return list(self._session.scalars(stmt))

    def direct_grants(self, role_id: UUID) -> List[str]:
        return sorted(self.direct_grants_for([role_id]).get(role_id, set()))

    def direct_grants_for(self, role_ids: Iterable[UUID]) -> Dict[UUID, Set[str]]:
        role_ids = list(set(role_ids))
        if not role_ids:
            return {}
        stmt = (
            select(RolePermission.role_id, Permission.name)
            .join(Permission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id.in_(role_ids))
        )
        grants: Dict[UUID, Set[str]] = defaultdict(set)
        for role_id, name in self._session.execute(stmt):
            grants[role_id].add(name)
        return dict(grants)

    def hierarchy_edges(self) -> List[Edge]:
        stmt = select(RoleHierarchy.parent_role_id, RoleHierarchy.child_role_id)
        return [(parent, child) for parent, child in self._session.execute(stmt)]

    def role_names(self, role_ids: Iterable[UUID], *, active_only: bool = True) -> Dict[UUID, str]:
        role_ids = list(set(role_ids))
        if not role_ids:
            return {}
        stmt = select(Role.id, Role.name).where(Role.id.in_(role_ids))
        if active_only:
            stmt = stmt.where(Role.is_active.is_(True))
        return {role_id: name for role_id, name in self._session.execute(stmt)}

    def holders_of(self, role_ids: Iterable[UUID]) -> Set[UUID]:
        """Principals holding any active assignment to one of ``role_ids``.

        Assignments outside their date window are included; evicting a few
        extra cache entries is harmless.
        """

        role_ids = list(set(role_ids))
        if not role_ids:
            return set()
        stmt = (
            select(RoleAssignment.principal_id)
            .where(RoleAssignment.role_id.in_(role_ids))
            .where(RoleAssignment.status == AssignmentStatus.ACTIVE)
            .distinct()
        )
        return set(self._session.scalars(stmt))
