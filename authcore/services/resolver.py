"""Effective permission resolution over the role hierarchy."""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from datetime import date, datetime, timezone
from typing import Callable, Dict, FrozenSet, Iterable, List, NoReturn, Optional, Set
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from authcore.services.errors import PermissionStoreUnavailable
from authcore.services.role_store import Edge, RoleStore


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _walk(start: Iterable[UUID], adjacency: Dict[UUID, List[UUID]]) -> Set[UUID]:
    """Every node reachable from ``start`` (excluded), tolerating cycles."""

    seen: Set[UUID] = set()
    queue = deque(start)
    while queue:
        node = queue.popleft()
        for neighbour in adjacency.get(node, ()):
            if neighbour not in seen:
                seen.add(neighbour)
                queue.append(neighbour)
    return seen


class RoleGraph:
    """In-memory view of the hierarchy edges."""

    def __init__(self, edges: Iterable[Edge]) -> None:
        self._parents: Dict[UUID, List[UUID]] = defaultdict(list)
        self._children: Dict[UUID, List[UUID]] = defaultdict(list)
        for parent, child in edges:
            self._parents[child].append(parent)
            self._children[parent].append(child)

    def ancestors(self, role_id: UUID) -> Set[UUID]:
        return _walk([role_id], self._parents) - {role_id}

    def descendants(self, role_id: UUID) -> Set[UUID]:
        return _walk([role_id], self._children) - {role_id}

    def would_create_cycle(self, parent_id: UUID, child_id: UUID) -> bool:
        """Adding ``parent -> child`` closes a loop if the parent is already below the child."""

        if parent_id == child_id:
            return True
        return parent_id in _walk([child_id], self._children)


class PermissionResolver:
    """Computes a principal's effective roles and permissions.

    For a fixed store state and a fixed ``as_of`` date the result is
    deterministic, which is what makes caching it valid.
    """

    def __init__(self, store: RoleStore, *, today: Callable[[], date] = _today) -> None:
        self._store = store
        self._today = today
        self._logger = logging.getLogger("authcore.services.resolver")

    @property
    def store(self) -> RoleStore:
        return self._store

    def graph(self) -> RoleGraph:
        return RoleGraph(self._store.hierarchy_edges())

    def ancestors(self, role_id: UUID) -> Set[UUID]:
        return self.graph().ancestors(role_id)

    def descendants(self, role_id: UUID) -> Set[UUID]:
        return self.graph().descendants(role_id)

    def resolve_effective_role_names(self, principal_id: UUID, as_of: Optional[date] = None) -> FrozenSet[str]:
        try:
            role_ids = self._store.effective_assignments(principal_id, as_of or self._today())
            return frozenset(self._store.role_names(role_ids).values())
        except SQLAlchemyError as exc:
            self._store_unavailable(principal_id, exc)

    def resolve_effective_permissions(self, principal_id: UUID, as_of: Optional[date] = None) -> FrozenSet[str]:
        try:
            role_ids = set(self._store.effective_assignments(principal_id, as_of or self._today()))
            if not role_ids:
                return frozenset()

            graph = self.graph()
            inherited: Set[UUID] = set()
            for role_id in role_ids:
                inherited |= graph.ancestors(role_id)

            # Inactive ancestors grant nothing.
            granting = role_ids | set(self._store.role_names(inherited).keys())
            grants = self._store.direct_grants_for(granting)
        except SQLAlchemyError as exc:
            self._store_unavailable(principal_id, exc)

        permissions: Set[str] = set()
        for names in grants.values():
            permissions |= names
        return frozenset(permissions)

    def _store_unavailable(self, principal_id: UUID, exc: Exception) -> NoReturn:
        self._logger.error(
            "permission_store_unavailable",
            extra={"principal_id": str(principal_id), "error": str(exc)},
        )
        raise PermissionStoreUnavailable("Role/permission store unavailable") from exc
