"""Permission cache powered by Upstash Redis with in-memory fallback."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from threading import RLock
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Protocol, Sequence, Set, Tuple, cast
from uuid import UUID

import httpx
from sqlalchemy import event
from sqlalchemy.orm import Session

from authcore.core.config import AppSettings
from authcore.services.errors import PermissionStoreUnavailable
from authcore.services.resolver import PermissionResolver

LOGGER = logging.getLogger("authcore.services.cache")

_PENDING_EVICTIONS = "authcore.pending_evictions"


class CacheBackendError(RuntimeError):
    """Raised when the cache backend cannot be reached."""


class PermissionCache(Protocol):
    """Contract for storing resolved permission sets keyed by principal."""

    def get(self, principal_id: str) -> Optional[FrozenSet[str]]:
        ...

    def set(self, principal_id: str, permissions: FrozenSet[str], *, ttl_seconds: int) -> None:
        ...

    def delete(self, principal_ids: Iterable[str]) -> None:
        ...

    def clear(self) -> None:
        ...


@dataclass
class InMemoryPermissionCache(PermissionCache):
    """Thread-safe in-memory cache with per-entry expiry."""

    clock: Callable[[], float] = field(default=time.monotonic)

    def __post_init__(self) -> None:
        self._store: Dict[str, Tuple[float, FrozenSet[str]]] = {}
        self._lock = RLock()

    def get(self, principal_id: str) -> Optional[FrozenSet[str]]:
        with self._lock:
            entry = self._store.get(principal_id)
            if entry is None:
                return None
            expires_at, permissions = entry
            if expires_at <= self.clock():
                self._store.pop(principal_id, None)
                return None
            return permissions

    def set(self, principal_id: str, permissions: FrozenSet[str], *, ttl_seconds: int) -> None:
        with self._lock:
            self._store[principal_id] = (self.clock() + max(ttl_seconds, 1), frozenset(permissions))

    def delete(self, principal_ids: Iterable[str]) -> None:
        with self._lock:
            for principal_id in principal_ids:
                self._store.pop(principal_id, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class RedisPermissionCache(PermissionCache):
    """Redis-backed cache using Upstash REST API."""

    def __init__(
        self,
        *,
        url: str,
        token: str,
        prefix: str,
        client: Optional[httpx.Client] = None,
        timeout: float = 2.0,
    ) -> None:
        self._client = client or httpx.Client(
            base_url=url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
        )
        self._prefix = prefix
        self._registry_key = f"{self._prefix}:principals"

    def get(self, principal_id: str) -> Optional[FrozenSet[str]]:
        result = self._execute("GET", self._perm_key(principal_id))
        if result is None:
            return None
        return frozenset(json.loads(str(result)))

    def set(self, principal_id: str, permissions: FrozenSet[str], *, ttl_seconds: int) -> None:
        ttl_ms = str(max(ttl_seconds, 1) * 1000)
        self._execute("SET", self._perm_key(principal_id), json.dumps(sorted(permissions)), "PX", ttl_ms)
        self._execute("SADD", self._registry_key, principal_id)

    def delete(self, principal_ids: Iterable[str]) -> None:
        principal_ids = list(principal_ids)
        if not principal_ids:
            return
        self._execute("DEL", *[self._perm_key(principal_id) for principal_id in principal_ids])
        self._execute("SREM", self._registry_key, *principal_ids)

    def clear(self) -> None:
        principals = cast(Sequence[str], self._execute("SMEMBERS", self._registry_key) or [])
        if principals:
            self._execute("DEL", *[self._perm_key(principal_id) for principal_id in principals])
        self._execute("DEL", self._registry_key)

    def _perm_key(self, principal_id: str) -> str:
        return f"{self._prefix}:perms:{principal_id}"

    def _execute(self, *command: str) -> Optional[object]:
        try:
            response = self._client.post("/", json=list(command))
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise CacheBackendError(f"Redis command {command[0]} failed") from exc
        if isinstance(payload, dict) and payload.get("error"):
            raise CacheBackendError(str(payload["error"]))
        return payload.get("result")


def build_permission_cache(settings: AppSettings) -> PermissionCache:
    """Choose the cache backend from settings; called once at startup."""

    if settings.redis_url and settings.redis_token:
        LOGGER.info("permission_cache_backend", extra={"backend": "redis"})
        return RedisPermissionCache(
            url=settings.redis_url,
            token=settings.redis_token,
            prefix=settings.redis_cache_prefix,
        )
    LOGGER.info("permission_cache_backend", extra={"backend": "memory"})
    return InMemoryPermissionCache()


class PermissionCacheService:
    """TTL cache fronting the resolver, with explicit invalidation.

    Entries are advisory. A backend failure on read is a miss and the resolver
    is consulted synchronously, so an outage can slow checks down but never
    grant access.
    """

    def __init__(
        self,
        cache: PermissionCache,
        resolver: PermissionResolver,
        *,
        ttl_seconds: int = 3600,
    ) -> None:
        self._cache = cache
        self._resolver = resolver
        self._ttl = ttl_seconds

    def get(self, principal_id: UUID) -> Optional[FrozenSet[str]]:
        try:
            return self._cache.get(str(principal_id))
        except CacheBackendError as exc:
            LOGGER.warning(
                "permission_cache_read_failed",
                extra={"principal_id": str(principal_id), "error": str(exc)},
            )
            return None

    def get_or_compute(self, principal_id: UUID) -> FrozenSet[str]:
        cached = self.get(principal_id)
        if cached is not None:
            LOGGER.debug("permission_cache_hit", extra={"principal_id": str(principal_id)})
            return cached

        permissions = self._resolver.resolve_effective_permissions(principal_id)
        try:
            self._cache.set(str(principal_id), permissions, ttl_seconds=self._ttl)
        except CacheBackendError as exc:
            LOGGER.warning(
                "permission_cache_write_failed",
                extra={"principal_id": str(principal_id), "error": str(exc)},
            )
        return permissions

    def warm_up(self, principal_id: UUID) -> FrozenSet[str]:
        self.invalidate(principal_id)
        return self.get_or_compute(principal_id)

    def invalidate(self, principal_id: UUID) -> None:
        self._evict([str(principal_id)])
        LOGGER.info("permission_cache_invalidated", extra={"principal_id": str(principal_id)})

    def invalidate_principals(self, principal_ids: Iterable[UUID]) -> int:
        ids = sorted({str(principal_id) for principal_id in principal_ids})
        self._evict(ids)
        return len(ids)

    def principals_for_role(self, role_id: UUID) -> Set[UUID]:
        """Holders of the role and of every role that inherits from it."""

        affected_roles = {role_id} | self._resolver.descendants(role_id)
        return set(self._resolver.store.holders_of(affected_roles))

    def invalidate_role(self, role_id: UUID) -> int:
        """Evict holders of the role and of every role that inherits from it."""

        principals = self.principals_for_role(role_id)
        self._evict([str(principal_id) for principal_id in principals])
        LOGGER.info(
            "permission_cache_role_invalidated",
            extra={"role_id": str(role_id), "principals": len(principals)},
        )
        return len(principals)

    def invalidate_on_commit(self, session: Session, principal_ids: Iterable[UUID]) -> None:
        """Evict the principals again once ``session`` commits.

        A check running between a mutation's flush and its commit still reads
        the committed rows and can write the old set back into the cache.
        """

        ids = {str(principal_id) for principal_id in principal_ids}
        if not ids:
            return
        pending: Dict[PermissionCacheService, Set[str]] = session.info.setdefault(_PENDING_EVICTIONS, {})
        pending.setdefault(self, set()).update(ids)

    def invalidate_all(self) -> None:
        """Flush every entry. Reserved for bulk and administrative changes."""

        try:
            self._cache.clear()
        except CacheBackendError as exc:
            LOGGER.error("permission_cache_flush_failed", extra={"error": str(exc)})
            raise PermissionStoreUnavailable("Permission cache could not be flushed") from exc
        LOGGER.info("permission_cache_flushed")

    def _evict(self, principal_ids: list[str]) -> None:
        if not principal_ids:
            return
        try:
            self._cache.delete(principal_ids)
        except CacheBackendError as exc:
            LOGGER.warning(
                "permission_cache_evict_failed",
                extra={"principals": len(principal_ids), "error": str(exc)},
            )
            # Stale entries must not outlive a mutation; escalate to a full flush.
            self.invalidate_all()


@event.listens_for(Session, "after_commit")
def _evict_after_commit(session: Session) -> None:
    pending = session.info.pop(_PENDING_EVICTIONS, None)
    if not pending:
        return
    for service, principal_ids in pending.items():
        service._evict(sorted(principal_ids))
        LOGGER.info("permission_cache_invalidated_after_commit", extra={"principals": len(principal_ids)})


@event.listens_for(Session, "after_rollback")
def _discard_pending_evictions(session: Session) -> None:
    session.info.pop(_PENDING_EVICTIONS, None)
