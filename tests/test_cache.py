from __future__ import annotations

import json
from typing import List
from uuid import uuid4

import httpx
import pytest

from authcore.core.config import AppSettings
from authcore.models.permission import Permission
from authcore.models.role import Role
from authcore.models.role_assignment import RoleAssignment
from authcore.services.cache import (
    CacheBackendError,
    InMemoryPermissionCache,
    PermissionCacheService,
    RedisPermissionCache,
    build_permission_cache,
)
from authcore.services.credentials import CredentialStore
from authcore.services.errors import PermissionStoreUnavailable
from authcore.services.resolver import PermissionResolver
from authcore.services.role_store import RoleStore
from authcore.services.roles import RoleService


class StubResolver:
    def __init__(self, permissions: frozenset) -> None:
        self.permissions = permissions
        self.calls = 0

    def resolve_effective_permissions(self, principal_id):  # noqa: ANN001
        self.calls += 1
        return self.permissions


class FailingCache(InMemoryPermissionCache):
    def get(self, principal_id):  # noqa: ANN001
        raise CacheBackendError("down")

    def set(self, principal_id, permissions, *, ttl_seconds):  # noqa: ANN001
        raise CacheBackendError("down")

    def delete(self, principal_ids):  # noqa: ANN001
        raise CacheBackendError("down")

    def clear(self) -> None:
        raise CacheBackendError("down")


def test_in_memory_cache_expires_entries() -> None:
    now = [100.0]
    cache = InMemoryPermissionCache(clock=lambda: now[0])
    cache.set("p1", frozenset({"a"}), ttl_seconds=10)

    assert cache.get("p1") == frozenset({"a"})
    now[0] += 11
    assert cache.get("p1") is None
    assert len(cache) == 0


def test_get_or_compute_caches_resolver_result() -> None:
    resolver = StubResolver(frozenset({"member.view"}))
    service = PermissionCacheService(InMemoryPermissionCache(), resolver, ttl_seconds=60)
    principal_id = uuid4()

    assert service.get_or_compute(principal_id) == frozenset({"member.view"})
    assert service.get_or_compute(principal_id) == frozenset({"member.view"})
    assert resolver.calls == 1

    service.invalidate(principal_id)
    resolver.permissions = frozenset()
    assert service.get_or_compute(principal_id) == frozenset()
    assert resolver.calls == 2


def test_backend_failure_falls_through_to_resolver() -> None:
    resolver = StubResolver(frozenset({"member.view"}))
    service = PermissionCacheService(FailingCache(), resolver, ttl_seconds=60)

    assert service.get_or_compute(uuid4()) == frozenset({"member.view"})
    assert resolver.calls == 1


def test_failed_eviction_escalates_to_flush_and_surfaces_outage() -> None:
    service = PermissionCacheService(FailingCache(), StubResolver(frozenset()), ttl_seconds=60)

    with pytest.raises(PermissionStoreUnavailable):
        service.invalidate(uuid4())


def test_invalidate_role_evicts_holders_of_descendant_roles(session, permission_cache, cache_service) -> None:  # noqa: ANN001
    from authcore.models.role_hierarchy import RoleHierarchy

    base = Role(name="base", permissions=[Permission(name="member.view")])
    child = Role(name="child")
    other = Role(name="other")
    session.add_all([base, child, other])
    session.flush()
    session.add(RoleHierarchy(parent_role_id=base.id, child_role_id=child.id))

    credentials = CredentialStore(session)
    child_holder = credentials.create_principal(username="child-holder", password="pw-123456")
    other_holder = credentials.create_principal(username="other-holder", password="pw-123456")
    session.add_all(
        [
            RoleAssignment(principal_id=child_holder.id, role_id=child.id),
            RoleAssignment(principal_id=other_holder.id, role_id=other.id),
        ]
    )
    session.flush()

    assert cache_service.get_or_compute(child_holder.id) == frozenset({"member.view"})
    cache_service.get_or_compute(other_holder.id)
    assert len(permission_cache) == 2

    assert cache_service.invalidate_role(base.id) == 1
    assert permission_cache.get(str(child_holder.id)) is None
    assert permission_cache.get(str(other_holder.id)) == frozenset()


def test_build_permission_cache_picks_backend_from_settings() -> None:
    assert isinstance(build_permission_cache(AppSettings(redis_url=None, redis_token=None)), InMemoryPermissionCache)
    redis_settings = AppSettings(redis_url="https://cache.example.test", redis_token="token")
    assert isinstance(build_permission_cache(redis_settings), RedisPermissionCache)


def _redis_with(responses: List[dict], commands: List[list]) -> RedisPermissionCache:
    def handler(request: httpx.Request) -> httpx.Response:
        commands.append(json.loads(request.content))
        return httpx.Response(200, json=responses.pop(0) if responses else {"result": "OK"})

    client = httpx.Client(base_url="https://cache.example.test", transport=httpx.MockTransport(handler))
    return RedisPermissionCache(url="https://cache.example.test", token="t", prefix="authcore", client=client)


def test_redis_cache_speaks_the_rest_protocol() -> None:
    commands: List[list] = []
    cache = _redis_with([{"result": "OK"}, {"result": 1}, {"result": json.dumps(["a", "b"])}], commands)

    cache.set("p1", frozenset({"b", "a"}), ttl_seconds=30)
    assert cache.get("p1") == frozenset({"a", "b"})

    assert commands[0] == ["SET", "authcore:perms:p1", json.dumps(["a", "b"]), "PX", "30000"]
    assert commands[1] == ["SADD", "authcore:principals", "p1"]
    assert commands[2] == ["GET", "authcore:perms:p1"]


def test_redis_cache_delete_and_clear() -> None:
    commands: List[list] = []
    cache = _redis_with([{"result": 1}, {"result": 1}, {"result": ["p1", "p2"]}], commands)

    cache.delete(["p1"])
    cache.clear()

    assert commands[0] == ["DEL", "authcore:perms:p1"]
    assert commands[1] == ["SREM", "authcore:principals", "p1"]
    assert commands[2] == ["SMEMBERS", "authcore:principals"]
    assert commands[3] == ["DEL", "authcore:perms:p1", "authcore:perms:p2"]
    assert commands[4] == ["DEL", "authcore:principals"]


def test_redis_errors_become_backend_errors() -> None:
    commands: List[list] = []
    cache = _redis_with([{"error": "WRONGTYPE"}], commands)

    with pytest.raises(CacheBackendError):
        cache.get("p1")


def test_invalidate_all_leaves_cache_consistent_with_resolver(session, permission_cache, cache_service) -> None:  # noqa: ANN001
    role = Role(name="viewer", permissions=[Permission(name="member.view")])
    session.add(role)
    holder = CredentialStore(session).create_principal(username="holder", password="pw-123456")
    session.add(RoleAssignment(principal_id=holder.id, role_id=role.id))
    session.flush()
    resolver = PermissionResolver(RoleStore(session))

    permission_cache.set(str(holder.id), frozenset({"stale.grant"}), ttl_seconds=300)
    permission_cache.set("someone-else", frozenset({"stale.grant"}), ttl_seconds=300)
    cache_service.invalidate_all()

    assert len(permission_cache) == 0
    assert cache_service.get_or_compute(holder.id) == resolver.resolve_effective_permissions(holder.id)
    assert permission_cache.get(str(holder.id)) == frozenset({"member.view"})


def test_invalidate_all_surfaces_backend_outage() -> None:
    service = PermissionCacheService(FailingCache(), StubResolver(frozenset()), ttl_seconds=60)

    with pytest.raises(PermissionStoreUnavailable):
        service.invalidate_all()


def test_warm_up_replaces_a_stale_entry() -> None:
    resolver = StubResolver(frozenset({"member.view"}))
    cache = InMemoryPermissionCache()
    service = PermissionCacheService(cache, resolver, ttl_seconds=60)
    principal_id = uuid4()
    cache.set(str(principal_id), frozenset({"member.edit"}), ttl_seconds=60)

    assert service.warm_up(principal_id) == frozenset({"member.view"})
    assert cache.get(str(principal_id)) == frozenset({"member.view"})
    assert resolver.calls == 1


def _seed_viewer(file_sessions):  # noqa: ANN001
    with file_sessions() as setup:
        role = Role(name="viewer", permissions=[Permission(name="member.view")])
        setup.add(role)
        holder = CredentialStore(setup).create_principal(username="holder", password="pw-123456")
        setup.add(RoleAssignment(principal_id=holder.id, role_id=role.id))
        setup.commit()
        return role.id, holder.id


def test_check_between_flush_and_commit_does_not_leave_stale_entry(  # noqa: ANN001
    file_sessions, permission_cache, audit_sink, context
) -> None:
    role_id, principal_id = _seed_viewer(file_sessions)
    writer, reader = file_sessions(), file_sessions()
    try:
        writer_cache = PermissionCacheService(permission_cache, PermissionResolver(RoleStore(writer)), ttl_seconds=300)
        reader_cache = PermissionCacheService(permission_cache, PermissionResolver(RoleStore(reader)), ttl_seconds=300)
        service = RoleService(writer, cache_service=writer_cache, audit=audit_sink)

        service.set_role_permissions(role_id, [], context=context)
        # The reader only sees committed rows, so it caches the old grant.
        assert reader_cache.get_or_compute(principal_id) == frozenset({"member.view"})
        reader.rollback()

        writer.commit()

        assert permission_cache.get(str(principal_id)) is None
        assert reader_cache.get_or_compute(principal_id) == frozenset()
    finally:
        writer.close()
        reader.close()


def test_rollback_discards_pending_evictions(file_sessions, permission_cache, audit_sink, context) -> None:  # noqa: ANN001
    role_id, principal_id = _seed_viewer(file_sessions)
    writer = file_sessions()
    try:
        cache_service = PermissionCacheService(permission_cache, PermissionResolver(RoleStore(writer)), ttl_seconds=300)
        RoleService(writer, cache_service=cache_service, audit=audit_sink).set_role_permissions(
            role_id, [], context=context
        )
        writer.rollback()
        assert "authcore.pending_evictions" not in writer.info

        assert cache_service.get_or_compute(principal_id) == frozenset({"member.view"})
        writer.commit()
        assert permission_cache.get(str(principal_id)) == frozenset({"member.view"})
    finally:
        writer.close()
