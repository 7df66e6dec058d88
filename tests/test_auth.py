from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from authcore.core.database import session_scope
from authcore.models.auth_session import AuthSession, SessionStatus
from authcore.models.permission import Permission
from authcore.models.principal import Principal
from authcore.models.role import Role
from authcore.models.role_assignment import RoleAssignment
from authcore.services.auth import AuthService
from authcore.services.cache import PermissionCacheService
from authcore.services.credentials import CredentialStore
from authcore.services.errors import (
    AccountLocked,
    InsufficientPermission,
    InvalidCredentials,
    InvalidRefreshToken,
    MembershipInactive,
    RefreshTokenExpired,
    SessionRevokedOrUnknown,
    TokenMalformed,
)
from authcore.services.resolver import PermissionResolver
from authcore.services.role_store import RoleStore
from authcore.services.sessions import DeviceInfo, hash_token

PASSWORD = "s3cret-password"
ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "correct horse battery staple"


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def auth_service(session, signer, cache_service, clock) -> AuthService:  # noqa: ANN001
    return AuthService(session, signer=signer, cache_service=cache_service, clock=clock)


@pytest.fixture()
def principal(session) -> Principal:  # noqa: ANN001
    return CredentialStore(session).create_principal(username="alice", password=PASSWORD)


# Service level


def test_login_issues_tokens_and_records_session(auth_service, principal, session) -> None:  # noqa: ANN001
    result = auth_service.login("alice", PASSWORD, DeviceInfo(user_agent="pytest", ip_address="10.0.0.9"))

    assert result.principal.username == "alice"
    assert result.access_token.token != result.refresh_token.token
    assert len(result.csrf_token) == 64
    record = session.get(AuthSession, result.session_id)
    assert record.token_hash == hash_token(result.refresh_token.token)
    assert record.device_info == "pytest"
    assert result.refresh_token.token not in repr(result)


def test_lockout_after_five_failures(auth_service, principal) -> None:  # noqa: ANN001
    for _ in range(5):
        with pytest.raises(InvalidCredentials):
            auth_service.login("alice", "wrong-password")

    assert principal.is_locked
    # Even the right password is refused once locked.
    with pytest.raises(AccountLocked):
        auth_service.login("alice", PASSWORD)


def test_successful_login_resets_failure_counter(auth_service, principal) -> None:  # noqa: ANN001
    for _ in range(4):
        with pytest.raises(InvalidCredentials):
            auth_service.login("alice", "wrong-password")

    auth_service.login("alice", PASSWORD)
    assert principal.failed_attempts == 0

    for _ in range(4):
        with pytest.raises(InvalidCredentials):
            auth_service.login("alice", "wrong-password")
    assert not principal.is_locked


def test_unknown_user_and_inactive_member_are_rejected(auth_service, principal) -> None:  # noqa: ANN001
    with pytest.raises(InvalidCredentials):
        auth_service.login("mallory", PASSWORD)

    principal.is_active = False
    with pytest.raises(MembershipInactive):
        auth_service.login("alice", PASSWORD)


def test_refresh_rotates_and_rejects_replay(auth_service, principal, session) -> None:  # noqa: ANN001
    first = auth_service.login("alice", PASSWORD)

    second = auth_service.refresh(first.refresh_token.token)

    assert second.refresh_token.token != first.refresh_token.token
    assert session.get(AuthSession, first.session_id).status is SessionStatus.REVOKED
    assert session.get(AuthSession, second.session_id).status is SessionStatus.ACTIVE

    with pytest.raises(SessionRevokedOrUnknown):
        auth_service.refresh(first.refresh_token.token)
    with pytest.raises(InvalidRefreshToken):
        auth_service.refresh("garbage")
    with pytest.raises(InvalidRefreshToken):
        auth_service.refresh(None)


def test_refresh_race_loser_is_rejected(auth_service, principal, monkeypatch) -> None:  # noqa: ANN001
    result = auth_service.login("alice", PASSWORD)
    token = result.refresh_token.token
    # Both requests read the session before either revokes it.
    stale = auth_service.ledger.find_active_by_hash(hash_token(token))

    auth_service.refresh(token)
    monkeypatch.setattr(auth_service.ledger, "find_active_by_hash", lambda token_hash: stale)

    with pytest.raises(SessionRevokedOrUnknown):
        auth_service.refresh(token)


def test_refresh_rejects_an_access_token(auth_service, principal) -> None:  # noqa: ANN001
    result = auth_service.login("alice", PASSWORD)

    with pytest.raises(InvalidRefreshToken):
        auth_service.refresh(result.access_token.token)


def test_refresh_after_session_expiry(auth_service, principal, session, clock) -> None:  # noqa: ANN001
    result = auth_service.login("alice", PASSWORD)
    clock.now = clock.now + timedelta(days=2)

    with pytest.raises(RefreshTokenExpired):
        auth_service.refresh(result.refresh_token.token)

    assert session.get(AuthSession, result.session_id).status is SessionStatus.EXPIRED


def test_refresh_for_locked_principal_revokes_session(auth_service, principal, session) -> None:  # noqa: ANN001
    result = auth_service.login("alice", PASSWORD)
    principal.is_locked = True
    session.flush()

    with pytest.raises(AccountLocked):
        auth_service.refresh(result.refresh_token.token)

    assert session.get(AuthSession, result.session_id).status is SessionStatus.REVOKED


def test_logout_is_idempotent(auth_service, principal) -> None:  # noqa: ANN001
    result = auth_service.login("alice", PASSWORD)

    assert auth_service.logout(result.refresh_token.token) is True
    assert auth_service.logout(result.refresh_token.token) is False
    assert auth_service.logout(None) is False
    with pytest.raises(SessionRevokedOrUnknown):
        auth_service.refresh(result.refresh_token.token)


def test_authorize_and_check_permission(auth_service, principal) -> None:  # noqa: ANN001
    result = auth_service.login("alice", PASSWORD)

    assert auth_service.check_permission(result.access_token.token, "role.view") is False
    with pytest.raises(InsufficientPermission):
        auth_service.authorize(result.access_token.token, "role.view")
    with pytest.raises(TokenMalformed):
        auth_service.check_permission(None, "role.view")


def test_revoke_all_sessions_except_current(auth_service, principal) -> None:  # noqa: ANN001
    current = auth_service.login("alice", PASSWORD)
    auth_service.login("alice", PASSWORD)
    auth_service.login("alice", PASSWORD)

    revoked = auth_service.revoke_all_sessions(principal.id, except_token=current.refresh_token.token)

    assert revoked == 2
    assert [record.id for record in auth_service.list_sessions(principal.id)] == [current.session_id]


def test_concurrent_failures_are_all_counted(file_sessions) -> None:  # noqa: ANN001
    with file_sessions() as setup:
        principal_id = CredentialStore(setup).create_principal(username="bob", password=PASSWORD).id
        setup.commit()

    first, second = file_sessions(), file_sessions()
    try:
        # Both attempts load the principal before either records its failure.
        first_view = first.get(Principal, principal_id)
        second_view = second.get(Principal, principal_id)
        CredentialStore(first, max_failed_attempts=2).record_login_outcome(first_view, success=False)
        first.commit()
        CredentialStore(second, max_failed_attempts=2).record_login_outcome(second_view, success=False)
        second.commit()

        assert first_view.failed_attempts == 1
        assert second_view.failed_attempts == 2
        assert second_view.is_locked
    finally:
        first.close()
        second.close()

    with file_sessions() as check:
        stored = check.get(Principal, principal_id)
        assert (stored.failed_attempts, stored.is_locked) == (2, True)


def test_unknown_user_still_spends_a_password_check(auth_service, monkeypatch) -> None:  # noqa: ANN001
    checked = []
    monkeypatch.setattr("authcore.services.auth.burn_password_check", checked.append)

    with pytest.raises(InvalidCredentials):
        auth_service.login("mallory", PASSWORD)

    assert checked == [PASSWORD]


def test_remember_me_extends_session_across_rotation(auth_service, principal, session, signer, clock) -> None:  # noqa: ANN001
    plain = auth_service.login("alice", PASSWORD)
    remembered = auth_service.login("alice", PASSWORD, remember=True)

    assert session.get(AuthSession, plain.session_id).remember_me is False
    record = session.get(AuthSession, remembered.session_id)
    assert record.remember_me is True
    assert remembered.refresh_token.expires_in == signer.config.remember_ttl
    assert record.expires_at - record.issued_at == timedelta(seconds=signer.config.remember_ttl)

    # Past the plain lifetime, the remembered session still rotates.
    clock.now = clock.now + timedelta(days=2)
    rotated = auth_service.refresh(remembered.refresh_token.token)

    assert session.get(AuthSession, rotated.session_id).remember_me is True
    assert rotated.refresh_token.expires_in == signer.config.remember_ttl


def test_check_any_and_all_permissions(auth_service, principal, session) -> None:  # noqa: ANN001
    role = Role(name="viewer", permissions=[Permission(name="member.view")])
    session.add(role)
    session.flush()
    session.add(RoleAssignment(principal_id=principal.id, role_id=role.id))
    session.flush()
    token = auth_service.login("alice", PASSWORD).access_token.token

    assert auth_service.check_any_permission(token, ["member.edit", "member.view"]) is True
    assert auth_service.check_all_permissions(token, ["member.edit", "member.view"]) is False
    assert auth_service.check_all_permissions(token, ["member.view"]) is True
    assert auth_service.check_any_permission(token, []) is False
    assert auth_service.check_all_permissions(token, []) is True
    with pytest.raises(TokenMalformed):
        auth_service.check_any_permission(None, ["member.view"])


def test_refresh_race_across_sessions(file_sessions, signer, permission_cache, monkeypatch) -> None:  # noqa: ANN001
    def service_for(db_session):  # noqa: ANN001
        cache_service = PermissionCacheService(
            permission_cache, PermissionResolver(RoleStore(db_session)), ttl_seconds=300
        )
        return AuthService(db_session, signer=signer, cache_service=cache_service)

    with file_sessions() as setup:
        CredentialStore(setup).create_principal(username="alice", password=PASSWORD)
        token = service_for(setup).login("alice", PASSWORD).refresh_token.token
        setup.commit()

    first, second = file_sessions(), file_sessions()
    try:
        winner, loser = service_for(first), service_for(second)
        # Both requests find the active session before either revokes it.
        seen_by_loser = loser.ledger.find_active_by_hash(hash_token(token))
        assert winner.ledger.find_active_by_hash(hash_token(token)) is not None

        winner.refresh(token)
        first.commit()

        monkeypatch.setattr(loser.ledger, "find_active_by_hash", lambda token_hash: seen_by_loser)
        with pytest.raises(SessionRevokedOrUnknown):
            loser.refresh(token)
        second.rollback()
    finally:
        first.close()
        second.close()

    with file_sessions() as check:
        statuses = sorted(status.value for status in check.scalars(select(AuthSession.status)))
        assert statuses == ["active", "revoked"]


# API level


def _login(client: TestClient, username: str = ADMIN_USERNAME, password: str = ADMIN_PASSWORD):
    return client.post("/api/v1/auth/login", json={"username": username, "password": password})


def test_login_sets_cookies_and_hides_refresh_token(client: TestClient, admin) -> None:  # noqa: ANN001
    response = _login(client)

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert "refresh_token" not in body
    assert body["principal"]["roles"] == ["Administrator"]
    set_cookie = response.headers.get_list("set-cookie")
    refresh_cookie = next(header for header in set_cookie if header.startswith("authcore_refresh_token="))
    assert "HttpOnly" in refresh_cookie
    assert "Path=/api/v1/auth" in refresh_cookie
    assert client.cookies.get("authcore_csrf_token") == body["csrf_token"]


def test_login_failures_are_generic(client: TestClient, admin) -> None:  # noqa: ANN001
    unknown = _login(client, "nobody", "whatever")
    wrong = _login(client, ADMIN_USERNAME, "wrong-password")

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json() == {"detail": "Invalid credentials"}


def test_lockout_over_http(client: TestClient, make_principal) -> None:  # noqa: ANN001
    make_principal("bob", PASSWORD)
    for _ in range(5):
        assert _login(client, "bob", "wrong-password").status_code == 401

    locked = _login(client, "bob", PASSWORD)
    assert locked.status_code == 423

    with session_scope() as session:
        bob = session.scalar(select(Principal).where(Principal.username == "bob"))
        assert bob.is_locked
        assert bob.failed_attempts == 5


def test_refresh_with_cookie_requires_csrf_header(client: TestClient, admin) -> None:  # noqa: ANN001
    login = _login(client)
    csrf = login.json()["csrf_token"]

    missing = client.post("/api/v1/auth/refresh")
    assert missing.status_code == 403

    mismatched = client.post("/api/v1/auth/refresh", headers={"X-CSRF-Token": "nope"})
    assert mismatched.status_code == 403

    rotated = client.post("/api/v1/auth/refresh", headers={"X-CSRF-Token": csrf})
    assert rotated.status_code == 200
    assert rotated.json()["csrf_token"] != csrf


def test_refresh_rotation_and_replay_over_http(client: TestClient, admin) -> None:  # noqa: ANN001
    _login(client)
    old_refresh = client.cookies.get("authcore_refresh_token")
    client.cookies.clear()

    rotated = client.post("/api/v1/auth/refresh", json={"refresh_token": old_refresh})
    assert rotated.status_code == 200
    new_refresh = client.cookies.get("authcore_refresh_token")
    assert new_refresh and new_refresh != old_refresh
    client.cookies.clear()

    replay = client.post("/api/v1/auth/refresh", json={"refresh_token": old_refresh})
    assert replay.status_code == 401
    assert replay.json() == {"detail": "Invalid or expired token"}

    # The rotated token still works.
    assert client.post("/api/v1/auth/refresh", json={"refresh_token": new_refresh}).status_code == 200


def test_logout_revokes_session_and_clears_cookies(client: TestClient, admin) -> None:  # noqa: ANN001
    login = _login(client)
    csrf = login.json()["csrf_token"]
    refresh_token = client.cookies.get("authcore_refresh_token")

    response = client.post("/api/v1/auth/logout", headers={"X-CSRF-Token": csrf})
    assert response.status_code == 200
    assert response.json() == {"status": "logged_out"}
    assert client.cookies.get("authcore_refresh_token") is None

    again = client.post("/api/v1/auth/logout", json={"refresh_token": refresh_token})
    assert again.status_code == 200

    refresh = client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert refresh.status_code == 401


def test_permissions_and_session_management(client: TestClient, admin_headers: dict, admin) -> None:  # noqa: ANN001
    response = client.get("/api/v1/auth/me/permissions", headers=admin_headers)
    assert response.status_code == 200
    assert "role.manage" in response.json()["permissions"]

    _login(client)
    client.cookies.clear()
    sessions = client.get("/api/v1/auth/sessions", headers=admin_headers).json()
    assert len(sessions) == 2
    assert all(item["status"] == "active" for item in sessions)

    response = client.delete(f"/api/v1/auth/sessions/{sessions[0]['id']}", headers=admin_headers)
    assert response.status_code == 204
    assert len(client.get("/api/v1/auth/sessions", headers=admin_headers).json()) == 1

    missing = client.delete(f"/api/v1/auth/sessions/{sessions[0]['id']}", headers=admin_headers)
    assert missing.status_code == 204

    revoked = client.post("/api/v1/auth/sessions/revoke-all", headers=admin_headers)
    assert revoked.json() == {"revoked": 1}
    assert client.get("/api/v1/auth/sessions", headers=admin_headers).json() == []


def test_invalid_access_token_is_rejected(client: TestClient) -> None:
    response = client.get("/api/v1/auth/me/permissions", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_authorize_endpoint(client: TestClient, admin_headers: dict) -> None:
    allowed = client.post("/api/v1/authorize", json={"permission": "audit.view"}, headers=admin_headers)
    denied = client.post("/api/v1/authorize", json={"permission": "billing.refund"}, headers=admin_headers)

    assert allowed.json() == {"authorized": True}
    assert denied.json() == {"authorized": False}


def test_remember_me_login_sets_long_lived_cookie(client: TestClient, admin) -> None:  # noqa: ANN001
    response = client.post(
        "/api/v1/auth/login",
        json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD, "remember": True},
    )

    assert response.status_code == 200
    refresh_cookie = next(
        header for header in response.headers.get_list("set-cookie") if header.startswith("authcore_refresh_token=")
    )
    assert "Max-Age=604800" in refresh_cookie


def test_authorize_endpoint_with_permission_lists(client: TestClient, admin_headers: dict) -> None:
    wanted = ["audit.view", "billing.refund"]

    any_of = client.post("/api/v1/authorize", json={"permissions": wanted, "mode": "any"}, headers=admin_headers)
    all_of = client.post("/api/v1/authorize", json={"permissions": wanted}, headers=admin_headers)

    assert any_of.json() == {"authorized": True}
    assert all_of.json() == {"authorized": False}


def test_authorize_endpoint_rejects_blank_or_ambiguous_requests(client: TestClient, admin_headers: dict) -> None:
    for payload in (
        {"permission": "   "},
        {"permissions": ["audit.view", "  "]},
        {},
        {"permission": "audit.view", "permissions": ["audit.view"]},
    ):
        response = client.post("/api/v1/authorize", json=payload, headers=admin_headers)
        assert response.status_code == 422, payload
