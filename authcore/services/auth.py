"""Login, refresh-token rotation, logout, and permission checks."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy.orm import Session

from authcore.core.logging import token_preview
from authcore.models.auth_session import AuthSession, SessionStatus
from authcore.models.identifiers import PermissionName
from authcore.models.principal import Principal
from authcore.services.cache import PermissionCacheService
from authcore.services.credentials import CredentialStore, burn_password_check, verify_password
from authcore.services.errors import (
    AccountLocked,
    InsufficientPermission,
    InvalidCredentials,
    InvalidRefreshToken,
    MembershipInactive,
    RefreshTokenExpired,
    SessionNotFound,
    SessionRevokedOrUnknown,
    TokenBadSignature,
    TokenExpired,
    TokenMalformed,
)
from authcore.services.resolver import PermissionResolver
from authcore.services.role_store import RoleStore
from authcore.services.sessions import DeviceInfo, SessionLedger, hash_token
from authcore.services.signer import IssuedToken, Signer, TokenClaims, TokenClass, TokenFailure

LOGGER = logging.getLogger("authcore.services.auth")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoginState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    CREDENTIALS_CHECKED = "credentials_checked"
    LOCKED = "locked"
    REJECTED = "rejected"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class PrincipalSummary:
    id: UUID
    username: str
    email: Optional[str]
    roles: Tuple[str, ...]


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a login or refresh.

    ``refresh_token`` is meant for the transport's cookie or secure storage,
    never for the response body.
    """

    access_token: IssuedToken
    refresh_token: IssuedToken = field(repr=False)
    csrf_token: str = field(repr=False)
    principal: PrincipalSummary
    session_id: UUID


_ACCESS_FAILURES = {
    TokenFailure.EXPIRED: TokenExpired,
    TokenFailure.BAD_SIGNATURE: TokenBadSignature,
    TokenFailure.MALFORMED: TokenMalformed,
}


class AuthService:
    """Drives a login attempt through its states and owns refresh rotation.

    Each call is one unit of work on the given session. Failure paths that
    must survive the caller's rollback (the failed-login counter, expiring or
    revoking a session) commit before raising.
    """

    def __init__(
        self,
        session: Session,
        *,
        signer: Signer,
        cache_service: PermissionCacheService,
        resolver: Optional[PermissionResolver] = None,
        max_failed_attempts: int = 5,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session = session
        self._signer = signer
        self._cache = cache_service
        self._resolver = resolver or PermissionResolver(RoleStore(session))
        self._credentials = CredentialStore(session, max_failed_attempts=max_failed_attempts)
        self._ledger = SessionLedger(session, ttl_seconds=signer.config.refresh_ttl, clock=clock)
        self._clock = clock

    @property
    def ledger(self) -> SessionLedger:
        return self._ledger

    def login(
        self,
        username: str,
        password: str,
        device: Optional[DeviceInfo] = None,
        *,
        remember: bool = False,
    ) -> AuthResult:
        """Check credentials and open a session; ``remember`` extends the refresh lifetime."""

        device = device or DeviceInfo()
        state = LoginState.UNAUTHENTICATED

        principal = self._credentials.find_by_username(username.strip()) if username else None
        if principal is None:
            burn_password_check(password)
            self._log_login(LoginState.REJECTED, None, device, reason="unknown_principal")
            raise InvalidCredentials("Invalid credentials")

        if principal.is_locked:
            self._log_login(LoginState.LOCKED, principal, device, reason="locked")
            raise AccountLocked("Account is locked; contact an administrator")

        password_ok = verify_password(password, principal.password_hash)
        state = LoginState.CREDENTIALS_CHECKED
        LOGGER.debug("login_state", extra={"principal_id": str(principal.id), "state": state.value})

        if not password_ok:
            self._credentials.record_login_outcome(principal, success=False)
            self._session.commit()
            self._log_login(
                LoginState.REJECTED,
                principal,
                device,
                reason="bad_password",
                failed_attempts=principal.failed_attempts,
            )
            raise InvalidCredentials("Invalid credentials")

        if not principal.is_active:
            self._log_login(LoginState.REJECTED, principal, device, reason="membership_inactive")
            raise MembershipInactive("Invalid credentials")

        self._credentials.record_login_outcome(principal, success=True)
        result = self._issue(principal, device, remember=remember)
        # A fresh login starts from freshly resolved permissions.
        self._cache.warm_up(principal.id)
        self._log_login(LoginState.AUTHENTICATED, principal, device, session_id=result.session_id)
        return result

    def refresh(self, raw_refresh_token: Optional[str], device: Optional[DeviceInfo] = None) -> AuthResult:
        """Rotate a refresh token. Each token succeeds at most once."""

        device = device or DeviceInfo()
        if not raw_refresh_token:
            raise InvalidRefreshToken("Refresh token missing")

        verified = self._signer.verify(raw_refresh_token, TokenClass.REFRESH)
        claims = verified.claims
        if claims is None:
            LOGGER.info(
                "refresh_rejected",
                extra={
                    "failure": verified.failure.value if verified.failure else None,
                    "token_preview": token_preview(raw_refresh_token),
                    "ip_address": device.ip_address,
                },
            )
            raise InvalidRefreshToken("Invalid refresh token")

        record = self._ledger.find_active_by_hash(hash_token(raw_refresh_token))
        if record is None or record.principal_id != claims.principal_id:
            LOGGER.warning(
                "refresh_replay_detected",
                extra={
                    "principal_id": str(claims.principal_id),
                    "token_preview": token_preview(raw_refresh_token),
                    "ip_address": device.ip_address,
                },
            )
            raise SessionRevokedOrUnknown("Session revoked or unknown")

        if record.expires_at <= self._clock():
            self._ledger.revoke_if_active(record.id, status=SessionStatus.EXPIRED)
            self._session.commit()
            LOGGER.info(
                "refresh_session_expired",
                extra={"session_id": str(record.id), "principal_id": str(record.principal_id)},
            )
            raise RefreshTokenExpired("Refresh token expired")

        if not self._ledger.revoke_if_active(record.id):
            LOGGER.warning(
                "refresh_race_lost",
                extra={
                    "session_id": str(record.id),
                    "principal_id": str(record.principal_id),
                    "ip_address": device.ip_address,
                },
            )
            raise SessionRevokedOrUnknown("Session revoked or unknown")

        principal = self._credentials.get(claims.principal_id)
        if principal is None or principal.is_locked or not principal.is_active:
            # The old session stays revoked.
            self._session.commit()
            LOGGER.warning(
                "refresh_principal_unavailable",
                extra={"principal_id": str(claims.principal_id), "session_id": str(record.id)},
            )
            if principal is not None and principal.is_locked:
                raise AccountLocked("Account is locked; contact an administrator")
            raise MembershipInactive("Invalid credentials")

        result = self._issue(principal, device, remember=record.remember_me)
        LOGGER.info(
            "refresh_rotated",
            extra={
                "principal_id": str(principal.id),
                "old_session_id": str(record.id),
                "session_id": str(result.session_id),
            },
        )
        return result

    def logout(self, raw_refresh_token: Optional[str]) -> bool:
        """Revoke the session behind the token. Unknown or revoked tokens are a no-op."""

        if not raw_refresh_token:
            return False
        record = self._ledger.find_active_by_hash(hash_token(raw_refresh_token))
        if record is None:
            LOGGER.info("logout_noop", extra={"token_preview": token_preview(raw_refresh_token)})
            return False
        self._ledger.revoke(record.id)
        LOGGER.info(
            "logout",
            extra={"session_id": str(record.id), "principal_id": str(record.principal_id)},
        )
        return True

    def authenticate(self, access_token: Optional[str]) -> TokenClaims:
        if not access_token:
            raise TokenMalformed("Access token missing")
        verified = self._signer.verify(access_token, TokenClass.ACCESS)
        if verified.claims is None:
            raise _ACCESS_FAILURES[verified.failure or TokenFailure.MALFORMED]("Invalid or expired token")
        return verified.claims

    def check_permission(self, access_token: Optional[str], permission: Union[str, PermissionName]) -> bool:
        """Allow or deny; token failures raise, a missing permission returns ``False``."""

        return self._allows(self.authenticate(access_token), permission)

    def authorize(self, access_token: Optional[str], permission: Union[str, PermissionName]) -> TokenClaims:
        """Like ``check_permission`` but raises ``InsufficientPermission`` on deny."""

        claims = self.authenticate(access_token)
        if not self._allows(claims, permission):
            raise InsufficientPermission("Forbidden")
        return claims

    def check_any_permission(
        self,
        access_token: Optional[str],
        permissions: Iterable[Union[str, PermissionName]],
    ) -> bool:
        """True when the caller holds at least one of ``permissions``."""

        claims = self.authenticate(access_token)
        held = self.current_permissions(claims.principal_id)
        return any(name.value in held for name in _names(permissions))

    def check_all_permissions(
        self,
        access_token: Optional[str],
        permissions: Iterable[Union[str, PermissionName]],
    ) -> bool:
        """True when the caller holds every one of ``permissions``; vacuously true for none."""

        claims = self.authenticate(access_token)
        held = self.current_permissions(claims.principal_id)
        return all(name.value in held for name in _names(permissions))

    def current_permissions(self, principal_id: UUID) -> FrozenSet[str]:
        return self._cache.get_or_compute(principal_id)

    def list_sessions(self, principal_id: UUID) -> List[AuthSession]:
        return self._ledger.list_for_principal(principal_id)

    def revoke_session(self, session_id: UUID, principal_id: UUID) -> None:
        record = self._ledger.get(session_id)
        if record is None or record.principal_id != principal_id:
            raise SessionNotFound(f"Session {session_id} not found")
        self._ledger.revoke(session_id)

    def revoke_all_sessions(self, principal_id: UUID, *, except_token: Optional[str] = None) -> int:
        except_hash = hash_token(except_token) if except_token else None
        return self._ledger.revoke_all_for_principal(principal_id, except_hash=except_hash)

    def _allows(self, claims: TokenClaims, permission: Union[str, PermissionName]) -> bool:
        name = permission if isinstance(permission, PermissionName) else PermissionName(permission)
        allowed = name.value in self.current_permissions(claims.principal_id)
        if not allowed:
            LOGGER.info(
                "permission_denied",
                extra={"principal_id": str(claims.principal_id), "permission": name.value},
            )
        return allowed

    def _issue(self, principal: Principal, device: DeviceInfo, *, remember: bool = False) -> AuthResult:
        roles = tuple(sorted(self._resolver.resolve_effective_role_names(principal.id)))
        access = self._signer.issue_access(principal.id, principal.username, roles)
        refresh = self._signer.issue_refresh(principal.id, principal.username, remember=remember)
        record = self._ledger.create(
            principal.id,
            refresh.token,
            device,
            remember=remember,
            ttl_seconds=refresh.expires_in,
        )
        return AuthResult(
            access_token=access,
            refresh_token=refresh,
            csrf_token=secrets.token_hex(32),
            principal=PrincipalSummary(
                id=principal.id,
                username=principal.username,
                email=principal.email,
                roles=roles,
            ),
            session_id=record.id,
        )

    @staticmethod
    def _log_login(
        state: LoginState,
        principal: Optional[Principal],
        device: DeviceInfo,
        **fields: object,
    ) -> None:
        extra = {
            "state": state.value,
            "principal_id": str(principal.id) if principal else None,
            "ip_address": device.ip_address,
        }
        extra.update({key: str(value) if isinstance(value, UUID) else value for key, value in fields.items()})
        level = logging.INFO if state is LoginState.AUTHENTICATED else logging.WARNING
        LOGGER.log(level, "login_" + state.value, extra=extra)


def _names(permissions: Iterable[Union[str, PermissionName]]) -> List[PermissionName]:
    return [item if isinstance(item, PermissionName) else PermissionName(item) for item in permissions]
