"""Dependency injection helpers for FastAPI routes."""

from __future__ import annotations

from typing import Callable, Iterator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from authcore.core.config import AppSettings
from authcore.core.database import get_session
from authcore.events_engine.dispatcher import AuditSink
from authcore.services.auth import AuthService
from authcore.services.cache import PermissionCacheService
from authcore.services.resolver import PermissionResolver
from authcore.services.role_store import RoleStore
from authcore.services.roles import RequestContext, RoleService
from authcore.services.sessions import DeviceInfo
from authcore.services.signer import Signer, TokenClaims

_bearer = HTTPBearer(auto_error=False)


def get_db_session() -> Iterator[Session]:
    yield from get_session()


def get_app_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_signer(request: Request) -> Signer:
    return request.app.state.signer


def get_audit_sink(request: Request) -> AuditSink:
    return request.app.state.audit_dispatcher


def get_resolver(session: Session = Depends(get_db_session)) -> PermissionResolver:
    return PermissionResolver(RoleStore(session))


def get_cache_service(
    request: Request,
    resolver: PermissionResolver = Depends(get_resolver),
    settings: AppSettings = Depends(get_app_settings),
) -> PermissionCacheService:
    return PermissionCacheService(
        request.app.state.permission_cache,
        resolver,
        ttl_seconds=settings.permission_cache_ttl,
    )


def get_auth_service(
    session: Session = Depends(get_db_session),
    signer: Signer = Depends(get_signer),
    resolver: PermissionResolver = Depends(get_resolver),
    cache_service: PermissionCacheService = Depends(get_cache_service),
    settings: AppSettings = Depends(get_app_settings),
) -> AuthService:
    return AuthService(
        session,
        signer=signer,
        cache_service=cache_service,
        resolver=resolver,
        max_failed_attempts=settings.max_failed_logins,
    )


def get_role_service(
    session: Session = Depends(get_db_session),
    resolver: PermissionResolver = Depends(get_resolver),
    cache_service: PermissionCacheService = Depends(get_cache_service),
    audit: AuditSink = Depends(get_audit_sink),
) -> RoleService:
    return RoleService(session, cache_service=cache_service, audit=audit, resolver=resolver)


def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[str]:
    return credentials.credentials if credentials else None


def get_current_claims(
    token: Optional[str] = Depends(get_access_token),
    service: AuthService = Depends(get_auth_service),
) -> TokenClaims:
    return service.authenticate(token)


def require_permission(permission: str) -> Callable[..., TokenClaims]:
    """Route dependency that admits only callers holding ``permission``."""

    def dependency(
        token: Optional[str] = Depends(get_access_token),
        service: AuthService = Depends(get_auth_service),
    ) -> TokenClaims:
        return service.authorize(token, permission)

    return dependency


def get_device_info(request: Request) -> DeviceInfo:
    return DeviceInfo(
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )


def request_context(request: Request, claims: TokenClaims) -> RequestContext:
    device = get_device_info(request)
    return RequestContext(
        actor_id=claims.principal_id,
        ip_address=device.ip_address,
        user_agent=device.user_agent,
    )
