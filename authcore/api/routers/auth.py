"""Login, refresh, logout, and session management endpoints."""

from __future__ import annotations

import secrets
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request, Response, status

from authcore.api.dependencies import (
    get_app_settings,
    get_auth_service,
    get_current_claims,
    get_device_info,
)
from authcore.core.config import AppSettings
from authcore.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    PermissionsResponse,
    PrincipalSummaryResponse,
    RefreshRequest,
    TokenResponse,
)
from authcore.schemas.session import RevokeAllResponse, SessionResponse
from authcore.services.auth import AuthResult, AuthService
from authcore.services.sessions import DeviceInfo
from authcore.services.signer import TokenClaims

router = APIRouter()

_REFRESH_COOKIE_PATH = "/api/v1/auth"


@router.post("/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    device: DeviceInfo = Depends(get_device_info),
    settings: AppSettings = Depends(get_app_settings),
) -> TokenResponse:
    result = service.login(payload.username, payload.password, device, remember=payload.remember)
    _set_auth_cookies(response, result, settings)
    return _to_token_response(result)


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    request: Request,
    response: Response,
    payload: Optional[RefreshRequest] = Body(default=None),
    x_csrf_token: Optional[str] = Header(default=None, alias="X-CSRF-Token"),
    service: AuthService = Depends(get_auth_service),
    device: DeviceInfo = Depends(get_device_info),
    settings: AppSettings = Depends(get_app_settings),
) -> TokenResponse:
    raw_token = _refresh_token_from(request, payload, x_csrf_token, settings)
    result = service.refresh(raw_token, device)
    _set_auth_cookies(response, result, settings)
    return _to_token_response(result)


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    payload: Optional[LogoutRequest] = Body(default=None),
    x_csrf_token: Optional[str] = Header(default=None, alias="X-CSRF-Token"),
    service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_app_settings),
) -> dict[str, str]:
    raw_token = _refresh_token_from(request, payload, x_csrf_token, settings)
    service.logout(raw_token)
    response.delete_cookie(settings.refresh_cookie_name, path=_REFRESH_COOKIE_PATH)
    response.delete_cookie(settings.csrf_cookie_name, path="/")
    return {"status": "logged_out"}


@router.get("/me/permissions", response_model=PermissionsResponse)
def my_permissions(
    claims: TokenClaims = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
) -> PermissionsResponse:
    permissions = service.current_permissions(claims.principal_id)
    return PermissionsResponse(principal_id=claims.principal_id, permissions=sorted(permissions))


@router.get("/sessions", response_model=List[SessionResponse])
def list_sessions(
    claims: TokenClaims = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
) -> List[SessionResponse]:
    return [SessionResponse.model_validate(record) for record in service.list_sessions(claims.principal_id)]


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_session(
    session_id: UUID,
    claims: TokenClaims = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    service.revoke_session(session_id, claims.principal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sessions/revoke-all", response_model=RevokeAllResponse)
def revoke_all_sessions(
    request: Request,
    keep_current: bool = Query(default=True),
    claims: TokenClaims = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_app_settings),
) -> RevokeAllResponse:
    current = request.cookies.get(settings.refresh_cookie_name) if keep_current else None
    revoked = service.revoke_all_sessions(claims.principal_id, except_token=current)
    return RevokeAllResponse(revoked=revoked)


def _refresh_token_from(
    request: Request,
    payload: Optional[RefreshRequest],
    csrf_header: Optional[str],
    settings: AppSettings,
) -> Optional[str]:
    """Prefer the cookie; a cookie-borne token needs a matching CSRF header."""

    cookie_token = request.cookies.get(settings.refresh_cookie_name)
    if cookie_token:
        csrf_cookie = request.cookies.get(settings.csrf_cookie_name)
        if not csrf_cookie or not csrf_header or not secrets.compare_digest(csrf_cookie, csrf_header):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="CSRF token mismatch")
        return cookie_token
    return payload.refresh_token if payload else None


def _set_auth_cookies(response: Response, result: AuthResult, settings: AppSettings) -> None:
    response.set_cookie(
        settings.refresh_cookie_name,
        result.refresh_token.token,
        max_age=result.refresh_token.expires_in,
        path=_REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )
    response.set_cookie(
        settings.csrf_cookie_name,
        result.csrf_token,
        max_age=result.refresh_token.expires_in,
        path="/",
        httponly=False,
        secure=settings.cookie_secure,
        samesite="strict",
    )


def _to_token_response(result: AuthResult) -> TokenResponse:
    return TokenResponse(
        access_token=result.access_token.token,
        expires_in=result.access_token.expires_in,
        csrf_token=result.csrf_token,
        principal=PrincipalSummaryResponse(
            id=result.principal.id,
            username=result.principal.username,
            email=result.principal.email,
            roles=list(result.principal.roles),
        ),
    )
