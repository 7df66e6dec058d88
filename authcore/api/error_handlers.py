"""Exception handlers for the FastAPI app.

Credential and token failures collapse to one generic message each so a
client cannot tell which check failed.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from authcore.services.credentials import PrincipalConflictError
from authcore.services.errors import (
    AccountLocked,
    AssignmentNotFound,
    AuthenticationError,
    HierarchyEdgeNotFound,
    InsufficientPermission,
    PermissionNotFound,
    PermissionStoreUnavailable,
    PrincipalNotFound,
    RoleConflict,
    RoleNotFound,
    RoleServiceError,
    SessionNotFound,
    TokenError,
)

LOGGER = logging.getLogger("authcore.api.errors")

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AccountLocked)
    async def account_locked_handler(request: Request, exc: AccountLocked) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(
            status_code=423,
            content={"detail": "Account locked. Contact an administrator."},
        )

    @app.exception_handler(TokenError)
    async def token_error_handler(request: Request, exc: TokenError) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(
            status_code=401,
            content={"detail": "Invalid or expired token"},
            headers=_BEARER_CHALLENGE,
        )

    @app.exception_handler(AuthenticationError)
    async def authentication_handler(request: Request, exc: AuthenticationError) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(status_code=401, content={"detail": "Invalid credentials"})

    @app.exception_handler(InsufficientPermission)
    async def forbidden_handler(request: Request, exc: InsufficientPermission) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(status_code=403, content={"detail": "Forbidden"})

    @app.exception_handler(PermissionStoreUnavailable)
    async def store_unavailable_handler(  # noqa: WPS430
        request: Request, exc: PermissionStoreUnavailable
    ) -> JSONResponse:
        LOGGER.error("permission_store_unavailable_response", extra={"path": request.url.path})
        return JSONResponse(
            status_code=503,
            content={"detail": "Authorization temporarily unavailable"},
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(SessionNotFound)
    async def session_not_found_handler(request: Request, exc: SessionNotFound) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    for not_found in (RoleNotFound, PermissionNotFound, AssignmentNotFound, PrincipalNotFound, HierarchyEdgeNotFound):
        app.add_exception_handler(not_found, _not_found_handler)

    @app.exception_handler(RoleConflict)
    async def role_conflict_handler(request: Request, exc: RoleConflict) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(status_code=409, content={"detail": str(exc), "code": exc.code})

    @app.exception_handler(PrincipalConflictError)
    async def principal_conflict_handler(  # noqa: WPS430
        request: Request, exc: PrincipalConflictError
    ) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(RoleServiceError)
    async def role_service_handler(request: Request, exc: RoleServiceError) -> JSONResponse:  # noqa: WPS430
        return JSONResponse(status_code=400, content={"detail": str(exc), "code": exc.code})


async def _not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})
