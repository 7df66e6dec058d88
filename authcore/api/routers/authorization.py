"""Permission check endpoint."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from authcore.api.dependencies import get_access_token, get_auth_service
from authcore.schemas.authorization import AuthorizationRequest, AuthorizationResponse
from authcore.services.auth import AuthService

router = APIRouter()


@router.post(
    "/authorize",
    response_model=AuthorizationResponse,
)
def authorize(
    payload: AuthorizationRequest,
    token: Optional[str] = Depends(get_access_token),
    service: AuthService = Depends(get_auth_service),
) -> AuthorizationResponse:
    if payload.permission is not None:
        return AuthorizationResponse(authorized=service.check_permission(token, payload.permission))
    if payload.mode == "any":
        return AuthorizationResponse(authorized=service.check_any_permission(token, payload.permissions))
    return AuthorizationResponse(authorized=service.check_all_permissions(token, payload.permissions))
