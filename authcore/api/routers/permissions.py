"""Permission catalogue endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from authcore.api.dependencies import get_role_service, request_context, require_permission
from authcore.models.permissions_constants import PERMISSION_MANAGE, ROLE_VIEW
from authcore.schemas.permission import PermissionCreate, PermissionGroupResponse, PermissionResponse
from authcore.services.roles import RoleService
from authcore.services.signer import TokenClaims

router = APIRouter()


@router.post(
    "",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_permission(
    payload: PermissionCreate,
    request: Request,
    claims: TokenClaims = Depends(require_permission(PERMISSION_MANAGE)),
    service: RoleService = Depends(get_role_service),
) -> PermissionResponse:
    permission = service.create_permission(payload, context=request_context(request, claims))
    return PermissionResponse.model_validate(permission)


@router.get(
    "",
    response_model=List[PermissionResponse],
)
def list_permissions(
    category: Optional[str] = Query(default=None),
    _: TokenClaims = Depends(require_permission(ROLE_VIEW)),
    service: RoleService = Depends(get_role_service),
) -> List[PermissionResponse]:
    return [PermissionResponse.model_validate(permission) for permission in service.list_permissions(category=category)]


@router.get(
    "/categories",
    response_model=List[str],
)
def list_permission_categories(
    _: TokenClaims = Depends(require_permission(ROLE_VIEW)),
    service: RoleService = Depends(get_role_service),
) -> List[str]:
    return service.list_permission_categories()


@router.get(
    "/grouped",
    response_model=List[PermissionGroupResponse],
)
def list_permissions_grouped(
    _: TokenClaims = Depends(require_permission(ROLE_VIEW)),
    service: RoleService = Depends(get_role_service),
) -> List[PermissionGroupResponse]:
    return [
        PermissionGroupResponse(
            category=category,
            permissions=[PermissionResponse.model_validate(permission) for permission in permissions],
        )
        for category, permissions in service.list_permissions_grouped()
    ]
