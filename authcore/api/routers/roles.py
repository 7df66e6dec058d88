"""Role, grant, and hierarchy endpoints."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status

from authcore.api.dependencies import get_role_service, request_context, require_permission
from authcore.models.permissions_constants import ROLE_MANAGE, ROLE_VIEW
from authcore.models.role import Role
from authcore.schemas.role import (
    RoleCreate,
    RoleHierarchyCreate,
    RoleHierarchyResponse,
    RolePermissionsUpdate,
    RoleResponse,
    RoleUpdate,
)
from authcore.services.roles import RoleService
from authcore.services.signer import TokenClaims

router = APIRouter()


@router.post(
    "",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_role(
    payload: RoleCreate,
    request: Request,
    claims: TokenClaims = Depends(require_permission(ROLE_MANAGE)),
    service: RoleService = Depends(get_role_service),
) -> RoleResponse:
    role = service.create_role(payload, context=request_context(request, claims))
    return _to_role_response(role)


@router.get(
    "",
    response_model=List[RoleResponse],
)
def list_roles(
    include_inactive: bool = Query(default=True),
    _: TokenClaims = Depends(require_permission(ROLE_VIEW)),
    service: RoleService = Depends(get_role_service),
) -> List[RoleResponse]:
    return [_to_role_response(role) for role in service.list_roles(include_inactive=include_inactive)]


@router.get(
    "/{role_id}",
    response_model=RoleResponse,
)
def get_role(
    role_id: UUID,
    _: TokenClaims = Depends(require_permission(ROLE_VIEW)),
    service: RoleService = Depends(get_role_service),
) -> RoleResponse:
    return _to_role_response(service.get_role(role_id))


@router.patch(
    "/{role_id}",
    response_model=RoleResponse,
)
def update_role(
    role_id: UUID,
    payload: RoleUpdate,
    request: Request,
    claims: TokenClaims = Depends(require_permission(ROLE_MANAGE)),
    service: RoleService = Depends(get_role_service),
) -> RoleResponse:
    role = service.update_role(role_id, payload, context=request_context(request, claims))
    return _to_role_response(role)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_role(
    role_id: UUID,
    request: Request,
    claims: TokenClaims = Depends(require_permission(ROLE_MANAGE)),
    service: RoleService = Depends(get_role_service),
) -> Response:
    service.delete_role(role_id, context=request_context(request, claims))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/{role_id}/permissions",
    response_model=RoleResponse,
)
def set_role_permissions(
    role_id: UUID,
    payload: RolePermissionsUpdate,
    request: Request,
    claims: TokenClaims = Depends(require_permission(ROLE_MANAGE)),
    service: RoleService = Depends(get_role_service),
) -> RoleResponse:
    role = service.set_role_permissions(role_id, payload.permission_ids, context=request_context(request, claims))
    return _to_role_response(role)


@router.get(
    "/{role_id}/parents",
    response_model=List[RoleHierarchyResponse],
)
def list_parents(
    role_id: UUID,
    _: TokenClaims = Depends(require_permission(ROLE_VIEW)),
    service: RoleService = Depends(get_role_service),
) -> List[RoleHierarchyResponse]:
    return [RoleHierarchyResponse.model_validate(edge) for edge in service.list_parents(role_id)]


@router.post(
    "/{role_id}/parents",
    response_model=RoleHierarchyResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_parent(
    role_id: UUID,
    payload: RoleHierarchyCreate,
    request: Request,
    claims: TokenClaims = Depends(require_permission(ROLE_MANAGE)),
    service: RoleService = Depends(get_role_service),
) -> RoleHierarchyResponse:
    edge = service.add_hierarchy_edge(
        payload.parent_role_id,
        role_id,
        context=request_context(request, claims),
        inheritance_level=payload.inheritance_level,
    )
    return RoleHierarchyResponse.model_validate(edge)


@router.delete("/{role_id}/parents/{parent_role_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_parent(
    role_id: UUID,
    parent_role_id: UUID,
    request: Request,
    claims: TokenClaims = Depends(require_permission(ROLE_MANAGE)),
    service: RoleService = Depends(get_role_service),
) -> Response:
    service.remove_hierarchy_edge(parent_role_id, role_id, context=request_context(request, claims))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _to_role_response(role: Role) -> RoleResponse:
    return RoleResponse(
        id=role.id,
        name=role.name,
        description=role.description,
        is_active=role.is_active,
        display_order=role.display_order,
        permissions=[permission.name for permission in role.permissions],
        created_at=role.created_at,
        updated_at=role.updated_at,
    )
