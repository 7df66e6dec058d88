"""Role assignment endpoints."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from authcore.api.dependencies import get_role_service, request_context, require_permission
from authcore.models.permissions_constants import ROLE_ASSIGN, ROLE_VIEW
from authcore.schemas.assignment import RoleAssignmentCreate, RoleAssignmentResponse
from authcore.services.roles import RoleService
from authcore.services.signer import TokenClaims

router = APIRouter()


@router.post(
    "",
    response_model=RoleAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def assign_role(
    payload: RoleAssignmentCreate,
    request: Request,
    claims: TokenClaims = Depends(require_permission(ROLE_ASSIGN)),
    service: RoleService = Depends(get_role_service),
) -> RoleAssignmentResponse:
    assignment = service.assign_role(payload, context=request_context(request, claims))
    return RoleAssignmentResponse.model_validate(assignment)


@router.get(
    "",
    response_model=List[RoleAssignmentResponse],
)
def list_assignments(
    principal_id: Optional[UUID] = Query(default=None),
    role_id: Optional[UUID] = Query(default=None),
    include_revoked: bool = Query(default=False),
    _: TokenClaims = Depends(require_permission(ROLE_VIEW)),
    service: RoleService = Depends(get_role_service),
) -> List[RoleAssignmentResponse]:
    assignments = service.list_assignments(
        principal_id=principal_id,
        role_id=role_id,
        include_revoked=include_revoked,
    )
    return [RoleAssignmentResponse.model_validate(assignment) for assignment in assignments]


@router.delete(
    "",
    response_model=List[RoleAssignmentResponse],
)
def remove_role(
    request: Request,
    principal_id: UUID = Query(...),
    role_id: UUID = Query(...),
    claims: TokenClaims = Depends(require_permission(ROLE_ASSIGN)),
    service: RoleService = Depends(get_role_service),
) -> List[RoleAssignmentResponse]:
    revoked = service.remove_role(principal_id, role_id, context=request_context(request, claims))
    return [RoleAssignmentResponse.model_validate(assignment) for assignment in revoked]
