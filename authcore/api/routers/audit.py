"""Audit trail listing."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from authcore.api.dependencies import get_db_session, require_permission
from authcore.models.permissions_constants import AUDIT_VIEW
from authcore.schemas.audit import AuditRecordResponse
from authcore.services.audit import AuditFilters, AuditService
from authcore.services.signer import TokenClaims

router = APIRouter()


@router.get(
    "",
    response_model=List[AuditRecordResponse],
)
def list_audit_records(
    action_type: Optional[str] = Query(default=None),
    performed_by: Optional[UUID] = Query(default=None),
    target_role_id: Optional[UUID] = Query(default=None),
    target_principal_id: Optional[UUID] = Query(default=None),
    date_from: Optional[datetime] = Query(default=None),
    date_to: Optional[datetime] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    _: TokenClaims = Depends(require_permission(AUDIT_VIEW)),
    session: Session = Depends(get_db_session),
) -> List[AuditRecordResponse]:
    filters = AuditFilters(
        action_type=action_type,
        performed_by=performed_by,
        target_role_id=target_role_id,
        target_principal_id=target_principal_id,
        date_from=date_from,
        date_to=date_to,
    )
    records = AuditService(session).list_records(filters, limit=limit)
    return [AuditRecordResponse.model_validate(record) for record in records]
