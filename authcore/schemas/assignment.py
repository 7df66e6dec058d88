"""Role assignment schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from authcore.models.role_assignment import AssignmentStatus


class RoleAssignmentCreate(BaseModel):
    principal_id: UUID
    role_id: UUID
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=1024)

    @model_validator(mode="after")
    def _check_window(self) -> "RoleAssignmentCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        return self


class RoleAssignmentResponse(BaseModel):
    id: UUID
    principal_id: UUID
    role_id: UUID
    start_date: Optional[date]
    end_date: Optional[date]
    status: AssignmentStatus
    assigned_by: Optional[UUID]
    assigned_at: datetime
    notes: Optional[str]

    model_config = ConfigDict(from_attributes=True)
