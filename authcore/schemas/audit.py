"""Audit event and audit listing schemas."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AuditEvent(BaseModel):
    """Canonical audit event emitted by every role, grant, and assignment mutation."""

    event_id: UUID = Field(default_factory=uuid4, description="Idempotency key for the writer.")
    source: str = Field(default="authcore", max_length=128)
    action_type: str = Field(..., max_length=120)
    performed_by: Optional[UUID] = Field(default=None)
    target_role_id: Optional[UUID] = Field(default=None)
    target_permission_id: Optional[UUID] = Field(default=None)
    target_principal_id: Optional[UUID] = Field(default=None)
    old_value: Optional[Any] = Field(default=None)
    new_value: Optional[Any] = Field(default=None)
    ip_address: Optional[str] = Field(default=None, max_length=45)
    user_agent: Optional[str] = Field(default=None, max_length=512)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _enforce_timezone(self) -> "AuditEvent":
        timestamp = self.occurred_at
        if timestamp.tzinfo is None:
            self.occurred_at = timestamp.replace(tzinfo=timezone.utc)
        else:
            self.occurred_at = timestamp.astimezone(timezone.utc)
        return self


class AuditRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sequence: int
    action_type: str
    performed_by: Optional[UUID]
    target_role_id: Optional[UUID]
    target_permission_id: Optional[UUID]
    target_principal_id: Optional[UUID]
    old_value: Optional[Any]
    new_value: Optional[Any]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime
