"""Session listing schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from authcore.models.auth_session import SessionStatus


class SessionResponse(BaseModel):
    id: UUID
    device_info: Optional[str]
    ip_address: Optional[str]
    issued_at: datetime
    expires_at: datetime
    status: SessionStatus

    model_config = ConfigDict(from_attributes=True)


class RevokeAllResponse(BaseModel):
    revoked: int
