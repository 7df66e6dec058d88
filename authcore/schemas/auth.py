"""Login, refresh, and logout schemas."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=150)
    password: str = Field(..., min_length=1, max_length=1024)
    remember: bool = Field(default=False, description="Extend the refresh session lifetime.")


class RefreshRequest(BaseModel):
    """Body fallback for clients that cannot hold the refresh cookie."""

    refresh_token: Optional[str] = None


class LogoutRequest(RefreshRequest):
    pass


class PrincipalSummaryResponse(BaseModel):
    id: UUID
    username: str
    email: Optional[str] = None
    roles: List[str] = Field(default_factory=list)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    csrf_token: str
    principal: PrincipalSummaryResponse


class PermissionsResponse(BaseModel):
    principal_id: UUID
    permissions: List[str]
