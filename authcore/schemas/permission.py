"""Permission schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PermissionCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=255)
    category: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = Field(default=None, max_length=1024)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 3:
            raise ValueError("name must have at least 3 non-blank characters")
        return value


class PermissionResponse(PermissionCreate):
    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PermissionGroupResponse(BaseModel):
    """Permissions sharing one category; ``category`` is null for uncategorised ones."""

    category: Optional[str]
    permissions: List[PermissionResponse]
