"""Role and hierarchy schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RoleBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=120)
    description: Optional[str] = Field(default=None, max_length=512)
    is_active: bool = True
    display_order: int = 0

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("name must have at least 2 non-blank characters")
        return value


class RoleCreate(RoleBase):
    permissions: List[str] = Field(default_factory=list, description="Permission names granted directly.")

    @field_validator("permissions")
    @classmethod
    def _strip_permissions(cls, values: List[str]) -> List[str]:
        stripped = [value.strip() for value in values]
        if any(not value for value in stripped):
            raise ValueError("permission names cannot be blank")
        return stripped


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=120)
    description: Optional[str] = Field(default=None, max_length=512)
    is_active: Optional[bool] = None
    display_order: Optional[int] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if len(value) < 2:
            raise ValueError("name must have at least 2 non-blank characters")
        return value


class RolePermissionsUpdate(BaseModel):
    """Replaces the full set of direct grants of a role."""

    permission_ids: List[UUID] = Field(default_factory=list)


class RoleHierarchyCreate(BaseModel):
    parent_role_id: UUID
    inheritance_level: int = Field(default=1, ge=1)


class RoleHierarchyResponse(BaseModel):
    parent_role_id: UUID
    child_role_id: UUID
    inheritance_level: int

    model_config = ConfigDict(from_attributes=True)


class RoleResponse(RoleBase):
    id: UUID
    permissions: List[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
