"""Authorization endpoint schemas."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _strip_permission(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("permission cannot be blank")
    return value


class AuthorizationRequest(BaseModel):
    """Either one ``permission`` or a list of ``permissions`` matched by ``mode``."""

    permission: Optional[str] = Field(default=None, min_length=1, max_length=255)
    permissions: List[str] = Field(default_factory=list, max_length=100)
    mode: Literal["any", "all"] = "all"

    @field_validator("permission")
    @classmethod
    def _strip_single(cls, value: Optional[str]) -> Optional[str]:
        return _strip_permission(value) if value is not None else None

    @field_validator("permissions")
    @classmethod
    def _strip_many(cls, values: List[str]) -> List[str]:
        return [_strip_permission(value) for value in values]

    @model_validator(mode="after")
    def _require_one_form(self) -> "AuthorizationRequest":
        if (self.permission is None) == (not self.permissions):
            raise ValueError("provide exactly one of permission or permissions")
        return self


class AuthorizationResponse(BaseModel):
    authorized: bool
