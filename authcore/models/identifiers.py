"""Named identifiers for roles and permissions.

Roles and permissions travel through the domain as small value types so a
role name can never be passed where a permission name is expected. Storage
columns and wire payloads keep the plain string form.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class RoleName:
    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError("Role name cannot be blank")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, order=True)
class PermissionName:
    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError("Permission name cannot be blank")

    def __str__(self) -> str:
        return self.value
