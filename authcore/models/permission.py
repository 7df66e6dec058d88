"""Permission model representing atomic capabilities."""

from __future__ import annotations

import uuid
from typing import List

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authcore.models.base import Base, TimestampMixin
from authcore.models.types import GUID


class Permission(TimestampMixin, Base):
    """Atomic permission identified by a unique name such as ``member.view``."""

    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("name", name="uq_permissions_name"),
        Index("ix_permissions_category", "category"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(length=120), nullable=True)
    description: Mapped[str | None] = mapped_column(String(length=1024), nullable=True)

    roles: Mapped[List["Role"]] = relationship(
        "Role",
        secondary="role_permissions",
        back_populates="permissions",
    )
