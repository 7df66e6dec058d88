"""Inheritance edges between roles."""

from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import Base, TimestampMixin
from authcore.models.types import GUID


class RoleHierarchy(TimestampMixin, Base):
    """Directed edge; the child role inherits every grant of the parent."""

    __tablename__ = "role_hierarchy"
    __table_args__ = (
        CheckConstraint("parent_role_id <> child_role_id", name="ck_role_hierarchy_no_self_edge"),
        Index("ix_role_hierarchy_child", "child_role_id"),
    )

    parent_role_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    child_role_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    inheritance_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
