"""Temporal role assignment linking principals to roles."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authcore.models.base import Base, TimestampMixin, utcnow
from authcore.models.types import GUID, UTCDateTime


class AssignmentStatus(str, Enum):
    """Assignments are soft-revoked so history is retained."""

    ACTIVE = "active"
    REVOKED = "revoked"


class RoleAssignment(TimestampMixin, Base):
    """Grants a role to a principal within an optional date window."""

    __tablename__ = "role_assignments"
    __table_args__ = (
        Index("ix_role_assignments_principal", "principal_id"),
        Index("ix_role_assignments_role", "role_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    principal_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("principals.id", ondelete="CASCADE"),
        nullable=False,
    )
    role_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[AssignmentStatus] = mapped_column(
        SqlEnum(AssignmentStatus, name="role_assignment_status", native_enum=False),
        nullable=False,
        default=AssignmentStatus.ACTIVE,
    )
    assigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    notes: Mapped[Optional[str]] = mapped_column(String(length=1024), nullable=True)

    role: Mapped["Role"] = relationship("Role", back_populates="assignments")

    @property
    def is_active(self) -> bool:
        return self.status is AssignmentStatus.ACTIVE

    def is_effective_on(self, as_of: date) -> bool:
        if not self.is_active:
            return False
        if self.start_date is not None and self.start_date > as_of:
            return False
        if self.end_date is not None and self.end_date < as_of:
            return False
        return True

    def overlaps(self, start: Optional[date], end: Optional[date]) -> bool:
        """Whether this assignment's window intersects ``[start, end]``."""

        lower = self.start_date or date.min
        upper = self.end_date or date.max
        return lower <= (end or date.max) and (start or date.min) <= upper
