"""Authenticatable principal."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import Base, TimestampMixin
from authcore.models.types import GUID, UTCDateTime


class Principal(TimestampMixin, Base):
    """Identity with credentials and lockout state.

    Rows are never deleted; membership is deactivated by an external process
    through ``is_active``.
    """

    __tablename__ = "principals"
    __table_args__ = (UniqueConstraint("username", name="uq_principals_username"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(length=150), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(length=255), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(length=255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    failed_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
