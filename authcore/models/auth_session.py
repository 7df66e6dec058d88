"""Refresh-token sessions."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Enum as SqlEnum
from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import Base
from authcore.models.types import GUID, UTCDateTime


class SessionStatus(str, Enum):
    """Session lifecycle. ``ACTIVE`` moves to a terminal state exactly once."""

    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class AuthSession(Base):
    """One issued refresh token, identified by the SHA-256 of its raw value."""

    __tablename__ = "auth_sessions"
    __table_args__ = (
        UniqueConstraint("token_hash", name="uq_auth_sessions_token_hash"),
        Index("ix_auth_sessions_principal_status", "principal_id", "status"),
        Index("ix_auth_sessions_expires_at", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    principal_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("principals.id", ondelete="CASCADE"),
        nullable=False,
    )
    token_hash: Mapped[str] = mapped_column(String(length=64), nullable=False)
    device_info: Mapped[Optional[str]] = mapped_column(String(length=255), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(length=45), nullable=True)
    issued_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[SessionStatus] = mapped_column(
        SqlEnum(SessionStatus, name="auth_session_status", native_enum=False),
        nullable=False,
        default=SessionStatus.ACTIVE,
    )
    revoked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    remember_me: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def is_revoked(self) -> bool:
        return self.status is not SessionStatus.ACTIVE
