"""Audit log entries for role, grant, and assignment mutations."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import BigInteger, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from authcore.models.base import Base
from authcore.models.types import GUID, JSONType, UTCDateTime


class AuditLog(Base):
    """Append-only record chained by hash so tampering is detectable."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_action_type", "action_type"),
        Index("ix_audit_logs_performed_by", "performed_by"),
        Index("ix_audit_logs_target_role", "target_role_id"),
        Index("ix_audit_logs_target_principal", "target_principal_id"),
        Index("ix_audit_logs_sequence", "sequence", unique=True),
        UniqueConstraint("event_id", name="uq_audit_logs_event_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    sequence: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), nullable=False)
    previous_hash: Mapped[str] = mapped_column(String(length=64), nullable=False)
    entry_hash: Mapped[str] = mapped_column(String(length=64), nullable=False)
    hash_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    event_id: Mapped[str] = mapped_column(String(length=64), nullable=False)
    source: Mapped[str] = mapped_column(String(length=128), nullable=False, default="authcore")

    action_type: Mapped[str] = mapped_column(String(length=120), nullable=False)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), nullable=True)
    target_role_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), nullable=True)
    target_permission_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), nullable=True)
    target_principal_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), nullable=True)
    old_value: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    new_value: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(length=45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(length=512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
