"""Audit logging service."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from authcore.models.audit_log import AuditLog
from authcore.schemas.audit import AuditEvent

HASH_VERSION = 1
GENESIS_HASH = "0" * 64


def _optional_str(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


def _utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def canonicalize_audit_entry_payload(
    *,
    sequence: int,
    hash_version: int,
    event_id: str,
    source: str,
    action_type: str,
    performed_by: Optional[UUID],
    target_role_id: Optional[UUID],
    target_permission_id: Optional[UUID],
    target_principal_id: Optional[UUID],
    old_value: Any,
    new_value: Any,
    ip_address: Optional[str],
    user_agent: Optional[str],
    created_at: datetime,
    previous_hash: str,
) -> str:
    payload = {
        "sequence": sequence,
        "hash_version": hash_version,
        "event_id": event_id,
        "source": source,
        "action_type": action_type,
        "performed_by": _optional_str(performed_by),
        "target_role_id": _optional_str(target_role_id),
        "target_permission_id": _optional_str(target_permission_id),
        "target_principal_id": _optional_str(target_principal_id),
        "old_value": old_value,
        "new_value": new_value,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "created_at": _utc_iso(created_at),
        "previous_hash": previous_hash,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def compute_audit_entry_hash(previous_hash: str, canonical_payload: str) -> str:
    return hashlib.sha256((previous_hash + canonical_payload).encode("utf-8")).hexdigest()


@dataclass
class AuditFilters:
    """Filters for audit listings."""

    action_type: Optional[str] = None
    performed_by: Optional[UUID] = None
    target_role_id: Optional[UUID] = None
    target_principal_id: Optional[UUID] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class AuditService:
    """Persists audit entries into the hash chain and queries them back."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._logger = logging.getLogger("authcore.audit")

    def record_event(self, event: AuditEvent) -> AuditLog:
        """Append an entry; replays of an already-stored event id are ignored."""

        event_id = str(event.event_id)
        existing = self._session.scalar(select(AuditLog).where(AuditLog.event_id == event_id))
        if existing:
            return existing

        previous_sequence, previous_hash = self._lock_chain_tip()
        next_sequence = previous_sequence + 1

        old_value = self._jsonable(event.old_value)
        new_value = self._jsonable(event.new_value)
        canonical_payload = canonicalize_audit_entry_payload(
            sequence=next_sequence,
            hash_version=HASH_VERSION,
            event_id=event_id,
            source=event.source,
            action_type=event.action_type,
            performed_by=event.performed_by,
            target_role_id=event.target_role_id,
            target_permission_id=event.target_permission_id,
            target_principal_id=event.target_principal_id,
            old_value=old_value,
            new_value=new_value,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            created_at=event.occurred_at,
            previous_hash=previous_hash,
        )
        entry_hash = compute_audit_entry_hash(previous_hash, canonical_payload)

        entry = AuditLog(
            sequence=next_sequence,
            previous_hash=previous_hash,
            entry_hash=entry_hash,
            hash_version=HASH_VERSION,
            event_id=event_id,
            source=event.source,
            action_type=event.action_type,
            performed_by=event.performed_by,
            target_role_id=event.target_role_id,
            target_permission_id=event.target_permission_id,
            target_principal_id=event.target_principal_id,
            old_value=old_value,
            new_value=new_value,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            created_at=event.occurred_at,
        )
        self._session.add(entry)
        self._session.flush()

        self._logger.info(
            "audit_event",
            extra={
                "sequence": next_sequence,
                "entry_hash": entry_hash,
                "action_type": event.action_type,
                "performed_by": _optional_str(event.performed_by),
                "target_role_id": _optional_str(event.target_role_id),
                "target_principal_id": _optional_str(event.target_principal_id),
                "event_id": event_id,
            },
        )
        return entry

    def list_records(self, filters: Optional[AuditFilters] = None, *, limit: int = 100) -> List[AuditLog]:
        filters = filters or AuditFilters()
        stmt = select(AuditLog)
        if filters.action_type:
            stmt = stmt.where(AuditLog.action_type == filters.action_type)
        if filters.performed_by:
            stmt = stmt.where(AuditLog.performed_by == filters.performed_by)
        if filters.target_role_id:
            stmt = stmt.where(AuditLog.target_role_id == filters.target_role_id)
        if filters.target_principal_id:
            stmt = stmt.where(AuditLog.target_principal_id == filters.target_principal_id)
        if filters.date_from:
            stmt = stmt.where(AuditLog.created_at >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(AuditLog.created_at <= filters.date_to)
        stmt = stmt.order_by(AuditLog.sequence.desc()).limit(limit)
        return list(self._session.scalars(stmt))

    def _lock_chain_tip(self) -> tuple[int, str]:
        stmt = select(AuditLog.sequence, AuditLog.entry_hash).order_by(AuditLog.sequence.desc()).limit(1)
        if self._session.get_bind().dialect.name != "sqlite":
            stmt = stmt.with_for_update(nowait=False)
        result = self._session.execute(stmt).first()
        if result is None:
            return 0, GENESIS_HASH
        sequence, entry_hash = result
        return int(sequence), str(entry_hash)

    @staticmethod
    def _jsonable(value: Any) -> Any:
        # Round-trip through JSON so the hashed form equals what the column stores.
        if value is None:
            return None
        return json.loads(json.dumps(value, default=str))
