"""Session ledger: durable record of issued refresh tokens."""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from authcore.models.auth_session import AuthSession, SessionStatus

_TOKEN_HASH_RE = re.compile(r"^[0-9a-f]{64}$")


def hash_token(raw_token: str) -> str:
    """One-way hash stored in place of the raw refresh token."""

    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DeviceInfo:
    """Client metadata recorded with a session."""

    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


class SessionLedger:
    """Creates, finds, and revokes refresh-token sessions.

    Only ``hash_token(raw)`` is ever written; lookups take the hash so a raw
    token can never be compared against storage.
    """

    def __init__(
        self,
        session: Session,
        *,
        ttl_seconds: int = 86400,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session = session
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._logger = logging.getLogger("authcore.services.sessions")

    def create(
        self,
        principal_id: UUID,
        raw_refresh_token: str,
        device: Optional[DeviceInfo] = None,
        *,
        remember: bool = False,
        ttl_seconds: Optional[int] = None,
    ) -> AuthSession:
        device = device or DeviceInfo()
        ttl = timedelta(seconds=ttl_seconds) if ttl_seconds is not None else self._ttl
        issued_at = self._clock()
        record = AuthSession(
            principal_id=principal_id,
            token_hash=hash_token(raw_refresh_token),
            device_info=device.user_agent[:255] if device.user_agent else None,
            ip_address=device.ip_address,
            issued_at=issued_at,
            expires_at=issued_at + ttl,
            status=SessionStatus.ACTIVE,
            remember_me=remember,
        )
        self._session.add(record)
        self._session.flush()
        self._logger.info(
            "session_created",
            extra={"session_id": str(record.id), "principal_id": str(principal_id)},
        )
        return record

    def get(self, session_id: UUID) -> Optional[AuthSession]:
        return self._session.get(AuthSession, session_id)

    def find_active_by_hash(self, token_hash: str) -> Optional[AuthSession]:
        if not _TOKEN_HASH_RE.match(token_hash or ""):
            raise ValueError("find_active_by_hash expects a SHA-256 hex digest")
        return self._session.scalar(
            select(AuthSession).where(
                AuthSession.token_hash == token_hash,
                AuthSession.status == SessionStatus.ACTIVE,
            )
        )

    def revoke_if_active(
        self,
        session_id: UUID,
        *,
        status: SessionStatus = SessionStatus.REVOKED,
    ) -> bool:
        """Conditionally move an active session to a terminal state.

        Returns ``True`` only for the caller whose update matched the active
        row; concurrent callers racing on the same session get ``False``.
        """

        result = self._session.execute(
            update(AuthSession)
            .where(AuthSession.id == session_id, AuthSession.status == SessionStatus.ACTIVE)
            .values(status=status, revoked_at=self._clock())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def revoke(self, session_id: UUID) -> None:
        """Revoke a session; revoking an already-terminal or unknown session is a no-op."""

        if self.revoke_if_active(session_id):
            self._logger.info("session_revoked", extra={"session_id": str(session_id)})

    def revoke_all_for_principal(self, principal_id: UUID, *, except_hash: Optional[str] = None) -> int:
        stmt = update(AuthSession).where(
            AuthSession.principal_id == principal_id,
            AuthSession.status == SessionStatus.ACTIVE,
        )
        if except_hash:
            stmt = stmt.where(AuthSession.token_hash != except_hash)
        result = self._session.execute(
            stmt.values(status=SessionStatus.REVOKED, revoked_at=self._clock()).execution_options(
                synchronize_session="fetch"
            )
        )
        count = result.rowcount or 0
        self._logger.info(
            "sessions_revoked_for_principal",
            extra={"principal_id": str(principal_id), "count": count, "kept_current": bool(except_hash)},
        )
        return count

    def list_for_principal(self, principal_id: UUID, *, include_inactive: bool = False) -> List[AuthSession]:
        stmt = select(AuthSession).where(AuthSession.principal_id == principal_id)
        if not include_inactive:
            stmt = stmt.where(
                AuthSession.status == SessionStatus.ACTIVE,
                AuthSession.expires_at > self._clock(),
            )
        stmt = stmt.order_by(AuthSession.issued_at.desc())
        return list(self._session.scalars(stmt))

    def purge_expired(self, retention: timedelta = timedelta(days=7)) -> int:
        """Hard-delete sessions whose expiry is older than the retention window."""

        cutoff = self._clock() - retention
        result = self._session.execute(
            delete(AuthSession)
            .where(AuthSession.expires_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        self._logger.info("sessions_purged", extra={"count": count, "cutoff": cutoff.isoformat()})
        return count
