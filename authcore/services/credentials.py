"""Credential store backed by the principals table."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional
from uuid import UUID

import bcrypt
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authcore.models.principal import Principal
from authcore.services.errors import AuthCoreError


def hash_password(raw_password: str) -> str:
    """Hash a raw password using bcrypt and return the utf-8 string."""

    return bcrypt.hashpw(raw_password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    return hash_password(secrets.token_hex(16))


def burn_password_check(raw_password: str) -> None:
    """Spend one bcrypt comparison so unknown usernames cost as much as known ones."""

    verify_password(raw_password, _dummy_password_hash())


def verify_password(raw_password: str, password_hash: Optional[str]) -> bool:
    """Verify raw password against a stored bcrypt hash."""

    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(raw_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


class PrincipalConflictError(AuthCoreError):
    code = "principal_conflict"


class CredentialStore:
    """Looks up principals and records the outcome of password checks."""

    def __init__(self, session: Session, *, max_failed_attempts: int = 5) -> None:
        self._session = session
        self._max_failed_attempts = max_failed_attempts
        self._logger = logging.getLogger("authcore.services.credentials")

    def find_by_username(self, username: str) -> Optional[Principal]:
        return self._session.scalar(select(Principal).where(Principal.username == username))

    def get(self, principal_id: UUID) -> Optional[Principal]:
        return self._session.get(Principal, principal_id)

    def record_login_outcome(self, principal: Principal, *, success: bool) -> Principal:
        """Reset the failure counter on success, or count the failure and lock at the threshold."""

        if success:
            principal.failed_attempts = 0
            principal.last_login_at = datetime.now(timezone.utc)
            self._session.add(principal)
            self._session.flush()
            return principal

        # Increment and lock in SQL so concurrent failures are all counted.
        self._session.execute(
            update(Principal)
            .where(Principal.id == principal.id)
            .values(failed_attempts=Principal.failed_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        locked = self._session.execute(
            update(Principal)
            .where(Principal.id == principal.id)
            .where(Principal.failed_attempts >= self._max_failed_attempts)
            .where(Principal.is_locked.is_(False))
            .values(is_locked=True)
            .execution_options(synchronize_session=False)
        )
        self._session.refresh(principal, attribute_names=["failed_attempts", "is_locked"])
        if locked.rowcount:
            self._logger.warning(
                "principal_locked",
                extra={
                    "principal_id": str(principal.id),
                    "failed_attempts": principal.failed_attempts,
                },
            )
        return principal

    def create_principal(
        self,
        *,
        username: str,
        password: str,
        email: Optional[str] = None,
        email_verified: bool = False,
    ) -> Principal:
        """Provision a principal; used by bootstrap scripts and tests."""

        principal = Principal(
            username=username,
            email=email,
            password_hash=hash_password(password),
            email_verified=email_verified,
        )
        self._session.add(principal)
        try:
            self._session.flush()
        except IntegrityError as exc:
            self._session.rollback()
            raise PrincipalConflictError(f"Principal '{username}' already exists") from exc
        return principal
