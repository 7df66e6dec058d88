"""Signed claim sets for access and refresh tokens."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from uuid import UUID

import jwt

from authcore.core.config import AppSettings
from authcore.core.logging import secret_preview, token_preview
from authcore.services.errors import ConfigurationMissing

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenClass(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenFailure(str, Enum):
    """Why a presented token was rejected."""

    EXPIRED = "expired"
    BAD_SIGNATURE = "bad_signature"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class SignerConfig:
    """Secret material and lifetimes, loaded once at startup."""

    access_secret: str = field(repr=False)
    refresh_secret: str = field(repr=False)
    algorithm: str = "HS256"
    access_ttl: int = 1800
    refresh_ttl: int = 86400
    remember_ttl: int = 604800

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "SignerConfig":
        missing = [
            name
            for name, value in (
                ("AUTHCORE_JWT_SECRET", settings.jwt_secret),
                ("AUTHCORE_JWT_REFRESH_SECRET", settings.jwt_refresh_secret),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ConfigurationMissing(f"Signing secrets not configured: {', '.join(missing)}")
        return cls(
            access_secret=settings.jwt_secret.strip(),
            refresh_secret=settings.jwt_refresh_secret.strip(),
            algorithm=settings.jwt_algorithm,
            access_ttl=settings.access_token_ttl,
            refresh_ttl=settings.refresh_token_ttl,
            remember_ttl=settings.remember_me_ttl,
        )


@dataclass(frozen=True)
class IssuedToken:
    token: str = field(repr=False)
    token_class: TokenClass
    jti: str
    issued_at: datetime
    expires_at: datetime
    expires_in: int


@dataclass(frozen=True)
class TokenClaims:
    principal_id: UUID
    username: str
    token_class: TokenClass
    jti: str
    issued_at: datetime
    expires_at: datetime
    roles: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VerifyResult:
    claims: Optional[TokenClaims] = None
    failure: Optional[TokenFailure] = None

    @property
    def ok(self) -> bool:
        return self.claims is not None


class Signer:
    """Issues and verifies HMAC-signed tokens; a pure function of input and secrets."""

    def __init__(self, config: SignerConfig, *, clock: Clock = _utcnow) -> None:
        self._config = config
        self._clock = clock
        self._logger = logging.getLogger("authcore.services.signer")
        if config.access_secret == config.refresh_secret:
            self._logger.warning("signer_secrets_identical")
        self._logger.info(
            "signer_configured",
            extra={
                "algorithm": config.algorithm,
                "access_secret": secret_preview(config.access_secret),
                "refresh_secret": secret_preview(config.refresh_secret),
            },
        )

    @property
    def config(self) -> SignerConfig:
        return self._config

    def issue_access(self, principal_id: UUID, username: str, roles: Sequence[str]) -> IssuedToken:
        return self._issue(
            TokenClass.ACCESS,
            principal_id,
            username,
            self._config.access_ttl,
            extra={"roles": sorted(roles)},
        )

    def issue_refresh(self, principal_id: UUID, username: str, *, remember: bool = False) -> IssuedToken:
        ttl = self._config.remember_ttl if remember else self._config.refresh_ttl
        return self._issue(TokenClass.REFRESH, principal_id, username, ttl)

    def verify(self, token: str, token_class: TokenClass) -> VerifyResult:
        try:
            payload = jwt.decode(
                token,
                self._secret_for(token_class),
                algorithms=[self._config.algorithm],
                # Time claims are checked below against the signer's clock.
                options={
                    "require": ["exp", "iat", "sub", "type", "jti"],
                    "verify_exp": False,
                    "verify_nbf": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidSignatureError:
            return self._reject(token, token_class, TokenFailure.BAD_SIGNATURE)
        except jwt.InvalidTokenError:
            return self._reject(token, token_class, TokenFailure.MALFORMED)

        if payload.get("type") != token_class.value:
            return self._reject(token, token_class, TokenFailure.MALFORMED)

        now = self._clock().timestamp()
        exp, nbf = payload.get("exp"), payload.get("nbf")
        if not isinstance(exp, (int, float)) or (nbf is not None and not isinstance(nbf, (int, float))):
            return self._reject(token, token_class, TokenFailure.MALFORMED)
        if exp <= now:
            return self._reject(token, token_class, TokenFailure.EXPIRED)
        if nbf is not None and nbf > now:
            return self._reject(token, token_class, TokenFailure.BAD_SIGNATURE)

        try:
            claims = TokenClaims(
                principal_id=UUID(str(payload["sub"])),
                username=str(payload.get("username", "")),
                token_class=token_class,
                jti=str(payload["jti"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                roles=tuple(payload.get("roles") or ()),
            )
        except (ValueError, TypeError):
            return self._reject(token, token_class, TokenFailure.MALFORMED)
        return VerifyResult(claims=claims)

    def _issue(
        self,
        token_class: TokenClass,
        principal_id: UUID,
        username: str,
        ttl: int,
        *,
        extra: Optional[Dict[str, Any]] = None,
    ) -> IssuedToken:
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + timedelta(seconds=ttl)
        jti = secrets.token_urlsafe(16)
        payload: Dict[str, Any] = {
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "sub": str(principal_id),
            "username": username,
            "type": token_class.value,
            "jti": jti,
        }
        if extra:
            payload.update(extra)

        token = jwt.encode(payload, self._secret_for(token_class), algorithm=self._config.algorithm)
        self._logger.debug(
            "token_issued",
            extra={
                "token_class": token_class.value,
                "principal_id": str(principal_id),
                "token_preview": token_preview(token),
            },
        )
        return IssuedToken(
            token=token,
            token_class=token_class,
            jti=jti,
            issued_at=issued_at,
            expires_at=expires_at,
            expires_in=ttl,
        )

    def _secret_for(self, token_class: TokenClass) -> str:
        if token_class is TokenClass.ACCESS:
            return self._config.access_secret
        return self._config.refresh_secret

    def _reject(self, token: str, token_class: TokenClass, failure: TokenFailure) -> VerifyResult:
        self._logger.info(
            "token_rejected",
            extra={
                "token_class": token_class.value,
                "failure": failure.value,
                "token_preview": token_preview(token),
            },
        )
        return VerifyResult(failure=failure)
