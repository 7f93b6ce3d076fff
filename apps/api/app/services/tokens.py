"""Access/refresh token issuance, verification and revocation.

Access and refresh tokens are HS256 JWTs signed with distinct secrets. Every
token carries a ``jti`` so it can be revoked individually; revocation
entries live exactly as long as the token they cancel.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apps.api.app.core.errors import (
    RevocationStoreError,
    SessionExpired,
    TokenExpired,
    TokenInvalid,
    TokenRevoked,
)
from apps.api.app.core.logging import get_logger
from apps.api.app.core.security import decode_token, encode_token
from apps.api.app.core.time import utc_now
from apps.api.app.services.revocation import RevocationStore


logger = get_logger(__name__)

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_in: int
    refresh_expires_in: int


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    role: str
    jti: str
    token_type: str
    issued_at: datetime
    expires_at: datetime
    auth_time: datetime


def _from_timestamp(value) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class TokenService:
    def __init__(
        self,
        settings,
        revocation_store: RevocationStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        self.revocation_store = revocation_store
        self.clock = clock
        self.access_ttl = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self.max_session_age = timedelta(hours=settings.MAX_SESSION_HOURS)

    def _secret(self, token_type: str) -> str:
        if token_type == REFRESH:
            return self.settings.JWT_REFRESH_SECRET
        return self.settings.JWT_SECRET

    def create_token(
        self,
        subject: str,
        role: str,
        token_type: str,
        expires_delta: Optional[timedelta] = None,
        auth_time: Optional[datetime] = None,
    ) -> str:
        now = self.clock()
        if expires_delta is None:
            expires_delta = self.refresh_ttl if token_type == REFRESH else self.access_ttl
        claims = {
            "sub": str(subject),
            "role": role,
            "iss": self.settings.JWT_ISSUER,
            "aud": self.settings.JWT_AUDIENCE,
            "iat": now,
            "exp": now + expires_delta,
            "jti": str(uuid.uuid4()),
            "typ": token_type,
            "auth_time": auth_time or now,
        }
        return encode_token(claims, self._secret(token_type))

    def issue_token_pair(self, user, auth_time: Optional[datetime] = None) -> TokenPair:
        auth_time = auth_time or self.clock()
        access_token = self.create_token(user.id, user.role, ACCESS, auth_time=auth_time)
        refresh_token = self.create_token(user.id, user.role, REFRESH, auth_time=auth_time)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_in=int(self.access_ttl.total_seconds()),
            refresh_expires_in=int(self.refresh_ttl.total_seconds()),
        )

    def decode_claims(self, token: str, token_type: str = ACCESS) -> TokenClaims:
        """Check signature, issuer, audience and shape; expiry is left to the caller."""
        payload = decode_token(token, self._secret(token_type)) if token else None
        if payload is None:
            raise TokenInvalid(f"Invalid {token_type} token")
        if payload.get("typ") != token_type or not payload.get("role"):
            raise TokenInvalid(f"Invalid {token_type} token")
        try:
            return TokenClaims(
                subject=payload["sub"],
                role=payload["role"],
                jti=payload["jti"],
                token_type=token_type,
                issued_at=_from_timestamp(payload["iat"]),
                expires_at=_from_timestamp(payload["exp"]),
                auth_time=_from_timestamp(payload.get("auth_time", payload["iat"])),
            )
        except (TypeError, ValueError, OverflowError):
            raise TokenInvalid(f"Invalid {token_type} token")

    def _verify(self, token: str, token_type: str) -> TokenClaims:
        claims = self.decode_claims(token, token_type)
        if claims.expires_at <= self.clock():
            raise TokenExpired(f"{token_type.capitalize()} token has expired")
        try:
            revoked = self.revocation_store.contains(claims.jti)
        except RevocationStoreError as exc:
            logger.error("revocation_lookup_failed", jti=claims.jti, error=str(exc))
            raise TokenInvalid("Token could not be validated")
        if revoked:
            raise TokenRevoked(f"{token_type.capitalize()} token has been revoked")
        return claims

    def verify_access_token(self, token: str) -> TokenClaims:
        return self._verify(token, ACCESS)

    def verify_refresh_token(self, token: str) -> TokenClaims:
        return self._verify(token, REFRESH)

    def refresh(self, refresh_token: str, role: Optional[str] = None) -> TokenPair:
        """Exchange a refresh token for a new pair; the presented refresh token is revoked.

        ``role`` replaces the role carried by the refresh token, so a role change
        made since login shows up in the new pair.
        """
        claims = self.verify_refresh_token(refresh_token)
        if self.clock() - claims.auth_time > self.max_session_age:
            raise SessionExpired()

        role = role or claims.role
        self._revoke_claims(claims)
        access_token = self.create_token(claims.subject, role, ACCESS, auth_time=claims.auth_time)
        new_refresh = self.create_token(claims.subject, role, REFRESH, auth_time=claims.auth_time)
        logger.info("token_refreshed", user_id=claims.subject, old_jti=claims.jti)
        return TokenPair(
            access_token=access_token,
            refresh_token=new_refresh,
            access_expires_in=int(self.access_ttl.total_seconds()),
            refresh_expires_in=int(self.refresh_ttl.total_seconds()),
        )

    def revoke(self, token: str, token_type: str = ACCESS) -> Optional[TokenClaims]:
        """Add the token's jti to the revocation list until the token would expire anyway.

        Returns the decoded claims, or None when the token had already expired.
        """
        claims = self.decode_claims(token, token_type)
        return self._revoke_claims(claims)

    def _revoke_claims(self, claims: TokenClaims) -> Optional[TokenClaims]:
        remaining = int((claims.expires_at - self.clock()).total_seconds())
        if remaining <= 0:
            return None
        self.revocation_store.put(
            claims.jti,
            remaining,
            user_id=claims.subject,
            token_type=claims.token_type,
        )
        logger.info("token_revoked", jti=claims.jti, token_type=claims.token_type, user_id=claims.subject)
        return claims
