"""Revocation list backends.

The token service only needs ``put`` and ``contains``; which backend backs
them is picked from ``REVOCATION_BACKEND``. Only the database and Redis
backends are visible across server processes.
"""
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from redis import Redis, RedisError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from apps.api.app.core.errors import RevocationStoreError
from apps.api.app.core.logging import get_logger
from apps.api.app.core.time import utc_now
from apps.api.app.models.revoked_token import RevokedToken


logger = get_logger(__name__)


class RevocationStore(Protocol):
    def put(
        self,
        jti: str,
        ttl_seconds: int,
        *,
        user_id: Optional[str] = None,
        token_type: str = "access",
    ) -> None: ...

    def contains(self, jti: str) -> bool: ...


class InMemoryRevocationStore:
    """Process-local revocation list; entries disappear once their TTL passes."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, float] = {}
        self._lock = threading.Lock()

    def put(self, jti, ttl_seconds, *, user_id=None, token_type="access"):
        with self._lock:
            self._entries[jti] = self._clock() + max(1, int(ttl_seconds))
            self._purge_locked()

    def contains(self, jti):
        with self._lock:
            expires_at = self._entries.get(jti)
            if expires_at is None:
                return False
            if expires_at <= self._clock():
                del self._entries[jti]
                return False
            return True

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [jti for jti, expires_at in self._entries.items() if expires_at <= now]
        for jti in expired:
            del self._entries[jti]
        return len(expired)

    def __len__(self):
        with self._lock:
            return len(self._entries)


class DatabaseRevocationStore:
    """Revocation list kept in the ``revoked_token`` table."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def put(self, jti, ttl_seconds, *, user_id=None, token_type="access"):
        now = utc_now()
        expires_at = now + timedelta(seconds=max(1, int(ttl_seconds)))
        db = self._session_factory()
        try:
            # rows past their expiry are dropped on every write
            db.execute(delete(RevokedToken).where(RevokedToken.expires_at <= now))
            db.add(
                RevokedToken(
                    jti=jti,
                    user_id=user_id,
                    token_type=token_type,
                    expires_at=expires_at,
                )
            )
            db.commit()
        except IntegrityError:
            # already revoked
            db.rollback()
        except SQLAlchemyError as exc:
            db.rollback()
            raise RevocationStoreError(str(exc)) from exc
        finally:
            db.close()

    def contains(self, jti):
        db = self._session_factory()
        try:
            row = db.execute(
                select(RevokedToken.jti).where(
                    RevokedToken.jti == jti,
                    RevokedToken.expires_at > utc_now(),
                )
            ).first()
            return row is not None
        except SQLAlchemyError as exc:
            raise RevocationStoreError(str(exc)) from exc
        finally:
            db.close()

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        cutoff = now or utc_now()
        db = self._session_factory()
        try:
            result = db.execute(
                delete(RevokedToken).where(RevokedToken.expires_at <= cutoff)
            )
            db.commit()
            return int(result.rowcount or 0)
        finally:
            db.close()


class RedisRevocationStore:
    """Revocation list shared through Redis keys that expire with the token."""

    KEY_PREFIX = "auth:revoked:"

    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str, *, socket_timeout: float = 2.0) -> "RedisRevocationStore":
        client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def _key(self, jti: str) -> str:
        return f"{self.KEY_PREFIX}{jti}"

    def put(self, jti, ttl_seconds, *, user_id=None, token_type="access"):
        try:
            self.client.set(self._key(jti), token_type, ex=max(1, int(ttl_seconds)))
        except RedisError as exc:
            logger.error("revocation_write_failed", jti=jti, error=str(exc))
            raise RevocationStoreError(str(exc)) from exc

    def contains(self, jti):
        try:
            return bool(self.client.exists(self._key(jti)))
        except RedisError as exc:
            logger.error("revocation_read_failed", jti=jti, error=str(exc))
            raise RevocationStoreError(str(exc)) from exc


def build_revocation_store(settings, session_factory=None) -> RevocationStore:
    backend = settings.REVOCATION_BACKEND
    if backend == "redis":
        return RedisRevocationStore.from_url(
            settings.REDIS_URL,
            socket_timeout=settings.REDIS_TIMEOUT_SECONDS,
        )
    if backend == "database":
        if session_factory is None:
            from apps.api.app.db.session import SessionLocal

            session_factory = SessionLocal
        return DatabaseRevocationStore(session_factory)
    return InMemoryRevocationStore()
