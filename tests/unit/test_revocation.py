from datetime import timedelta
from types import SimpleNamespace

import pytest
import redis

from apps.api.app.core.errors import RevocationStoreError
from apps.api.app.core.time import utc_now
from apps.api.app.db.session import SessionLocal
from apps.api.app.models.revoked_token import RevokedToken
from apps.api.app.services.revocation import (
    DatabaseRevocationStore,
    InMemoryRevocationStore,
    RedisRevocationStore,
    build_revocation_store,
)


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.ttls = {}

    def set(self, key, value, ex=None):
        self.values[key] = value
        self.ttls[key] = ex
        return True

    def exists(self, key):
        return 1 if key in self.values else 0


class DownRedis:
    def set(self, *args, **kwargs):
        raise redis.ConnectionError("connection refused")

    def exists(self, *args, **kwargs):
        raise redis.ConnectionError("connection refused")


def test_memory_store_forgets_entries_after_ttl():
    clock = FakeMonotonic()
    store = InMemoryRevocationStore(clock=clock)

    store.put("jti-1", 60, user_id="u1")
    assert store.contains("jti-1")
    assert not store.contains("jti-2")

    clock.value += 60
    assert not store.contains("jti-1")
    assert len(store) == 0


def test_memory_store_purges_expired_entries():
    clock = FakeMonotonic()
    store = InMemoryRevocationStore(clock=clock)
    store.put("short", 10)
    store.put("long", 600)

    clock.value += 30

    assert store.purge_expired() == 1
    assert store.contains("long")
    assert len(store) == 1


def test_memory_store_keeps_at_least_one_second():
    clock = FakeMonotonic()
    store = InMemoryRevocationStore(clock=clock)

    store.put("zero", 0)

    assert store.contains("zero")


def test_redis_store_writes_prefixed_key_with_ttl():
    client = FakeRedis()
    store = RedisRevocationStore(client)

    store.put("abc", 120, user_id="u1", token_type="refresh")

    assert client.values == {"auth:revoked:abc": "refresh"}
    assert client.ttls["auth:revoked:abc"] == 120
    assert store.contains("abc")
    assert not store.contains("other")


def test_redis_store_errors_surface_as_store_errors():
    store = RedisRevocationStore(DownRedis())

    with pytest.raises(RevocationStoreError):
        store.put("abc", 60)
    with pytest.raises(RevocationStoreError):
        store.contains("abc")


def test_database_store_round_trip(db):
    store = DatabaseRevocationStore(SessionLocal)

    store.put("db-jti", 300, user_id="u1", token_type="access")
    # revoking twice is not an error
    store.put("db-jti", 300, user_id="u1", token_type="access")

    assert store.contains("db-jti")
    assert not store.contains("missing")
    row = db.get(RevokedToken, "db-jti")
    assert row.user_id == "u1"
    assert row.token_type == "access"


def test_database_store_ignores_and_purges_expired_rows(db):
    store = DatabaseRevocationStore(SessionLocal)
    db.add(
        RevokedToken(
            jti="old-jti",
            user_id="u1",
            token_type="access",
            expires_at=utc_now() - timedelta(minutes=1),
        )
    )
    db.commit()
    assert not store.contains("old-jti")

    store.put("fresh-jti", 300)

    assert db.query(RevokedToken).filter_by(jti="old-jti").count() == 0
    assert db.query(RevokedToken).count() == 1
    assert store.contains("fresh-jti")


def test_database_store_purge_expired_removes_lapsed_rows(db):
    store = DatabaseRevocationStore(SessionLocal)
    store.put("short-jti", 60)
    store.put("long-jti", 3600)

    assert store.purge_expired(now=utc_now() + timedelta(minutes=5)) == 1
    assert not store.contains("short-jti")
    assert store.contains("long-jti")


def test_build_revocation_store_picks_backend():
    memory = build_revocation_store(SimpleNamespace(REVOCATION_BACKEND="memory"))
    database = build_revocation_store(
        SimpleNamespace(REVOCATION_BACKEND="database"), session_factory=SessionLocal
    )
    shared = build_revocation_store(
        SimpleNamespace(
            REVOCATION_BACKEND="redis",
            REDIS_URL="redis://localhost:6379/0",
            REDIS_TIMEOUT_SECONDS=0.5,
        )
    )

    assert isinstance(memory, InMemoryRevocationStore)
    assert isinstance(database, DatabaseRevocationStore)
    assert isinstance(shared, RedisRevocationStore)
