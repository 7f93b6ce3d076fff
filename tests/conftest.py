import os
import tempfile
from functools import lru_cache
from pathlib import Path

import pytest

# Force test config before importing app modules.
TEST_DB_PATH = Path(tempfile.gettempdir()) / "maison_darin_auth_test.db"
if TEST_DB_PATH.exists():
    TEST_DB_PATH.unlink()

os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
os.environ["JWT_SECRET"] = "test-access-secret-0123456789abcdef0123"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-fedcba9876543210fedc"
os.environ["ENVIRONMENT"] = "test"
os.environ["REVOCATION_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "12"
os.environ["MAX_LOGIN_ATTEMPTS"] = "5"
os.environ["LOG_LEVEL"] = "WARNING"

from apps.api.app.core.security import get_password_hash
from apps.api.app.db.session import Base, SessionLocal, engine
from apps.api.app.models.user import User

import apps.api.app.models.audit_log  # noqa: F401
import apps.api.app.models.revoked_token  # noqa: F401


ADMIN_EMAIL = "admin@x.com"
ADMIN_PASSWORD = "SecurePass123!"
CUSTOMER_EMAIL = "customer@test.com"
CUSTOMER_PASSWORD = "CustomerPass123!"
SUPER_EMAIL = "super@test.com"
SUPER_PASSWORD = "SuperPass123!"


@lru_cache(maxsize=None)
def cached_hash(password: str) -> str:
    # bcrypt at cost 12 is slow; reuse one hash per password across tests
    return get_password_hash(password)


@pytest.fixture()
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seeded_users(db):
    users = {
        "admin": User(email=ADMIN_EMAIL, hashed_password=cached_hash(ADMIN_PASSWORD), role="admin"),
        "customer": User(email=CUSTOMER_EMAIL, hashed_password=cached_hash(CUSTOMER_PASSWORD), role="customer"),
        "super_admin": User(email=SUPER_EMAIL, hashed_password=cached_hash(SUPER_PASSWORD), role="super_admin"),
    }
    db.add_all(users.values())
    db.commit()
    for user in users.values():
        db.refresh(user)
    return users
