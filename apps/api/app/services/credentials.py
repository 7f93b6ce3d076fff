import re
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from apps.api.app.core.config import settings
from apps.api.app.core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from apps.api.app.core.logging import get_logger
from apps.api.app.core.security import (
    dummy_password_hash,
    get_password_hash,
    verify_password,
)
from apps.api.app.core.time import as_utc, utc_now
from apps.api.app.models.user import ROLES, User


logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 8
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72

_PASSWORD_RULES = (
    ("uppercase", re.compile(r"[A-Z]"), "Password must contain an uppercase letter"),
    ("lowercase", re.compile(r"[a-z]"), "Password must contain a lowercase letter"),
    ("digit", re.compile(r"\d"), "Password must contain a digit"),
    ("special", re.compile(r"[^A-Za-z0-9\s]"), "Password must contain a special character"),
)

INVALID_CREDENTIALS = "Invalid email or password"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> list[dict]:
    failures = []
    if len(password or "") < MIN_PASSWORD_LENGTH:
        failures.append(
            {
                "field": "password",
                "rule": "min_length",
                "message": f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            }
        )
    if len((password or "").encode("utf-8")) > MAX_PASSWORD_BYTES:
        failures.append(
            {
                "field": "password",
                "rule": "max_length",
                "message": f"Password must be at most {MAX_PASSWORD_BYTES} bytes long",
            }
        )
    for rule, pattern, message in _PASSWORD_RULES:
        if not pattern.search(password or ""):
            failures.append({"field": "password", "rule": rule, "message": message})
    return failures


def _ensure_strong_password(password: str) -> None:
    failures = validate_password_strength(password)
    if failures:
        raise ValidationError(
            "Password does not meet security requirements",
            code="WEAK_PASSWORD",
            details=failures,
        )


def _normalize_role(role: str) -> str:
    normalized = (role or "").strip().lower()
    if normalized not in ROLES:
        raise ValidationError(
            f"role must be one of: {', '.join(ROLES)}",
            code="INVALID_ROLE",
            details=[{"field": "role", "message": f"Unknown role '{role}'"}],
        )
    return normalized


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.execute(
        select(User).where(User.email == normalize_email(email))
    ).scalar_one_or_none()


def get_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    return user


def create_user(db: Session, email: str, password: str, role: str = "customer") -> User:
    normalized_email = normalize_email(email)
    if not normalized_email:
        raise ValidationError(
            "Email is required",
            details=[{"field": "email", "message": "Email is required"}],
        )
    normalized_role = _normalize_role(role)
    _ensure_strong_password(password)

    if get_user_by_email(db, normalized_email):
        raise ConflictError("User with this email already exists", code="USER_ALREADY_EXISTS")

    user = User(
        email=normalized_email,
        hashed_password=get_password_hash(password),
        role=normalized_role,
        is_active=True,
        failed_login_attempts=0,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User with this email already exists", code="USER_ALREADY_EXISTS")
    logger.info("user_created", user_id=user.id, role=normalized_role)
    return user


def _is_locked(user: User) -> bool:
    return bool(user.locked_until and as_utc(user.locked_until) > utc_now())


def _register_failed_attempt(user: User) -> None:
    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    if user.failed_login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
        user.locked_until = utc_now() + timedelta(minutes=settings.LOCKOUT_MINUTES)
        user.failed_login_attempts = 0
        logger.warning("account_locked", user_id=user.id, minutes=settings.LOCKOUT_MINUTES)


def verify_credentials(db: Session, email: str, password: str) -> User:
    """Return the active user matching the credentials.

    Every failure raises the same INVALID_CREDENTIALS error, and a bcrypt
    comparison runs even when no account matches.
    """
    user = get_user_by_email(db, email)
    if user is None:
        verify_password(password or "", dummy_password_hash())
        raise AuthenticationError(INVALID_CREDENTIALS, code="INVALID_CREDENTIALS")

    password_ok = verify_password(password or "", user.hashed_password)
    if not user.is_active or _is_locked(user):
        logger.warning("login_rejected", user_id=user.id, active=bool(user.is_active))
        raise AuthenticationError(INVALID_CREDENTIALS, code="INVALID_CREDENTIALS")
    if not password_ok:
        _register_failed_attempt(user)
        db.flush()
        raise AuthenticationError(INVALID_CREDENTIALS, code="INVALID_CREDENTIALS")

    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login_at = utc_now()
    db.flush()
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> User:
    if not verify_password(current_password or "", user.hashed_password):
        raise AuthenticationError("Current password is incorrect", code="INVALID_CREDENTIALS")
    _ensure_strong_password(new_password)
    if verify_password(new_password, user.hashed_password):
        raise ValidationError(
            "New password must differ from the current password",
            details=[{"field": "newPassword", "message": "Password unchanged"}],
        )
    user.hashed_password = get_password_hash(new_password)
    user.password_changed_at = utc_now()
    db.flush()
    return user


def set_role(db: Session, user: User, role: str) -> User:
    user.role = _normalize_role(role)
    db.flush()
    return user


def deactivate_user(db: Session, user: User) -> User:
    user.is_active = False
    db.flush()
    return user


def reactivate_user(db: Session, user: User) -> User:
    user.is_active = True
    user.failed_login_attempts = 0
    user.locked_until = None
    db.flush()
    return user
