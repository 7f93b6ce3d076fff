from datetime import timedelta

import pytest
from sqlalchemy import func, select

from apps.api.app.core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from apps.api.app.core.security import verify_password
from apps.api.app.core.time import utc_now
from apps.api.app.models.user import User
from apps.api.app.services.credentials import (
    change_password,
    create_user,
    deactivate_user,
    get_user,
    reactivate_user,
    set_role,
    validate_password_strength,
    verify_credentials,
)
from tests.conftest import ADMIN_EMAIL, ADMIN_PASSWORD, CUSTOMER_EMAIL


def _user_count(db):
    return db.execute(select(func.count()).select_from(User)).scalar_one()


def test_create_user_stores_hash_not_plaintext(db):
    user = create_user(db, "  New.User@Example.com ", "Str0ng!Pass", role="admin")
    db.commit()

    assert user.email == "new.user@example.com"
    assert user.role == "admin"
    assert user.hashed_password != "Str0ng!Pass"
    assert user.hashed_password.startswith("$2")
    assert verify_password("Str0ng!Pass", user.hashed_password)


def test_create_user_defaults_to_customer(db):
    user = create_user(db, "shopper@example.com", "Str0ng!Pass")

    assert user.role == "customer"
    assert user.is_active is True


@pytest.mark.parametrize(
    "password, rule",
    [
        ("Sh0rt!", "min_length"),
        ("alllowercase1!", "uppercase"),
        ("ALLUPPERCASE1!", "lowercase"),
        ("NoDigitsHere!", "digit"),
        ("NoSpecial123", "special"),
        ("Aa1!" + "x" * 80, "max_length"),
    ],
)
def test_weak_passwords_are_rejected_without_persisting(db, password, rule):
    with pytest.raises(ValidationError) as exc:
        create_user(db, "weak@example.com", password)

    assert exc.value.code == "WEAK_PASSWORD"
    assert rule in {item["rule"] for item in exc.value.details}
    assert _user_count(db) == 0


def test_validate_password_strength_accepts_strong_password():
    assert validate_password_strength("SecurePass123!") == []


def test_unknown_role_is_rejected(db):
    with pytest.raises(ValidationError) as exc:
        create_user(db, "role@example.com", "Str0ng!Pass", role="owner")
    assert exc.value.code == "INVALID_ROLE"


def test_duplicate_email_conflicts(seeded_users, db):
    with pytest.raises(ConflictError) as exc:
        create_user(db, ADMIN_EMAIL.upper(), "Another1!Pass")

    assert exc.value.code == "USER_ALREADY_EXISTS"
    assert exc.value.status_code == 409


def test_verify_credentials_success_updates_login_state(seeded_users, db):
    user = verify_credentials(db, "ADMIN@X.COM", ADMIN_PASSWORD)

    assert user.id == seeded_users["admin"].id
    assert user.last_login_at is not None
    assert user.failed_login_attempts == 0


def test_wrong_password_and_unknown_email_fail_identically(seeded_users, db):
    with pytest.raises(AuthenticationError) as wrong_password:
        verify_credentials(db, ADMIN_EMAIL, "WrongPass123!")
    with pytest.raises(AuthenticationError) as unknown_email:
        verify_credentials(db, "nobody@example.com", ADMIN_PASSWORD)

    assert wrong_password.value.code == unknown_email.value.code == "INVALID_CREDENTIALS"
    assert wrong_password.value.message == unknown_email.value.message
    assert wrong_password.value.status_code == unknown_email.value.status_code == 401


def test_inactive_user_cannot_sign_in(seeded_users, db):
    deactivate_user(db, seeded_users["customer"])

    with pytest.raises(AuthenticationError) as exc:
        verify_credentials(db, CUSTOMER_EMAIL, "CustomerPass123!")
    assert exc.value.code == "INVALID_CREDENTIALS"


def test_repeated_failures_lock_the_account(seeded_users, db):
    for _ in range(5):
        with pytest.raises(AuthenticationError):
            verify_credentials(db, ADMIN_EMAIL, "WrongPass123!")

    admin = seeded_users["admin"]
    assert admin.locked_until is not None
    with pytest.raises(AuthenticationError):
        verify_credentials(db, ADMIN_EMAIL, ADMIN_PASSWORD)

    reactivate_user(db, admin)
    assert verify_credentials(db, ADMIN_EMAIL, ADMIN_PASSWORD).id == admin.id


def test_expired_lock_allows_login(seeded_users, db):
    admin = seeded_users["admin"]
    admin.locked_until = utc_now() - timedelta(minutes=1)
    db.commit()

    assert verify_credentials(db, ADMIN_EMAIL, ADMIN_PASSWORD).locked_until is None


def test_change_password_requires_current_password(seeded_users, db):
    admin = seeded_users["admin"]

    with pytest.raises(AuthenticationError):
        change_password(db, admin, "WrongPass123!", "BrandNew1!Pass")
    with pytest.raises(ValidationError):
        change_password(db, admin, ADMIN_PASSWORD, ADMIN_PASSWORD)

    change_password(db, admin, ADMIN_PASSWORD, "BrandNew1!Pass")
    assert admin.password_changed_at is not None
    assert verify_credentials(db, ADMIN_EMAIL, "BrandNew1!Pass").id == admin.id


def test_set_role_and_lookup(seeded_users, db):
    customer = seeded_users["customer"]

    set_role(db, customer, " Admin ")

    assert get_user(db, customer.id).role == "admin"
    with pytest.raises(NotFoundError):
        get_user(db, "does-not-exist")
