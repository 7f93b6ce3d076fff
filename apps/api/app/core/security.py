from datetime import datetime
from functools import lru_cache
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from apps.api.app.core.config import settings


pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

ALGORITHM = settings.JWT_ALGORITHM

_DECODE_OPTIONS = {
    # expiry is compared by the token service so that exp == now counts as expired
    "verify_exp": False,
    "require_exp": True,
    "require_iat": True,
    "require_sub": True,
    "require_jti": True,
    "require_aud": True,
    "require_iss": True,
}


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """Hash compared against when no account matches, so misses cost a full bcrypt round."""
    return pwd_context.hash("maison-darin-dummy-password")


def encode_token(claims: dict, secret: str) -> str:
    to_encode = claims.copy()
    for key in ("exp", "iat", "auth_time"):
        value = to_encode.get(key)
        if isinstance(value, datetime):
            to_encode[key] = int(value.timestamp())
    return jwt.encode(to_encode, secret, algorithm=ALGORITHM)


def decode_token(token: str, secret: str) -> Optional[dict]:
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options=_DECODE_OPTIONS,
        )
    except JWTError:
        return None
