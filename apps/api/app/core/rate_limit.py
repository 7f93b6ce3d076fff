"""Shared slowapi limiter, imported by the auth routes and the app factory."""
from slowapi import Limiter
from slowapi.util import get_remote_address

from apps.api.app.core.config import settings


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
)


def login_rate_limit() -> str:
    return settings.LOGIN_RATE_LIMIT
