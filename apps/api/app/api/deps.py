from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer
from sqlalchemy.orm import Session

from apps.api.app.core.errors import AppError, AuthenticationError, AuthorizationError
from apps.api.app.core.logging import get_logger
from apps.api.app.db.session import get_db
from apps.api.app.models.user import ADMIN_ROLES, User
from apps.api.app.services.tokens import TokenService


logger = get_logger(__name__)

# Only registers the bearer scheme in the OpenAPI document; the header is parsed below.
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str
    role: str
    jti: str
    token: str


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise AuthenticationError("Access token is required", code="MISSING_TOKEN")
    scheme, _, token = auth_header.partition(" ")
    if scheme != "Bearer":
        raise AuthenticationError("Token must be in Bearer format", code="INVALID_TOKEN_FORMAT")
    token = token.strip()
    if not token:
        raise AuthenticationError("Access token is required", code="MISSING_TOKEN")
    return token


def _resolve_identity(request: Request, db: Session, token_service: TokenService) -> Identity:
    token = _bearer_token(request)
    claims = token_service.verify_access_token(token)

    user = db.get(User, claims.subject)
    if user is None:
        raise AuthenticationError("User not found", code="USER_NOT_FOUND")
    if not user.is_active:
        raise AuthenticationError("User account is inactive", code="USER_INACTIVE")

    return Identity(
        user_id=user.id,
        email=user.email,
        role=user.role,
        jti=claims.jti,
        token=token,
    )


def authenticate(
    request: Request,
    _credentials=Depends(bearer_scheme),
    db: Session = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
) -> Identity:
    """
    Validates the bearer access token and attaches the caller's identity to the request.
    """
    try:
        identity = _resolve_identity(request, db, token_service)
    except AuthenticationError as exc:
        logger.warning("authentication_failed", code=exc.code, path=request.url.path)
        raise
    request.state.identity = identity
    return identity


def optional_authenticate(
    request: Request,
    _credentials=Depends(bearer_scheme),
    db: Session = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
) -> Optional[Identity]:
    """Like ``authenticate`` but a missing or unusable token yields an anonymous caller."""
    try:
        identity = _resolve_identity(request, db, token_service)
    except AppError:
        request.state.identity = None
        return None
    request.state.identity = identity
    return identity


def authorize(*allowed_roles: str):
    """
    Dependency factory gating a route on the caller's role.
    Usage:
        identity: Identity = Depends(authorize("admin", "super_admin"))
    An empty allow-list admits any authenticated caller.
    """
    allowed = frozenset(allowed_roles)

    def role_checker(identity: Identity = Depends(authenticate)) -> Identity:
        if allowed and identity.role not in allowed:
            logger.warning(
                "authorization_denied",
                user_id=identity.user_id,
                role=identity.role,
                required=sorted(allowed),
            )
            raise AuthorizationError()
        return identity

    return role_checker


require_admin = authorize(*ADMIN_ROLES)
require_super_admin = authorize("super_admin")
