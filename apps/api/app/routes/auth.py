from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from apps.api.app.api.deps import (
    Identity,
    authenticate,
    get_token_service,
    require_admin,
)
from apps.api.app.core.errors import AppError, AuthenticationError
from apps.api.app.core.logging import get_logger
from apps.api.app.core.rate_limit import limiter, login_rate_limit
from apps.api.app.db.session import get_db
from apps.api.app.models.user import User
from apps.api.app.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    VerifyResponse,
)
from apps.api.app.schemas.user import UserEnvelope, UserOut
from apps.api.app.services.audit import log_audit_event
from apps.api.app.services.credentials import (
    change_password,
    create_user,
    get_user,
    normalize_email,
    verify_credentials,
)
from apps.api.app.services.tokens import REFRESH, TokenService

router = APIRouter(prefix="/api/auth", tags=["auth"])

logger = get_logger(__name__)


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.post("/login", response_model=LoginResponse)
@limiter.limit(login_rate_limit)
def login(
    request: Request,
    payload: LoginRequest,
    db: Session = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
):
    try:
        user = verify_credentials(db, payload.email, payload.password)
    except AuthenticationError:
        log_audit_event(
            db,
            action="auth.login.failure",
            entity_type="user",
            ip_address=_client_ip(request),
            details={"email": normalize_email(payload.email)},
        )
        db.commit()
        raise

    tokens = token_service.issue_token_pair(user)
    log_audit_event(
        db,
        action="auth.login.success",
        user_id=user.id,
        entity_type="user",
        entity_id=user.id,
        ip_address=_client_ip(request),
    )
    db.commit()
    db.refresh(user)

    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.access_expires_in,
        user=UserOut.model_validate(user),
    )


@router.post("/register", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
@limiter.limit(login_rate_limit)
def register(
    request: Request,
    payload: RegisterRequest,
    db: Session = Depends(get_db),
):
    user = create_user(db, payload.email, payload.password, role="customer")
    log_audit_event(
        db,
        action="auth.register.success",
        user_id=user.id,
        entity_type="user",
        entity_id=user.id,
        ip_address=_client_ip(request),
    )
    db.commit()
    db.refresh(user)

    return UserEnvelope(message="User registered successfully", user=UserOut.model_validate(user))


@router.post("/refresh", response_model=RefreshResponse)
def refresh_tokens(
    request: Request,
    payload: RefreshRequest,
    db: Session = Depends(get_db),
    token_service: TokenService = Depends(get_token_service),
):
    claims = token_service.verify_refresh_token(payload.refresh_token)
    user = db.get(User, claims.subject)
    if user is None or not user.is_active:
        raise AuthenticationError("User account is inactive", code="USER_INACTIVE")

    tokens = token_service.refresh(payload.refresh_token, role=user.role)
    log_audit_event(
        db,
        action="auth.refresh.success",
        user_id=user.id,
        entity_type="user",
        entity_id=user.id,
        ip_address=_client_ip(request),
    )
    db.commit()

    return RefreshResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.access_expires_in,
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    payload: Optional[LogoutRequest] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(authenticate),
    token_service: TokenService = Depends(get_token_service),
):
    token_service.revoke(identity.token)

    refresh_revoked = False
    if payload and payload.refresh_token:
        try:
            refresh_claims = token_service.decode_claims(payload.refresh_token, REFRESH)
        except AppError:
            refresh_claims = None
        if refresh_claims and refresh_claims.subject == identity.user_id:
            token_service.revoke(payload.refresh_token, REFRESH)
            refresh_revoked = True

    log_audit_event(
        db,
        action="auth.logout.success",
        user_id=identity.user_id,
        entity_type="user",
        entity_id=identity.user_id,
        ip_address=_client_ip(request),
        details={"refresh_revoked": refresh_revoked},
    )
    db.commit()
    return MessageResponse(message="Logout successful")


@router.get("/me", response_model=UserEnvelope)
def me(
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_admin),
):
    user = get_user(db, identity.user_id)
    return UserEnvelope(user=UserOut.model_validate(user))


@router.get("/verify", response_model=VerifyResponse)
def verify(identity: Identity = Depends(authenticate)):
    return VerifyResponse(
        user={
            "id": identity.user_id,
            "email": identity.email,
            "role": identity.role,
        }
    )


@router.post("/change-password", response_model=MessageResponse)
def update_password(
    request: Request,
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(authenticate),
):
    user = get_user(db, identity.user_id)
    change_password(db, user, payload.current_password, payload.new_password)
    log_audit_event(
        db,
        action="auth.password.changed",
        user_id=user.id,
        entity_type="user",
        entity_id=user.id,
        ip_address=_client_ip(request),
    )
    db.commit()
    return MessageResponse(message="Password updated successfully")
