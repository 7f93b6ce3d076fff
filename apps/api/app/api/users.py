from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from apps.api.app.api.deps import Identity, require_admin
from apps.api.app.core.errors import AuthorizationError, ValidationError
from apps.api.app.db.session import get_db
from apps.api.app.models.user import ADMIN_ROLES, ROLES, User
from apps.api.app.schemas.user import UserEnvelope, UserOut, UserRoleUpdate
from apps.api.app.services.audit import log_audit_event
from apps.api.app.services.credentials import (
    deactivate_user,
    get_user,
    reactivate_user,
    set_role,
)

router = APIRouter(prefix="/api/users", tags=["users"])


def _active_admin_count(db: Session) -> int:
    return int(
        db.execute(
            select(func.count()).select_from(User).where(
                User.role.in_(ADMIN_ROLES),
                User.is_active.is_(True),
            )
        ).scalar_one()
    )


def _guard_last_admin(db: Session, user: User) -> None:
    if user.role in ADMIN_ROLES and user.is_active and _active_admin_count(db) <= 1:
        raise ValidationError("Cannot demote or deactivate the last admin", code="LAST_ADMIN")


@router.patch("/{user_id}/role", response_model=UserEnvelope)
def update_user_role(
    user_id: str,
    payload: UserRoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_admin),
):
    user = get_user(db, user_id)
    normalized_role = (payload.role or "").strip().lower()

    if normalized_role not in ROLES:
        raise ValidationError(
            f"role must be one of: {', '.join(ROLES)}",
            code="INVALID_ROLE",
        )
    if user.id == identity.user_id:
        raise ValidationError("You cannot change your own role", code="SELF_ROLE_CHANGE")
    touches_super_admin = "super_admin" in (normalized_role, user.role)
    if touches_super_admin and identity.role != "super_admin":
        raise AuthorizationError("Super admin access required", code="SUPER_ADMIN_ACCESS_REQUIRED")
    if normalized_role not in ADMIN_ROLES:
        _guard_last_admin(db, user)

    previous_role = user.role
    set_role(db, user, normalized_role)
    log_audit_event(
        db,
        action="user.role.updated",
        user_id=identity.user_id,
        entity_type="user",
        entity_id=user.id,
        ip_address=request.client.host if request.client else None,
        details={"from": previous_role, "to": user.role},
    )
    db.commit()
    db.refresh(user)
    return UserEnvelope(message="Role updated", user=UserOut.model_validate(user))


@router.post("/{user_id}/deactivate", response_model=UserEnvelope)
def deactivate(
    user_id: str,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_admin),
):
    user = get_user(db, user_id)
    if user.id == identity.user_id:
        raise ValidationError("You cannot deactivate your own account", code="SELF_DEACTIVATION")
    if user.role == "super_admin" and identity.role != "super_admin":
        raise AuthorizationError("Super admin access required", code="SUPER_ADMIN_ACCESS_REQUIRED")
    _guard_last_admin(db, user)

    deactivate_user(db, user)
    log_audit_event(
        db,
        action="user.deactivated",
        user_id=identity.user_id,
        entity_type="user",
        entity_id=user.id,
        ip_address=request.client.host if request.client else None,
    )
    db.commit()
    db.refresh(user)
    return UserEnvelope(message="User deactivated", user=UserOut.model_validate(user))


@router.post("/{user_id}/reactivate", response_model=UserEnvelope)
def reactivate(
    user_id: str,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_admin),
):
    user = get_user(db, user_id)
    reactivate_user(db, user)
    log_audit_event(
        db,
        action="user.reactivated",
        user_id=identity.user_id,
        entity_type="user",
        entity_id=user.id,
        ip_address=request.client.host if request.client else None,
    )
    db.commit()
    db.refresh(user)
    return UserEnvelope(message="User reactivated", user=UserOut.model_validate(user))
