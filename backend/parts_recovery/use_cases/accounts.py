"""Account use-cases: login with first-login provisioning, password change/reset."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import default_password_for, get_password_hash, is_branch_code, verify_password
from ..config import settings
from ..domain_errors import DomainError, not_found
from ..models import LoginHistory, User
from ..schemas import UserUpdate
from ..services.recovery_status import now_utc

logger = logging.getLogger(__name__)


@dataclass
class LoginOutcome:
    user: User
    provisioned: bool = False


def _invalid_credentials() -> DomainError:
    return DomainError(
        code="INVALID_CREDENTIALS",
        http_status=401,
        message="Invalid user code or password",
    )


def _provisioning_type(user_code: str, password: str) -> str | None:
    """User type to auto-create for an unknown code, when the default password is presented."""
    admin_type = settings.admin_codes.get(user_code)
    if admin_type is not None:
        return admin_type if password == settings.ADMIN_DEFAULT_PASSWORD else None
    if is_branch_code(user_code) and password == user_code:
        return "branch"
    return None


def _record_login(
    db: Session,
    *,
    user: User,
    ip_address: str | None,
    user_agent: str | None,
    at: datetime,
) -> None:
    """Best-effort: login history must not break a successful login."""
    try:
        db.add(
            LoginHistory(
                user_code=user.user_code,
                user_type=user.user_type,
                ip_address=ip_address,
                user_agent=(user_agent or "")[:512],
                login_at=at,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to write login history for %s", user.user_code)


def login_use_case(
    *,
    db: Session,
    user_code: str,
    password: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: Callable[[], datetime] = now_utc,
) -> LoginOutcome:
    code = (user_code or "").strip()
    secret = (password or "").strip()
    if not code or not secret:
        raise _invalid_credentials()

    at = now()
    user = db.query(User).filter(User.user_code == code).first()
    provisioned = False

    if user is None:
        user_type = _provisioning_type(code, secret)
        if user_type is None:
            raise _invalid_credentials()
        user = User(
            user_code=code,
            user_type=user_type,
            branch_code=code if user_type == "branch" else None,
            password_hash=get_password_hash(secret),
            is_default_password=True,
            is_active=True,
        )
        db.add(user)
        provisioned = True
    else:
        if not verify_password(secret, user.password_hash):
            raise _invalid_credentials()
        if not user.is_active:
            raise DomainError(code="USER_INACTIVE", http_status=403, message="Account is disabled")

    user.last_login_at = at
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to persist login for %s", code)
        raise DomainError(code="LOGIN_FAILED", http_status=500, message="Failed to login")

    _record_login(db, user=user, ip_address=ip_address, user_agent=user_agent, at=at)
    logger.info("auth.login user=%s type=%s provisioned=%s", code, user.user_type, provisioned)
    return LoginOutcome(user=user, provisioned=provisioned)


def change_password_use_case(
    *,
    db: Session,
    current_user: User,
    current_password: str,
    new_password: str,
) -> User:
    """Caller validates the new password against the policy first.

    Both passwords are stripped the same way login strips them.
    """
    current_password = (current_password or "").strip()
    new_password = (new_password or "").strip()
    if not verify_password(current_password, current_user.password_hash):
        raise DomainError(
            code="CURRENT_PASSWORD_INVALID",
            http_status=400,
            message="Current password is incorrect",
        )
    if verify_password(new_password, current_user.password_hash):
        raise DomainError(
            code="PASSWORD_UNCHANGED",
            http_status=400,
            message="New password must differ from the current password",
        )

    current_user.password_hash = get_password_hash(new_password)
    current_user.is_default_password = False
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to change password for %s", current_user.user_code)
        raise DomainError(code="PASSWORD_CHANGE_FAILED", http_status=500, message="Failed to change password")

    logger.info("auth.password_changed user=%s", current_user.user_code)
    return current_user


def reset_password_use_case(*, db: Session, user_code: str, current_user: User) -> User:
    """Admin accounts go back to the admin default, branch accounts to their own code."""
    if current_user.user_type != "admin_cs":
        raise DomainError(code="PASSWORD_RESET_FORBIDDEN", http_status=403, message="Permission denied")

    target = db.query(User).filter(User.user_code == user_code.strip()).first()
    if target is None:
        raise not_found("USER_NOT_FOUND", "User not found")

    target.password_hash = get_password_hash(default_password_for(target.user_code, target.user_type))
    target.is_default_password = True
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to reset password for %s", target.user_code)
        raise DomainError(code="PASSWORD_RESET_FAILED", http_status=500, message="Failed to reset password")

    logger.warning("auth.password_reset user=%s by=%s", target.user_code, current_user.user_code)
    return target


def update_user_use_case(*, db: Session, user_id: UUID, data: UserUpdate, current_user: User) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise not_found("USER_NOT_FOUND", "User not found")
    if user.id == current_user.id and data.is_active is False:
        raise DomainError(
            code="USER_SELF_DEACTIVATION",
            http_status=400,
            message="You cannot deactivate your own account",
        )

    updates = data.model_dump(exclude_unset=True)
    if "email" in updates:
        email = (updates["email"] or "").strip()
        user.email = email or None
    if updates.get("is_active") is not None:
        user.is_active = updates["is_active"]

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to update user %s", user.user_code)
        raise DomainError(code="USER_UPDATE_FAILED", http_status=500, message="Failed to update user")
    return user
