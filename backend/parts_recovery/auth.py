"""Authentication and authorization."""
from typing import Optional
from urllib.parse import unquote
import logging
import re
from passlib.context import CryptContext
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from .config import settings
from .database import get_db
from .models import User

# Password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)
logger = logging.getLogger(__name__)

USER_CODE_HEADER = "X-User-Code"
_BRANCH_CODE_RE = re.compile(settings.BRANCH_CODE_PATTERN)


def validate_new_password(*, new_password: str, user_code: str | None = None) -> None:
    """Server-side password policy validation."""
    if new_password is None:
        raise HTTPException(status_code=400, detail="New password is required")

    pwd = new_password.strip()
    if len(pwd) < settings.PASSWORD_MIN_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters",
        )
    if len(pwd) > settings.PASSWORD_MAX_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at most {settings.PASSWORD_MAX_LENGTH} characters",
        )
    if user_code and pwd == user_code:
        raise HTTPException(status_code=400, detail="Password must not match user code")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Invalid/corrupted hash should not crash login flow.
        logger.exception("Password verification failed due to invalid hash format")
        return False


def get_password_hash(password: str) -> str:
    """Hash password."""
    return pwd_context.hash(password)


def is_branch_code(code: str) -> bool:
    return bool(_BRANCH_CODE_RE.match(code or ""))


def default_password_for(user_code: str, user_type: str) -> str:
    """Password a freshly provisioned or reset account starts with."""
    if user_type == "branch":
        return user_code
    return settings.ADMIN_DEFAULT_PASSWORD


def decode_user_code(raw: Optional[str]) -> str:
    """User codes may contain Hangul, so clients URL-encode the header value."""
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user code",
        )
    code = unquote(raw).strip()
    if not code:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user code",
        )
    return code


def _load_active_user(db: Session, raw_code: Optional[str]) -> User:
    user_code = decode_user_code(raw_code)
    user = db.query(User).filter(User.user_code == user_code, User.is_active == True).first()  # noqa: E712
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def get_current_user(
    x_user_code: Optional[str] = Header(default=None, alias=USER_CODE_HEADER),
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user."""
    user = _load_active_user(db, x_user_code)
    if user.is_default_password:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Password change required before continuing",
        )
    return user


def get_current_user_allow_password_change(
    x_user_code: Optional[str] = Header(default=None, alias=USER_CODE_HEADER),
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user, allowing only password-change flow."""
    return _load_active_user(db, x_user_code)


# Permission checks
class PermissionChecker:
    """Check user permissions based on user type."""

    def __init__(self, required_permission: str):
        self.required_permission = required_permission

    def __call__(self, current_user: User = Depends(get_current_user)):
        """Check if user has required permission."""
        if not check_permission(current_user, self.required_permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {self.required_permission} required",
            )
        return current_user


# User-type permissions matrix
ROLE_PERMISSIONS = {
    "admin_cs": {
        "canViewAllBranches": True,
        "canUploadData": True,
        "canManageSettings": True,
        "canManageUsers": True,
        "canForceStatus": True,
        "canDeleteData": True,
        "canViewReports": True,
        "canSendEmails": True,
        "canViewHistory": True,
        "canViewErrorLogs": True,
        "canPrintPackingSlips": True,
    },
    "admin_quality": {
        "canViewAllBranches": True,
        "canUploadData": False,
        "canManageSettings": False,
        "canManageUsers": False,
        "canForceStatus": False,
        "canDeleteData": False,
        "canViewReports": True,
        "canSendEmails": False,
        "canViewHistory": True,
        "canViewErrorLogs": False,
        "canPrintPackingSlips": False,
    },
    "branch": {
        "canViewAllBranches": False,
        "canUploadData": False,
        "canManageSettings": False,
        "canManageUsers": False,
        "canForceStatus": False,
        "canDeleteData": False,
        "canViewReports": True,
        "canSendEmails": False,
        "canViewHistory": False,
        "canViewErrorLogs": False,
        "canPrintPackingSlips": True,
    },
}


def check_permission(user: User, permission: str) -> bool:
    """Check if user has specific permission."""
    permissions = ROLE_PERMISSIONS.get(user.user_type, {})
    return permissions.get(permission, False)
