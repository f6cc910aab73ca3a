"""User management endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import PermissionChecker
from ..config import settings
from ..database import get_db
from ..models import LoginHistory, User
from ..schemas import LoginHistoryResponse, UserResponse, UserUpdate
from ..use_cases.accounts import update_user_use_case

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserResponse])
def get_users(
    user_type: Optional[str] = Query(default=None),
    current_user: User = Depends(PermissionChecker("canManageUsers")),
    db: Session = Depends(get_db),
):
    """Get all users."""
    query = db.query(User)
    if user_type:
        query = query.filter(User.user_type == user_type)
    users = query.order_by(User.user_type, User.user_code).all()
    return [UserResponse.model_validate(u) for u in users]


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: UUID,
    payload: UserUpdate,
    current_user: User = Depends(PermissionChecker("canManageUsers")),
    db: Session = Depends(get_db),
):
    """Set email or active flag."""
    user = update_user_use_case(db=db, user_id=user_id, data=payload, current_user=current_user)
    return UserResponse.model_validate(user)


@router.get("/login-history", response_model=list[LoginHistoryResponse])
def get_login_history(
    user_code: Optional[str] = Query(default=None),
    limit: int = Query(default=500, ge=1),
    current_user: User = Depends(PermissionChecker("canManageUsers")),
    db: Session = Depends(get_db),
):
    query = db.query(LoginHistory)
    if user_code:
        query = query.filter(LoginHistory.user_code == user_code)
    rows = query.order_by(LoginHistory.login_at.desc()).limit(
        min(limit, settings.HISTORY_RETENTION_LIMIT)
    ).all()
    return [LoginHistoryResponse.model_validate(r) for r in rows]
