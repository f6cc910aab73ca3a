"""Branch scoping and record access checks."""

from __future__ import annotations

from typing import Any

from .auth import check_permission
from .models import User


def effective_branch_filter(current_user: User, requested_branch: str | None) -> str | None:
    """Branch users always see their own branch; admins may narrow by branch."""
    if check_permission(current_user, "canViewAllBranches"):
        return requested_branch or None
    return current_user.branch_code


def apply_branch_scope(query: Any, model: Any, current_user: User, requested_branch: str | None = None):
    """Apply branch visibility policy to a SQLAlchemy query."""
    branch = effective_branch_filter(current_user, requested_branch)
    if branch:
        return query.filter(model.branch_code == branch)
    return query


def can_access_record(record: Any, current_user: User) -> bool:
    """Object-level branch check (used for IDOR prevention)."""
    if check_permission(current_user, "canViewAllBranches"):
        return True
    return bool(current_user.branch_code) and record.branch_code == current_user.branch_code
