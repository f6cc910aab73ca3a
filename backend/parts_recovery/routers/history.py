"""Status change audit trail endpoints."""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import PermissionChecker
from ..config import settings
from ..database import get_db
from ..models import ProductStatusHistory, StatusChangeHistory, User
from ..schemas import ProductStatusHistoryResponse, StatusChangeHistoryResponse
from ..security import apply_branch_scope
from ..use_cases.data_management import created_at_bounds

router = APIRouter(prefix="/history", tags=["history"])


def _narrow(query, model, fk, *, record_id, forced_only, date_from, date_to):
    if record_id:
        query = query.filter(fk == record_id)
    if forced_only:
        query = query.filter(model.is_forced == True)  # noqa: E712
    if date_from:
        query = query.filter(model.changed_at >= created_at_bounds(date_from, date_from)[0])
    if date_to:
        query = query.filter(model.changed_at <= created_at_bounds(date_to, date_to)[1])
    return query


@router.get("/status", response_model=list[StatusChangeHistoryResponse])
def get_material_status_history(
    material_usage_id: Optional[UUID] = Query(default=None),
    branch_code: Optional[str] = Query(default=None),
    forced_only: bool = Query(default=False),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    limit: int = Query(default=500, ge=1),
    current_user: User = Depends(PermissionChecker("canViewHistory")),
    db: Session = Depends(get_db),
):
    """Material status changes, newest first."""
    query = apply_branch_scope(db.query(StatusChangeHistory), StatusChangeHistory, current_user, branch_code)
    query = _narrow(
        query,
        StatusChangeHistory,
        StatusChangeHistory.material_usage_id,
        record_id=material_usage_id,
        forced_only=forced_only,
        date_from=date_from,
        date_to=date_to,
    )
    rows = query.order_by(StatusChangeHistory.changed_at.desc()).limit(
        min(limit, settings.HISTORY_RETENTION_LIMIT)
    ).all()
    return [StatusChangeHistoryResponse.model_validate(r) for r in rows]


@router.get("/product-status", response_model=list[ProductStatusHistoryResponse])
def get_product_status_history(
    product_recovery_id: Optional[UUID] = Query(default=None),
    branch_code: Optional[str] = Query(default=None),
    forced_only: bool = Query(default=False),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    limit: int = Query(default=500, ge=1),
    current_user: User = Depends(PermissionChecker("canViewHistory")),
    db: Session = Depends(get_db),
):
    query = apply_branch_scope(db.query(ProductStatusHistory), ProductStatusHistory, current_user, branch_code)
    query = _narrow(
        query,
        ProductStatusHistory,
        ProductStatusHistory.product_recovery_id,
        record_id=product_recovery_id,
        forced_only=forced_only,
        date_from=date_from,
        date_to=date_to,
    )
    rows = query.order_by(ProductStatusHistory.changed_at.desc()).limit(
        min(limit, settings.HISTORY_RETENTION_LIMIT)
    ).all()
    return [ProductStatusHistoryResponse.model_validate(r) for r in rows]
