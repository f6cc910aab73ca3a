"""Material usage endpoints: listing, status workflow, export."""

from __future__ import annotations

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..config import settings
from ..database import get_db
from ..models import MaterialUsage, User
from ..schemas import (
    BulkStatusUpdateRequest,
    BulkStatusUpdateResult,
    MaterialUsageResponse,
    StatusUpdateRequest,
)
from ..security import apply_branch_scope
from ..services.recovery_status import now_utc
from ..services.spreadsheet import MATERIAL_EXPORT_COLUMNS, build_export_workbook
from ..use_cases.data_management import created_at_bounds
from ..use_cases.status_transitions import (
    MATERIAL_KIND,
    bulk_update_status_use_case,
    update_status_use_case,
)

router = APIRouter(prefix="/materials", tags=["materials"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _filtered_query(
    db: Session,
    current_user: User,
    *,
    status: Optional[str],
    branch_code: Optional[str],
    material_code: Optional[str],
    date_from: Optional[date],
    date_to: Optional[date],
    search: Optional[str],
):
    query = apply_branch_scope(db.query(MaterialUsage), MaterialUsage, current_user, branch_code)
    if status:
        query = query.filter(MaterialUsage.status == status)
    if material_code:
        query = query.filter(MaterialUsage.material_code == material_code)
    if date_from:
        query = query.filter(MaterialUsage.created_at >= created_at_bounds(date_from, date_from)[0])
    if date_to:
        query = query.filter(MaterialUsage.created_at <= created_at_bounds(date_to, date_to)[1])
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            MaterialUsage.request_number.ilike(pattern)
            | MaterialUsage.material_code.ilike(pattern)
            | MaterialUsage.material_name.ilike(pattern)
            | MaterialUsage.model_name.ilike(pattern)
            | MaterialUsage.serial_number.ilike(pattern)
            | MaterialUsage.tracking_number.ilike(pattern)
        )
    return query


@router.get("", response_model=list[MaterialUsageResponse])
def list_materials(
    status: Optional[str] = Query(default=None),
    branch_code: Optional[str] = Query(default=None),
    material_code: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=100),
    limit: int = Query(default=1000, ge=1),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List materials visible to the caller (branch users see their own branch only)."""
    query = _filtered_query(
        db,
        current_user,
        status=status,
        branch_code=branch_code,
        material_code=material_code,
        date_from=date_from,
        date_to=date_to,
        search=search,
    )
    rows = query.order_by(MaterialUsage.created_at.desc()).offset(offset).limit(
        min(limit, settings.HISTORY_RETENTION_LIMIT)
    ).all()
    return [MaterialUsageResponse.model_validate(r) for r in rows]


@router.get("/export")
def export_materials(
    status: Optional[str] = Query(default=None),
    branch_code: Optional[str] = Query(default=None),
    material_code: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    current_user: User = Depends(PermissionChecker("canViewReports")),
    db: Session = Depends(get_db),
):
    """Download the filtered materials as an .xlsx workbook with localized headers."""
    rows = _filtered_query(
        db,
        current_user,
        status=status,
        branch_code=branch_code,
        material_code=material_code,
        date_from=date_from,
        date_to=date_to,
        search=None,
    ).order_by(MaterialUsage.created_at.desc()).all()
    content = build_export_workbook(rows, MATERIAL_EXPORT_COLUMNS, sheet_title="Sheet1")
    filename = f"recovery_data_{now_utc().strftime('%Y%m%d')}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.patch("/{material_id}/status", response_model=MaterialUsageResponse)
def update_material_status(
    material_id: UUID,
    payload: StatusUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    record = update_status_use_case(
        db=db,
        kind=MATERIAL_KIND,
        record_id=material_id,
        data=payload,
        current_user=current_user,
    )
    return MaterialUsageResponse.model_validate(record)


@router.post("/{material_id}/force-status", response_model=MaterialUsageResponse)
def force_material_status(
    material_id: UUID,
    payload: StatusUpdateRequest,
    current_user: User = Depends(PermissionChecker("canForceStatus")),
    db: Session = Depends(get_db),
):
    """Admin override: any status, any direction; the audit row is marked forced."""
    record = update_status_use_case(
        db=db,
        kind=MATERIAL_KIND,
        record_id=material_id,
        data=payload,
        current_user=current_user,
        force=True,
    )
    return MaterialUsageResponse.model_validate(record)


@router.post("/bulk-status", response_model=BulkStatusUpdateResult)
def bulk_update_material_status(
    payload: BulkStatusUpdateRequest,
    force: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return bulk_update_status_use_case(
        db=db,
        kind=MATERIAL_KIND,
        ids=payload.ids,
        data=payload,
        current_user=current_user,
        force=force,
    )
