"""Product recovery endpoints: listing, selection, status workflow, export, packing slips."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..config import settings
from ..database import get_db
from ..domain_errors import DomainError
from ..models import ProductRecovery, User
from ..schemas import (
    BulkStatusUpdateRequest,
    BulkStatusUpdateResult,
    PackingSlipRequest,
    ProductRecoveryResponse,
    RecoveryType,
    SelectForRecoveryRequest,
    StatusUpdateRequest,
)
from ..security import apply_branch_scope
from ..services.packing_slip import build_slip_pages
from ..services.recovery_status import now_utc
from ..services.spreadsheet import PRODUCT_EXPORT_COLUMNS, build_export_workbook
from ..use_cases.data_management import created_at_bounds
from ..use_cases.status_transitions import (
    PRODUCT_KIND,
    bulk_update_status_use_case,
    select_products_for_recovery_use_case,
    update_status_use_case,
)
from .materials import XLSX_MEDIA_TYPE

router = APIRouter(prefix="/products", tags=["products"])
templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))


def _filtered_query(
    db: Session,
    current_user: User,
    *,
    recovery_type: Optional[str],
    recovery_status: Optional[str],
    branch_code: Optional[str],
    auto_selected: Optional[bool],
    date_from: Optional[date],
    date_to: Optional[date],
    search: Optional[str],
):
    query = apply_branch_scope(db.query(ProductRecovery), ProductRecovery, current_user, branch_code)
    if recovery_type:
        query = query.filter(ProductRecovery.recovery_type == recovery_type)
    if recovery_status:
        query = query.filter(ProductRecovery.recovery_status == recovery_status)
    if auto_selected is not None:
        query = query.filter(ProductRecovery.is_auto_selected == auto_selected)
    if date_from:
        query = query.filter(ProductRecovery.created_at >= created_at_bounds(date_from, date_from)[0])
    if date_to:
        query = query.filter(ProductRecovery.created_at <= created_at_bounds(date_to, date_to)[1])
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            ProductRecovery.customer_number.ilike(pattern)
            | ProductRecovery.customer_name.ilike(pattern)
            | ProductRecovery.model_name.ilike(pattern)
            | ProductRecovery.tracking_number.ilike(pattern)
        )
    return query


@router.get("", response_model=list[ProductRecoveryResponse])
def list_products(
    recovery_type: Optional[RecoveryType] = Query(default=None),
    recovery_status: Optional[str] = Query(default=None),
    branch_code: Optional[str] = Query(default=None),
    auto_selected: Optional[bool] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=100),
    limit: int = Query(default=1000, ge=1),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = _filtered_query(
        db,
        current_user,
        recovery_type=recovery_type,
        recovery_status=recovery_status,
        branch_code=branch_code,
        auto_selected=auto_selected,
        date_from=date_from,
        date_to=date_to,
        search=search,
    )
    rows = query.order_by(ProductRecovery.created_at.desc()).offset(offset).limit(
        min(limit, settings.HISTORY_RETENTION_LIMIT)
    ).all()
    return [ProductRecoveryResponse.model_validate(r) for r in rows]


@router.get("/export")
def export_products(
    recovery_type: Optional[RecoveryType] = Query(default=None),
    recovery_status: Optional[str] = Query(default=None),
    branch_code: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    current_user: User = Depends(PermissionChecker("canViewReports")),
    db: Session = Depends(get_db),
):
    rows = _filtered_query(
        db,
        current_user,
        recovery_type=recovery_type,
        recovery_status=recovery_status,
        branch_code=branch_code,
        auto_selected=None,
        date_from=date_from,
        date_to=date_to,
        search=None,
    ).order_by(ProductRecovery.created_at.desc()).all()
    content = build_export_workbook(rows, PRODUCT_EXPORT_COLUMNS, sheet_title="Sheet1")
    filename = f"product_recovery_{now_utc().strftime('%Y%m%d')}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/select", response_model=BulkStatusUpdateResult)
def select_for_recovery(
    payload: SelectForRecoveryRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Manually put unselected products into the recovery workflow."""
    return select_products_for_recovery_use_case(db=db, ids=payload.ids, current_user=current_user)


@router.post("/packing-slips", response_class=HTMLResponse)
def print_packing_slips(
    payload: PackingSlipRequest,
    request: Request,
    current_user: User = Depends(PermissionChecker("canPrintPackingSlips")),
    db: Session = Depends(get_db),
):
    """Render one printable page per selected product."""
    query = apply_branch_scope(db.query(ProductRecovery), ProductRecovery, current_user)
    products = query.filter(ProductRecovery.id.in_(payload.ids)).order_by(ProductRecovery.customer_number).all()
    if not products:
        raise DomainError(
            code="PACKING_SLIP_EMPTY",
            http_status=404,
            message="No products found for the packing slip",
        )
    return templates.TemplateResponse(
        request,
        "packing_slips.html",
        {"pages": build_slip_pages(products)},
    )


@router.patch("/{product_id}/status", response_model=ProductRecoveryResponse)
def update_product_status(
    product_id: UUID,
    payload: StatusUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    record = update_status_use_case(
        db=db,
        kind=PRODUCT_KIND,
        record_id=product_id,
        data=payload,
        current_user=current_user,
    )
    return ProductRecoveryResponse.model_validate(record)


@router.post("/{product_id}/force-status", response_model=ProductRecoveryResponse)
def force_product_status(
    product_id: UUID,
    payload: StatusUpdateRequest,
    current_user: User = Depends(PermissionChecker("canForceStatus")),
    db: Session = Depends(get_db),
):
    record = update_status_use_case(
        db=db,
        kind=PRODUCT_KIND,
        record_id=product_id,
        data=payload,
        current_user=current_user,
        force=True,
    )
    return ProductRecoveryResponse.model_validate(record)


@router.post("/bulk-status", response_model=BulkStatusUpdateResult)
def bulk_update_product_status(
    payload: BulkStatusUpdateRequest,
    force: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return bulk_update_status_use_case(
        db=db,
        kind=PRODUCT_KIND,
        ids=payload.ids,
        data=payload,
        current_user=current_user,
        force=force,
    )
