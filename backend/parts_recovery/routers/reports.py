"""Dashboard statistics, report aggregates and outbound email endpoints."""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import PermissionChecker
from ..database import get_db
from ..models import MaterialUsage, ProductRecovery, User
from ..schemas import (
    BranchEmailRequest,
    BranchEmailResult,
    BranchSummary,
    DailyCounts,
    MaterialSummary,
    SendEmailRequest,
    SendEmailResult,
    StatusCounts,
)
from ..services import reporting
from ..use_cases.reports import scoped_records, send_branch_emails_use_case, send_email_use_case

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/stats", response_model=dict[str, StatusCounts])
def get_stats(
    branch_code: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    current_user: User = Depends(PermissionChecker("canViewReports")),
    db: Session = Depends(get_db),
):
    """Status counts for the dashboard cards, for materials and products separately."""
    scope = dict(current_user=current_user, branch_code=branch_code, date_from=date_from, date_to=date_to)
    materials = scoped_records(db, MaterialUsage, **scope)
    products = scoped_records(db, ProductRecovery, **scope)
    return {
        "materials": reporting.status_counts(materials),
        "products": reporting.status_counts(products, status_attr="recovery_status"),
    }


@router.get("/branch-summary", response_model=list[BranchSummary])
def get_branch_summary(
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    current_user: User = Depends(PermissionChecker("canViewReports")),
    db: Session = Depends(get_db),
):
    scope = dict(current_user=current_user, date_from=date_from, date_to=date_to)
    return reporting.branch_summary(
        scoped_records(db, MaterialUsage, **scope),
        scoped_records(db, ProductRecovery, **scope),
    )


@router.get("/material-summary", response_model=list[MaterialSummary])
def get_material_summary(
    branch_code: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    current_user: User = Depends(PermissionChecker("canViewReports")),
    db: Session = Depends(get_db),
):
    materials = scoped_records(
        db,
        MaterialUsage,
        current_user=current_user,
        branch_code=branch_code,
        date_from=date_from,
        date_to=date_to,
    )
    return reporting.material_summary(materials)


@router.get("/daily", response_model=list[DailyCounts])
def get_daily_counts(
    kind: Literal["material", "product"] = Query(default="material"),
    branch_code: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    current_user: User = Depends(PermissionChecker("canViewReports")),
    db: Session = Depends(get_db),
):
    """Per-day counts for the calendar view."""
    model = MaterialUsage if kind == "material" else ProductRecovery
    records = scoped_records(
        db,
        model,
        current_user=current_user,
        branch_code=branch_code,
        date_from=date_from,
        date_to=date_to,
    )
    status_attr = "status" if kind == "material" else "recovery_status"
    return reporting.daily_series(records, status_attr=status_attr)


@router.post("/branch-emails", response_model=BranchEmailResult)
def send_branch_emails(
    payload: BranchEmailRequest,
    current_user: User = Depends(PermissionChecker("canSendEmails")),
    db: Session = Depends(get_db),
):
    return send_branch_emails_use_case(db=db, data=payload, current_user=current_user)


@router.post("/send-email", response_model=SendEmailResult)
def send_email(
    payload: SendEmailRequest,
    current_user: User = Depends(PermissionChecker("canSendEmails")),
    db: Session = Depends(get_db),
):
    return send_email_use_case(db=db, data=payload)
