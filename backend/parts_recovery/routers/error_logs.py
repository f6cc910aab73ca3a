"""Client error log endpoints."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import PermissionChecker
from ..database import get_db
from ..models import ErrorLog, User
from ..schemas import ErrorLogCreate, ErrorLogResponse
from ..use_cases.error_logs import record_client_error_use_case

router = APIRouter(prefix="/error-logs", tags=["error-logs"])


@router.post("", response_model=ErrorLogResponse, status_code=201)
def report_error(payload: ErrorLogCreate, db: Session = Depends(get_db)):
    """Accepts reports from signed-out clients too."""
    entry = record_client_error_use_case(db=db, data=payload)
    return ErrorLogResponse.model_validate(entry)


@router.get("", response_model=list[ErrorLogResponse])
def list_errors(
    limit: int = Query(default=100, ge=1, le=100),
    current_user: User = Depends(PermissionChecker("canViewErrorLogs")),
    db: Session = Depends(get_db),
):
    rows = db.query(ErrorLog).order_by(ErrorLog.created_at.desc()).limit(limit).all()
    return [ErrorLogResponse.model_validate(r) for r in rows]
