"""Date-range deletion and backup listing."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import PermissionChecker
from ..config import settings
from ..database import get_db
from ..models import DataBackup, User
from ..schemas import DataBackupResponse, DataDeleteRequest, DataDeleteResult
from ..use_cases.data_management import delete_range_use_case

router = APIRouter(prefix="/data", tags=["data"])


@router.post("/delete", response_model=DataDeleteResult)
def delete_range(
    payload: DataDeleteRequest,
    current_user: User = Depends(PermissionChecker("canDeleteData")),
    db: Session = Depends(get_db),
):
    """Back up then delete all rows of one table created in the date range."""
    return delete_range_use_case(db=db, data=payload, current_user=current_user)


@router.get("/backups", response_model=list[DataBackupResponse])
def list_backups(
    limit: int = Query(default=100, ge=1),
    current_user: User = Depends(PermissionChecker("canDeleteData")),
    db: Session = Depends(get_db),
):
    rows = db.query(DataBackup).order_by(DataBackup.created_at.desc()).limit(
        min(limit, settings.HISTORY_RETENTION_LIMIT)
    ).all()
    return [DataBackupResponse.model_validate(r) for r in rows]
