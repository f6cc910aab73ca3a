"""Date-range delete with mandatory backup."""
from __future__ import annotations

import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import check_permission
from ..config import settings
from ..domain_errors import DomainError
from ..models import DataBackup, MaterialUsage, ProductRecovery, User
from ..schemas import DataDeleteRequest, DataDeleteResult
from ..services.recovery_status import LOCAL_TZ

logger = logging.getLogger(__name__)

DELETABLE_TABLES: dict[str, type] = {
    "material_usage": MaterialUsage,
    "product_recovery": ProductRecovery,
}


def _json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def serialize_row(model: type, record: Any) -> dict[str, Any]:
    """Full column copy of a row, JSON-safe."""
    return {
        column.key: _json_value(getattr(record, column.key, None))
        for column in model.__table__.columns
    }


def created_at_bounds(date_from: date, date_to: date) -> tuple[datetime, datetime]:
    """Inclusive created_at bounds for whole local calendar days."""
    return (
        datetime.combine(date_from, time.min, tzinfo=LOCAL_TZ),
        datetime.combine(date_to, time(23, 59, 59), tzinfo=LOCAL_TZ),
    )


def delete_range_use_case(
    *,
    db: Session,
    data: DataDeleteRequest,
    current_user: User,
) -> DataDeleteResult:
    """Back up every matched row in one backup row, then delete them.

    The backup is committed on its own first; when that commit fails nothing is deleted.
    """
    if not check_permission(current_user, "canDeleteData"):
        raise DomainError(code="DATA_DELETE_FORBIDDEN", http_status=403, message="Permission denied")
    if data.confirm_text.strip() != settings.DATA_DELETE_CONFIRM_PHRASE:
        raise DomainError(
            code="DATA_DELETE_CONFIRMATION_MISMATCH",
            http_status=400,
            message="Confirmation phrase does not match",
        )
    if data.date_from > data.date_to:
        raise DomainError(
            code="DATA_DELETE_RANGE_INVALID",
            http_status=400,
            message="date_from must not be after date_to",
        )

    model = DELETABLE_TABLES.get(data.table)
    if model is None:
        raise DomainError(code="DATA_DELETE_TABLE_INVALID", http_status=400, message="Table not allowed")

    start, end = created_at_bounds(data.date_from, data.date_to)
    records = db.query(model).filter(model.created_at >= start, model.created_at <= end).all()
    if not records:
        raise DomainError(code="DATA_DELETE_NOTHING_MATCHED", http_status=404, message="No rows in the date range")

    backup = DataBackup(
        id=uuid4(),
        backup_type=data.table,
        original_data=[serialize_row(model, record) for record in records],
        deleted_count=len(records),
        date_from=data.date_from,
        date_to=data.date_to,
        deleted_by=current_user.user_code,
    )
    db.add(backup)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("data.delete backup failed table=%s rows=%s", data.table, len(records))
        raise DomainError(
            code="DATA_BACKUP_FAILED",
            http_status=500,
            message="Backup failed; nothing was deleted",
        )

    ids = [record.id for record in records]
    batch = max(1, settings.UPLOAD_BATCH_SIZE)
    try:
        for start_idx in range(0, len(ids), batch):
            chunk = ids[start_idx:start_idx + batch]
            db.query(model).filter(model.id.in_(chunk)).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("data.delete failed after backup table=%s backup=%s", data.table, backup.id)
        raise DomainError(
            code="DATA_DELETE_FAILED",
            http_status=500,
            message="Failed to delete rows; the backup was kept",
            details={"backup_id": str(backup.id)},
        )

    logger.warning(
        "data.delete table=%s from=%s to=%s deleted=%s backup=%s by=%s",
        data.table,
        data.date_from,
        data.date_to,
        len(ids),
        backup.id,
        current_user.user_code,
    )
    return DataDeleteResult(deleted_count=len(ids), backup_id=backup.id)
