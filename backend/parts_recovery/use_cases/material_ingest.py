"""Material spreadsheet ingest: allow-list filter, dedupe, insert."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..domain_errors import DomainError
from ..models import MaterialUsage, RecoveryMaterial, UploadHistory, User
from ..schemas import MaterialUploadCounts, MaterialUploadResult
from ..services.recovery_status import WAITING
from ..services.spreadsheet import date_bucket

logger = logging.getLogger(__name__)

# Raw spreadsheet columns; overwrite touches only these, never workflow fields.
MATERIAL_RAW_FIELDS: tuple[str, ...] = (
    "receipt_time",
    "model_name",
    "serial_number",
    "receipt_type",
    "inquiry_content",
    "process_time",
    "process_type",
    "repair_type",
    "technician_code",
    "process_content",
    "fault_category_large",
    "fault_category_medium",
    "fault_category_small",
    "fault_cause",
    "parts_cost",
    "repair_cost",
    "visit_cost",
    "warranty_type",
    "material_name",
    "warranty_type2",
    "output_quantity",
)
_INT_FIELDS = {"parts_cost", "repair_cost", "visit_cost", "output_quantity"}


def material_key(row: Any) -> tuple[str, str, str]:
    if isinstance(row, dict):
        return (row["request_number"], row["branch_code"], row["material_code"])
    return (row.request_number, row.branch_code, row.material_code)


def _raw_values(row: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field in MATERIAL_RAW_FIELDS:
        value = row.get(field)
        if field in _INT_FIELDS:
            value = value or 0
        values[field] = value
    return values


def _active_material_codes(db: Session) -> set[str]:
    entries = db.query(RecoveryMaterial).filter(RecoveryMaterial.is_active == True).all()  # noqa: E712
    return {entry.material_code for entry in entries}


def _existing_by_key(db: Session, rows: list[dict[str, Any]]) -> dict[tuple[str, str, str], MaterialUsage]:
    request_numbers = sorted({row["request_number"] for row in rows})
    existing: dict[tuple[str, str, str], MaterialUsage] = {}
    batch = max(1, settings.UPLOAD_BATCH_SIZE)
    for start in range(0, len(request_numbers), batch):
        chunk = request_numbers[start:start + batch]
        for record in db.query(MaterialUsage).filter(MaterialUsage.request_number.in_(chunk)).all():
            existing[material_key(record)] = record
    return existing


def ingest_materials_use_case(
    *,
    db: Session,
    rows: list[dict[str, Any]],
    file_name: str,
    current_user: User,
    overwrite: bool = False,
    today: Callable[[], date] = date.today,
) -> MaterialUploadResult:
    """Persist allow-listed, non-duplicate rows as waiting; report per-date/per-branch counts."""
    allowed = _active_material_codes(db)
    by_key = _existing_by_key(db, rows) if rows else {}
    current_day = today()

    result = MaterialUploadResult(total=len(rows), saved=0, discarded=0, duplicate=0)
    pending = 0

    for row in rows:
        day = date_bucket(row.get("process_time"), today=current_day)
        branch = row["branch_code"]
        day_counts = result.by_date.setdefault(day, MaterialUploadCounts())
        branch_counts = result.by_branch.setdefault(branch, MaterialUploadCounts())

        if row["material_code"] not in allowed:
            result.discarded += 1
            day_counts.discarded += 1
            branch_counts.discarded += 1
            continue

        key = material_key(row)
        existing = by_key.get(key)
        if existing is not None:
            result.duplicate += 1
            if overwrite:
                for field, value in _raw_values(row).items():
                    setattr(existing, field, value)
                existing.is_recovery_target = True
                result.overwritten += 1
            continue

        record = MaterialUsage(
            request_number=row["request_number"],
            branch_code=branch,
            material_code=row["material_code"],
            status=WAITING,
            is_recovery_target=True,
            **_raw_values(row),
        )
        db.add(record)
        by_key[key] = record
        result.saved += 1
        day_counts.saved += 1
        branch_counts.saved += 1

        pending += 1
        if pending >= settings.UPLOAD_BATCH_SIZE:
            db.flush()
            pending = 0

    db.add(
        UploadHistory(
            file_name=file_name,
            total_rows=result.total,
            saved_rows=result.saved,
            discarded_rows=result.discarded,
            duplicate_rows=result.duplicate,
            recovery_target_rows=result.total - result.discarded,
            by_date_detail={day: counts.model_dump() for day, counts in result.by_date.items()},
            by_branch_detail={branch: counts.model_dump() for branch, counts in result.by_branch.items()},
            uploaded_by=current_user.user_code,
        )
    )

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("upload.materials failed file=%s", file_name)
        raise DomainError(
            code="MATERIAL_UPLOAD_FAILED",
            http_status=500,
            message="Failed to save uploaded materials",
        )

    logger.info(
        "upload.materials file=%s total=%s saved=%s discarded=%s duplicate=%s overwritten=%s",
        file_name,
        result.total,
        result.saved,
        result.discarded,
        result.duplicate,
        result.overwritten,
    )
    return result
