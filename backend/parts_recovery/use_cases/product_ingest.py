"""Product spreadsheet ingest: approval filter, dedupe, auto-selection."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..domain_errors import DomainError
from ..models import AutoRecoveryModel, ProductRecovery, ProductUploadHistory, User
from ..schemas import ProductUploadResult
from ..services.auto_selection import APPROVED, evaluate_auto_selection, extract_branch_code
from ..services.recovery_status import UNSELECTED, WAITING, now_utc

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "SYSTEM"
RECOVERY_TYPES = ("철거", "불량교환")

PRODUCT_RAW_FIELDS: tuple[str, ...] = (
    "request_date",
    "request_branch",
    "customer_name",
    "orderer_name",
    "penalty_fee",
    "registration_fee",
    "other_discount",
    "consumable_fee",
    "removal_fee",
    "fault_code",
    "new_request",
    "work_request_large",
    "work_request_medium",
    "work_request_small",
    "special_notes",
    "request_notes",
    "rejection_reason",
    "sales_deduction",
    "misc_profit_deduction",
    "approval_status",
    "employee_number",
    "status_raw",
)


def active_auto_recovery_prefixes(db: Session) -> list[str]:
    """Configured prefixes, or the default set when none is active."""
    models = db.query(AutoRecoveryModel).filter(AutoRecoveryModel.is_active == True).all()  # noqa: E712
    prefixes = [m.model_prefix for m in models if m.model_prefix]
    return prefixes or settings.auto_recovery_default_prefixes


def product_key(customer_number: str, model_name: str, termination: date) -> tuple[str, str, date]:
    return (customer_number, model_name, termination)


def _existing_by_key(db: Session, customer_numbers: list[str]) -> dict[tuple[str, str, date], ProductRecovery]:
    existing: dict[tuple[str, str, date], ProductRecovery] = {}
    batch = max(1, settings.UPLOAD_BATCH_SIZE)
    for start in range(0, len(customer_numbers), batch):
        chunk = customer_numbers[start:start + batch]
        for record in db.query(ProductRecovery).filter(ProductRecovery.customer_number.in_(chunk)).all():
            key = product_key(record.customer_number, record.model_name, record.termination_request_date)
            existing[key] = record
    return existing


def ingest_products_use_case(
    *,
    db: Session,
    rows: list[dict[str, Any]],
    recovery_type: str,
    file_name: str,
    current_user: User,
    overwrite: bool = False,
    now: Callable[[], datetime] = now_utc,
) -> ProductUploadResult:
    """Store approved rows; auto-selected rows start waiting, the rest unselected."""
    if recovery_type not in RECOVERY_TYPES:
        raise DomainError(
            code="PRODUCT_RECOVERY_TYPE_INVALID",
            http_status=400,
            message=f"Unknown recovery type: {recovery_type}",
        )

    prefixes = active_auto_recovery_prefixes(db)
    customer_numbers = sorted({row["customer_number"] for row in rows if row.get("customer_number")})
    by_key = _existing_by_key(db, customer_numbers) if customer_numbers else {}
    at = now()

    result = ProductUploadResult(total=len(rows), approved=0, auto_selected=0, saved=0, duplicate=0, skipped=0)

    for row in rows:
        if (row.get("approval_status") or "").strip() != APPROVED:
            result.skipped += 1
            continue
        result.approved += 1

        termination = row.get("termination_request_date")
        if termination is None:
            result.skipped += 1
            continue

        selection = evaluate_auto_selection(
            customer_number=row["customer_number"],
            model_name=row["model_name"],
            termination_date=termination,
            approval_status=row.get("approval_status"),
            prefixes=prefixes,
        )
        if selection is None:
            result.skipped += 1
            continue

        key = product_key(row["customer_number"], row["model_name"], termination)
        existing = by_key.get(key)
        if existing is not None:
            result.duplicate += 1
            if overwrite:
                for field in PRODUCT_RAW_FIELDS:
                    setattr(existing, field, row.get(field))
                result.overwritten += 1
            continue

        auto = selection.is_auto_selected
        record = ProductRecovery(
            customer_number=row["customer_number"],
            model_name=row["model_name"],
            termination_request_date=termination,
            recovery_type=recovery_type,
            contract_date=selection.contract_date,
            is_within_one_year=selection.is_within_one_year,
            is_auto_recovery_model=selection.is_auto_recovery_model,
            is_auto_selected=auto,
            selection_type="자동" if auto else None,
            branch_code=extract_branch_code(row.get("employee_number")),
            recovery_status=WAITING if auto else UNSELECTED,
            selected_at=at if auto else None,
            selected_by=SYSTEM_ACTOR if auto else None,
            **{field: row.get(field) for field in PRODUCT_RAW_FIELDS},
        )
        db.add(record)
        by_key[key] = record
        result.saved += 1
        if auto:
            result.auto_selected += 1

    db.add(
        ProductUploadHistory(
            file_name=file_name,
            recovery_type=recovery_type,
            total_rows=result.total,
            approved_rows=result.approved,
            auto_selected_rows=result.auto_selected,
            saved_rows=result.saved,
            duplicate_rows=result.duplicate,
            skipped_rows=result.skipped,
            uploaded_by=current_user.user_code,
        )
    )

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("upload.products failed file=%s type=%s", file_name, recovery_type)
        raise DomainError(
            code="PRODUCT_UPLOAD_FAILED",
            http_status=500,
            message="Failed to save uploaded products",
        )

    logger.info(
        "upload.products file=%s type=%s total=%s approved=%s auto=%s saved=%s duplicate=%s skipped=%s",
        file_name,
        recovery_type,
        result.total,
        result.approved,
        result.auto_selected,
        result.saved,
        result.duplicate,
        result.skipped,
    )
    return result
