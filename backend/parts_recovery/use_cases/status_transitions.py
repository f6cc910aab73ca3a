"""Recovery status use-cases (single, bulk, forced, manual selection)."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import check_permission
from ..domain_errors import DomainError
from ..models import MaterialUsage, ProductRecovery, ProductStatusHistory, StatusChangeHistory, User
from ..schemas import BulkFailure, BulkStatusUpdateResult, StatusUpdateRequest
from ..security import can_access_record
from ..services.recovery_status import (
    MATERIAL,
    PRODUCT,
    UNSELECTED,
    WAITING,
    apply_status_fields,
    ensure_role_may_set,
    ensure_transition_payload,
    now_utc,
    validate_target_status,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordKind:
    """How one record type stores its status and audit trail."""

    name: str
    model: type
    status_attr: str
    not_found_code: str
    build_history: Callable[..., Any]


def _material_history(record: MaterialUsage, **fields: Any) -> StatusChangeHistory:
    return StatusChangeHistory(
        material_usage_id=record.id,
        request_number=record.request_number,
        branch_code=record.branch_code,
        material_code=record.material_code,
        **fields,
    )


def _product_history(record: ProductRecovery, **fields: Any) -> ProductStatusHistory:
    return ProductStatusHistory(
        product_recovery_id=record.id,
        customer_number=record.customer_number,
        branch_code=record.branch_code,
        model_name=record.model_name,
        **fields,
    )


MATERIAL_KIND = RecordKind(
    name=MATERIAL,
    model=MaterialUsage,
    status_attr="status",
    not_found_code="MATERIAL_NOT_FOUND",
    build_history=_material_history,
)
PRODUCT_KIND = RecordKind(
    name=PRODUCT,
    model=ProductRecovery,
    status_attr="recovery_status",
    not_found_code="PRODUCT_NOT_FOUND",
    build_history=_product_history,
)


def _load_record(*, db: Session, kind: RecordKind, record_id: UUID):
    record = db.query(kind.model).filter(kind.model.id == record_id).first()
    if not record:
        raise DomainError(
            code=kind.not_found_code,
            http_status=404,
            message=f"{kind.name.capitalize()} record not found",
        )
    return record


def _commit_or_500(*, db: Session, code: str, message: str, context: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("%s failed", context)
        raise DomainError(code=code, http_status=500, message=message)


def _validate_transition(
    *,
    kind: RecordKind,
    record: Any,
    data: StatusUpdateRequest,
    current_user: User,
    force: bool,
) -> str:
    if not can_access_record(record, current_user):
        raise DomainError(
            code="RECORD_ACCESS_DENIED",
            http_status=403,
            message="Access denied",
        )
    try:
        next_status = validate_target_status(record_kind=kind.name, next_status=data.status)
    except ValueError as exc:
        raise DomainError(code="INVALID_STATUS", http_status=400, message=str(exc)) from exc

    if force:
        if not check_permission(current_user, "canForceStatus"):
            raise DomainError(
                code="STATUS_FORCE_FORBIDDEN",
                http_status=403,
                message="Only CS administrators may force a status change",
            )
    else:
        try:
            ensure_role_may_set(
                record_kind=kind.name,
                user_type=current_user.user_type,
                next_status=next_status,
            )
        except PermissionError as exc:
            raise DomainError(
                code="STATUS_TRANSITION_FORBIDDEN",
                http_status=403,
                message=str(exc),
            ) from exc

        if kind.name == PRODUCT and getattr(record, kind.status_attr) == UNSELECTED and next_status != WAITING:
            raise DomainError(
                code="PRODUCT_NOT_SELECTED",
                http_status=409,
                message="Product must be selected for recovery first",
            )

    try:
        ensure_transition_payload(
            next_status=next_status,
            carrier=data.carrier,
            tracking_number=data.tracking_number,
            cancel_reason=data.cancel_reason,
        )
    except ValueError as exc:
        raise DomainError(
            code="STATUS_PAYLOAD_INVALID",
            http_status=400,
            message=str(exc),
        ) from exc
    return next_status


def _apply_transition(
    *,
    db: Session,
    kind: RecordKind,
    record: Any,
    next_status: str,
    data: StatusUpdateRequest,
    actor: str,
    force: bool,
    at: datetime,
) -> None:
    previous = apply_status_fields(
        record,
        next_status=next_status,
        status_attr=kind.status_attr,
        actor=actor,
        carrier=data.carrier,
        tracking_number=data.tracking_number,
        cancel_reason=data.cancel_reason,
        cancel_reason_detail=data.cancel_reason_detail,
        at=at,
    )
    db.add(
        kind.build_history(
            record,
            previous_status=previous,
            new_status=next_status,
            carrier=data.carrier,
            tracking_number=data.tracking_number,
            cancel_reason=data.cancel_reason,
            cancel_reason_detail=data.cancel_reason_detail,
            is_forced=force,
            changed_by=actor,
            changed_at=at,
        )
    )


def update_status_use_case(
    *,
    db: Session,
    kind: RecordKind,
    record_id: UUID,
    data: StatusUpdateRequest,
    current_user: User,
    force: bool = False,
    now: Callable[[], datetime] = now_utc,
):
    """Move one record to a new status and write its audit row."""
    record = _load_record(db=db, kind=kind, record_id=record_id)
    next_status = _validate_transition(
        kind=kind,
        record=record,
        data=data,
        current_user=current_user,
        force=force,
    )
    previous = getattr(record, kind.status_attr)
    _apply_transition(
        db=db,
        kind=kind,
        record=record,
        next_status=next_status,
        data=data,
        actor=current_user.user_code,
        force=force,
        at=now(),
    )
    _commit_or_500(
        db=db,
        code="STATUS_UPDATE_FAILED",
        message="Failed to update status",
        context=f"status.update kind={kind.name} id={record_id}",
    )
    logger.info(
        "status.update kind=%s id=%s from=%s to=%s by=%s forced=%s",
        kind.name,
        record_id,
        previous,
        next_status,
        current_user.user_code,
        force,
    )
    return record


def bulk_update_status_use_case(
    *,
    db: Session,
    kind: RecordKind,
    ids: list[UUID],
    data: StatusUpdateRequest,
    current_user: User,
    force: bool = False,
    now: Callable[[], datetime] = now_utc,
) -> BulkStatusUpdateResult:
    """Apply the single-record transition per id; failures do not undo earlier successes."""
    result = BulkStatusUpdateResult()
    for record_id in ids:
        try:
            update_status_use_case(
                db=db,
                kind=kind,
                record_id=record_id,
                data=data,
                current_user=current_user,
                force=force,
                now=now,
            )
        except DomainError as exc:
            result.failed.append(BulkFailure(id=record_id, code=exc.code, message=exc.message))
            continue
        result.succeeded.append(record_id)

    logger.info(
        "status.bulk kind=%s to=%s succeeded=%s failed=%s",
        kind.name,
        data.status,
        len(result.succeeded),
        len(result.failed),
    )
    return result


def select_products_for_recovery_use_case(
    *,
    db: Session,
    ids: list[UUID],
    current_user: User,
    now: Callable[[], datetime] = now_utc,
) -> BulkStatusUpdateResult:
    """Manual selection: unselected products become waiting with selection type 수동."""
    if not check_permission(current_user, "canForceStatus"):
        raise DomainError(
            code="PRODUCT_SELECT_FORBIDDEN",
            http_status=403,
            message="Only CS administrators may select products for recovery",
        )

    result = BulkStatusUpdateResult()
    for record_id in ids:
        try:
            product = _load_record(db=db, kind=PRODUCT_KIND, record_id=record_id)
            if product.recovery_status != UNSELECTED:
                raise DomainError(
                    code="PRODUCT_ALREADY_SELECTED",
                    http_status=409,
                    message="Product is already selected for recovery",
                )
            at = now()
            product.selection_type = "수동"
            product.selected_at = at
            product.selected_by = current_user.user_code
            _apply_transition(
                db=db,
                kind=PRODUCT_KIND,
                record=product,
                next_status=WAITING,
                data=StatusUpdateRequest(status=WAITING),
                actor=current_user.user_code,
                force=False,
                at=at,
            )
            _commit_or_500(
                db=db,
                code="PRODUCT_SELECT_FAILED",
                message="Failed to select product",
                context=f"products.select id={record_id}",
            )
        except DomainError as exc:
            result.failed.append(BulkFailure(id=record_id, code=exc.code, message=exc.message))
            continue
        result.succeeded.append(record_id)

    logger.info(
        "products.select succeeded=%s failed=%s by=%s",
        len(result.succeeded),
        len(result.failed),
        current_user.user_code,
    )
    return result
