"""Allow-list, auto-recovery prefix, carrier and system-setting use-cases."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain_errors import DomainError, not_found
from ..models import (
    AutoRecoveryModel,
    Carrier,
    RecoveryMaterial,
    RecoveryMaterialHistory,
    SystemSetting,
    User,
)
from ..schemas import (
    AutoRecoveryModelCreate,
    RecoveryMaterialCreate,
    SystemSettingsResponse,
    SystemSettingsUpdate,
)
from ..services.recovery_status import now_utc

logger = logging.getLogger(__name__)

DEFAULT_CARRIERS: tuple[str, ...] = ("CJ대한통운", "롯데택배", "한진택배", "로젠택배", "우체국택배", "경동택배")
EMAIL_SETTING_KEYS: tuple[str, ...] = ("email_from", "email_from_name", "resend_api_key")

ACTION_REGISTER = "등록"
ACTION_RELEASE = "해제"


def _commit(db: Session, *, code: str, message: str, context: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("%s failed", context)
        raise DomainError(code=code, http_status=500, message=message)


def register_recovery_material_use_case(
    *,
    db: Session,
    data: RecoveryMaterialCreate,
    current_user: User,
    now: Callable[[], datetime] = now_utc,
) -> RecoveryMaterial:
    """Add a material code to the allow-list, or reactivate a released one."""
    code = data.material_code.strip()
    if not code:
        raise DomainError(code="MATERIAL_CODE_REQUIRED", http_status=400, message="Material code is required")

    entry = db.query(RecoveryMaterial).filter(RecoveryMaterial.material_code == code).first()
    if entry is not None and entry.is_active:
        raise DomainError(
            code="RECOVERY_MATERIAL_EXISTS",
            http_status=409,
            message=f"Material code {code} is already a recovery target",
        )

    if entry is None:
        entry = RecoveryMaterial(material_code=code, is_active=True)
        db.add(entry)
    entry.material_name = data.material_name
    entry.serial_number_start = data.serial_number_start
    entry.serial_number_end = data.serial_number_end
    entry.is_active = True
    entry.created_by = current_user.user_code
    entry.deactivated_at = None
    entry.deactivated_by = None

    db.add(
        RecoveryMaterialHistory(
            material_code=code,
            material_name=data.material_name,
            action=ACTION_REGISTER,
            action_by=current_user.user_code,
            action_at=now(),
        )
    )
    _commit(
        db,
        code="RECOVERY_MATERIAL_SAVE_FAILED",
        message="Failed to register recovery material",
        context=f"settings.material.register code={code}",
    )
    logger.info("settings.material.register code=%s by=%s", code, current_user.user_code)
    return entry


def release_recovery_material_use_case(
    *,
    db: Session,
    material_id: UUID,
    current_user: User,
    now: Callable[[], datetime] = now_utc,
) -> RecoveryMaterial:
    """Soft delete: the entry stays for history, uploads stop retaining the code."""
    entry = db.query(RecoveryMaterial).filter(RecoveryMaterial.id == material_id).first()
    if entry is None:
        raise not_found("RECOVERY_MATERIAL_NOT_FOUND", "Recovery material not found")
    if not entry.is_active:
        return entry

    at = now()
    entry.is_active = False
    entry.deactivated_at = at
    entry.deactivated_by = current_user.user_code
    db.add(
        RecoveryMaterialHistory(
            material_code=entry.material_code,
            material_name=entry.material_name,
            action=ACTION_RELEASE,
            action_by=current_user.user_code,
            action_at=at,
        )
    )
    _commit(
        db,
        code="RECOVERY_MATERIAL_SAVE_FAILED",
        message="Failed to release recovery material",
        context=f"settings.material.release id={material_id}",
    )
    logger.info("settings.material.release code=%s by=%s", entry.material_code, current_user.user_code)
    return entry


def add_auto_recovery_model_use_case(
    *,
    db: Session,
    data: AutoRecoveryModelCreate,
    current_user: User,
) -> AutoRecoveryModel:
    prefix = data.model_prefix.strip().upper()
    if not prefix:
        raise DomainError(code="MODEL_PREFIX_REQUIRED", http_status=400, message="Model prefix is required")

    existing = db.query(AutoRecoveryModel).filter(AutoRecoveryModel.model_prefix == prefix).first()
    if existing is not None:
        if existing.is_active:
            raise DomainError(
                code="MODEL_PREFIX_EXISTS",
                http_status=409,
                message=f"Model prefix {prefix} already exists",
            )
        existing.is_active = True
        existing.description = data.description
        model = existing
    else:
        model = AutoRecoveryModel(
            model_prefix=prefix,
            description=data.description,
            is_active=True,
            created_by=current_user.user_code,
        )
        db.add(model)

    _commit(
        db,
        code="MODEL_PREFIX_SAVE_FAILED",
        message="Failed to save model prefix",
        context=f"settings.model_prefix.add prefix={prefix}",
    )
    return model


def set_auto_recovery_model_active_use_case(
    *,
    db: Session,
    model_id: UUID,
    is_active: bool,
) -> AutoRecoveryModel:
    model = db.query(AutoRecoveryModel).filter(AutoRecoveryModel.id == model_id).first()
    if model is None:
        raise not_found("MODEL_PREFIX_NOT_FOUND", "Model prefix not found")
    model.is_active = is_active
    _commit(
        db,
        code="MODEL_PREFIX_SAVE_FAILED",
        message="Failed to update model prefix",
        context=f"settings.model_prefix.toggle id={model_id}",
    )
    return model


def list_carriers(db: Session) -> list[str]:
    """Active carrier names, or the built-in list when none is configured."""
    carriers = db.query(Carrier).filter(Carrier.is_active == True).order_by(Carrier.name).all()  # noqa: E712
    names = [carrier.name for carrier in carriers]
    return names or list(DEFAULT_CARRIERS)


def add_carrier_use_case(*, db: Session, name: str) -> Carrier:
    cleaned = name.strip()
    if not cleaned:
        raise DomainError(code="CARRIER_NAME_REQUIRED", http_status=400, message="Carrier name is required")
    carrier = db.query(Carrier).filter(Carrier.name == cleaned).first()
    if carrier is None:
        carrier = Carrier(name=cleaned, is_active=True)
        db.add(carrier)
    else:
        carrier.is_active = True
    _commit(
        db,
        code="CARRIER_SAVE_FAILED",
        message="Failed to save carrier",
        context=f"settings.carrier.add name={cleaned}",
    )
    return carrier


def read_system_settings(db: Session) -> dict[str, str]:
    rows = db.query(SystemSetting).filter(SystemSetting.setting_key.in_(EMAIL_SETTING_KEYS)).all()
    return {row.setting_key: row.setting_value or "" for row in rows}


def system_settings_view(values: dict[str, str]) -> SystemSettingsResponse:
    """The provider key is never echoed back, only whether one is stored."""
    return SystemSettingsResponse(
        email_from=values.get("email_from") or None,
        email_from_name=values.get("email_from_name") or None,
        has_api_key=bool(values.get("resend_api_key")),
    )


def update_system_settings_use_case(*, db: Session, data: SystemSettingsUpdate) -> SystemSettingsResponse:
    updates = data.model_dump(exclude_none=True)
    for key, value in updates.items():
        row = db.query(SystemSetting).filter(SystemSetting.setting_key == key).first()
        if row is None:
            db.add(SystemSetting(setting_key=key, setting_value=value))
        else:
            row.setting_value = value
    _commit(
        db,
        code="SYSTEM_SETTINGS_SAVE_FAILED",
        message="Failed to save system settings",
        context="settings.system.update",
    )
    logger.info("settings.system.update keys=%s", ",".join(sorted(updates)))
    return system_settings_view(read_system_settings(db))
