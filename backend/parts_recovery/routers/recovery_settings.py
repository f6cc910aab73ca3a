"""Settings endpoints: recovery material allow-list, auto-recovery models, carriers, email."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..config import settings
from ..database import get_db
from ..models import AutoRecoveryModel, RecoveryMaterial, RecoveryMaterialHistory, User
from ..schemas import (
    AutoRecoveryModelCreate,
    AutoRecoveryModelResponse,
    CarrierCreate,
    RecoveryMaterialCreate,
    RecoveryMaterialHistoryResponse,
    RecoveryMaterialResponse,
    SystemSettingsResponse,
    SystemSettingsUpdate,
)
from ..use_cases.recovery_settings import (
    add_auto_recovery_model_use_case,
    add_carrier_use_case,
    list_carriers,
    read_system_settings,
    register_recovery_material_use_case,
    release_recovery_material_use_case,
    set_auto_recovery_model_active_use_case,
    system_settings_view,
    update_system_settings_use_case,
)

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/recovery-materials", response_model=list[RecoveryMaterialResponse])
def get_recovery_materials(
    include_inactive: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(RecoveryMaterial)
    if not include_inactive:
        query = query.filter(RecoveryMaterial.is_active == True)  # noqa: E712
    rows = query.order_by(RecoveryMaterial.material_code).all()
    return [RecoveryMaterialResponse.model_validate(r) for r in rows]


@router.post("/recovery-materials", response_model=RecoveryMaterialResponse, status_code=201)
def create_recovery_material(
    payload: RecoveryMaterialCreate,
    current_user: User = Depends(PermissionChecker("canManageSettings")),
    db: Session = Depends(get_db),
):
    entry = register_recovery_material_use_case(db=db, data=payload, current_user=current_user)
    return RecoveryMaterialResponse.model_validate(entry)


@router.delete("/recovery-materials/{material_id}", response_model=RecoveryMaterialResponse)
def release_recovery_material(
    material_id: UUID,
    current_user: User = Depends(PermissionChecker("canManageSettings")),
    db: Session = Depends(get_db),
):
    """Deactivate; later uploads discard rows with this code."""
    entry = release_recovery_material_use_case(db=db, material_id=material_id, current_user=current_user)
    return RecoveryMaterialResponse.model_validate(entry)


@router.get("/recovery-materials/history", response_model=list[RecoveryMaterialHistoryResponse])
def get_recovery_material_history(
    limit: int = Query(default=500, ge=1),
    current_user: User = Depends(PermissionChecker("canManageSettings")),
    db: Session = Depends(get_db),
):
    rows = db.query(RecoveryMaterialHistory).order_by(RecoveryMaterialHistory.action_at.desc()).limit(
        min(limit, settings.HISTORY_RETENTION_LIMIT)
    ).all()
    return [RecoveryMaterialHistoryResponse.model_validate(r) for r in rows]


@router.get("/auto-recovery-models", response_model=list[AutoRecoveryModelResponse])
def get_auto_recovery_models(
    current_user: User = Depends(PermissionChecker("canManageSettings")),
    db: Session = Depends(get_db),
):
    rows = db.query(AutoRecoveryModel).order_by(AutoRecoveryModel.model_prefix).all()
    return [AutoRecoveryModelResponse.model_validate(r) for r in rows]


@router.post("/auto-recovery-models", response_model=AutoRecoveryModelResponse, status_code=201)
def create_auto_recovery_model(
    payload: AutoRecoveryModelCreate,
    current_user: User = Depends(PermissionChecker("canManageSettings")),
    db: Session = Depends(get_db),
):
    model = add_auto_recovery_model_use_case(db=db, data=payload, current_user=current_user)
    return AutoRecoveryModelResponse.model_validate(model)


@router.patch("/auto-recovery-models/{model_id}", response_model=AutoRecoveryModelResponse)
def toggle_auto_recovery_model(
    model_id: UUID,
    is_active: bool = Query(...),
    current_user: User = Depends(PermissionChecker("canManageSettings")),
    db: Session = Depends(get_db),
):
    model = set_auto_recovery_model_active_use_case(db=db, model_id=model_id, is_active=is_active)
    return AutoRecoveryModelResponse.model_validate(model)


@router.get("/carriers", response_model=list[str])
def get_carriers(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_carriers(db)


@router.post("/carriers", response_model=list[str], status_code=201)
def create_carrier(
    payload: CarrierCreate,
    current_user: User = Depends(PermissionChecker("canManageSettings")),
    db: Session = Depends(get_db),
):
    add_carrier_use_case(db=db, name=payload.name)
    return list_carriers(db)


@router.get("/system", response_model=SystemSettingsResponse)
def get_system_settings(
    current_user: User = Depends(PermissionChecker("canManageSettings")),
    db: Session = Depends(get_db),
):
    return system_settings_view(read_system_settings(db))


@router.put("/system", response_model=SystemSettingsResponse)
def put_system_settings(
    payload: SystemSettingsUpdate,
    current_user: User = Depends(PermissionChecker("canManageSettings")),
    db: Session = Depends(get_db),
):
    return update_system_settings_use_case(db=db, data=payload)
