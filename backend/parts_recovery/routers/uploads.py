"""Spreadsheet upload endpoints (materials and products)."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from ..auth import PermissionChecker
from ..config import settings
from ..database import get_db
from ..models import ProductUploadHistory, UploadHistory, User
from ..schemas import (
    MaterialUploadResult,
    ProductUploadHistoryResponse,
    ProductUploadResult,
    RecoveryType,
    UploadHistoryResponse,
)
from ..services.spreadsheet import SpreadsheetError, parse_material_workbook, parse_product_workbook
from ..use_cases.material_ingest import ingest_materials_use_case
from ..use_cases.product_ingest import ingest_products_use_case

router = APIRouter(prefix="/uploads", tags=["uploads"])
logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024  # 1MB


def _validate_upload(file: UploadFile) -> str:
    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename is required")

    if "." not in file.filename:
        raise HTTPException(status_code=400, detail="File extension is required")

    ext = file.filename.rsplit(".", 1)[-1].lower()
    if ext == "xls":
        raise HTTPException(
            status_code=400,
            detail="Legacy .xls workbooks are not supported; save the file as .xlsx",
        )
    if ext not in settings.allowed_extensions_list:
        raise HTTPException(
            status_code=400,
            detail=f"File type not allowed. Allowed: {settings.ALLOWED_EXTENSIONS}",
        )
    return ext


def _read_limited(file: UploadFile) -> bytes:
    """Read the spooled upload into memory with a hard size limit."""
    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = file.file.read(_CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > settings.MAX_UPLOAD_SIZE:
            raise HTTPException(
                status_code=400,
                detail=f"File too large. Max size: {settings.MAX_UPLOAD_SIZE} bytes",
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/materials", response_model=MaterialUploadResult)
def upload_materials(
    file: UploadFile = File(...),
    overwrite: bool = Form(default=False),
    current_user: User = Depends(PermissionChecker("canUploadData")),
    db: Session = Depends(get_db),
):
    """Import a material usage workbook; only allow-listed material codes are kept."""
    _validate_upload(file)
    content = _read_limited(file)
    try:
        rows = parse_material_workbook(content, file.filename)
    except SpreadsheetError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return ingest_materials_use_case(
        db=db,
        rows=rows,
        file_name=file.filename,
        current_user=current_user,
        overwrite=overwrite,
    )


@router.post("/products", response_model=ProductUploadResult)
def upload_products(
    file: UploadFile = File(...),
    recovery_type: RecoveryType = Form(...),
    overwrite: bool = Form(default=False),
    current_user: User = Depends(PermissionChecker("canUploadData")),
    db: Session = Depends(get_db),
):
    """Import a removal (철거) or defect-exchange (불량교환) workbook."""
    _validate_upload(file)
    content = _read_limited(file)
    try:
        rows = parse_product_workbook(content, file.filename, recovery_type=recovery_type)
    except SpreadsheetError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return ingest_products_use_case(
        db=db,
        rows=rows,
        recovery_type=recovery_type,
        file_name=file.filename,
        current_user=current_user,
        overwrite=overwrite,
    )


@router.get("/history", response_model=list[UploadHistoryResponse])
def material_upload_history(
    limit: int = Query(default=200, ge=1),
    current_user: User = Depends(PermissionChecker("canViewHistory")),
    db: Session = Depends(get_db),
):
    rows = db.query(UploadHistory).order_by(UploadHistory.uploaded_at.desc()).limit(
        min(limit, settings.HISTORY_RETENTION_LIMIT)
    ).all()
    return [UploadHistoryResponse.model_validate(r) for r in rows]


@router.get("/product-history", response_model=list[ProductUploadHistoryResponse])
def product_upload_history(
    recovery_type: Optional[RecoveryType] = Query(default=None),
    limit: int = Query(default=200, ge=1),
    current_user: User = Depends(PermissionChecker("canViewHistory")),
    db: Session = Depends(get_db),
):
    query = db.query(ProductUploadHistory)
    if recovery_type:
        query = query.filter(ProductUploadHistory.recovery_type == recovery_type)
    rows = query.order_by(ProductUploadHistory.uploaded_at.desc()).limit(
        min(limit, settings.HISTORY_RETENTION_LIMIT)
    ).all()
    return [ProductUploadHistoryResponse.model_validate(r) for r in rows]
