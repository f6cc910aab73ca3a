"""Client error reporting."""
from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain_errors import DomainError
from ..models import ErrorLog
from ..schemas import ErrorLogCreate

logger = logging.getLogger(__name__)

MESSAGE_LIMIT = 500
STACK_LIMIT = 2000
URL_LIMIT = 500
DIGEST_LIMIT = 100


def _clip(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    return value[:limit]


def record_client_error_use_case(*, db: Session, data: ErrorLogCreate) -> ErrorLog:
    """Store a browser-side error; oversized fields are truncated, never rejected."""
    entry = ErrorLog(
        id=uuid4(),
        error_message=_clip(data.message, MESSAGE_LIMIT),
        error_stack=_clip(data.stack, STACK_LIMIT),
        error_digest=_clip(data.digest, DIGEST_LIMIT),
        page_url=_clip(data.url, URL_LIMIT),
        user_code=_clip(data.user_code, 100),
    )
    db.add(entry)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("error_log.record failed")
        raise DomainError(code="ERROR_LOG_SAVE_FAILED", http_status=500, message="Failed to store error log")

    logger.warning("client.error user=%s url=%s message=%s", entry.user_code, entry.page_url, entry.error_message)
    return entry
