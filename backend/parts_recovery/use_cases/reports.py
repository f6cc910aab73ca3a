"""Reporting queries and outbound report email use-cases."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable

from sqlalchemy.orm import Session

from ..config import settings
from ..domain_errors import DomainError
from ..models import MaterialUsage, ProductRecovery, User
from ..schemas import (
    BranchEmailOutcome,
    BranchEmailRequest,
    BranchEmailResult,
    SendEmailRequest,
    SendEmailResult,
)
from ..security import apply_branch_scope
from ..services import email_client
from ..services.recovery_status import COLLECTED, WAITING, count_by_bucket, now_utc
from .data_management import created_at_bounds
from .recovery_settings import read_system_settings

logger = logging.getLogger(__name__)


def scoped_records(
    db: Session,
    model: Any,
    *,
    current_user: User,
    branch_code: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list:
    """Records visible to the user, optionally narrowed by branch and created_at day range."""
    query = apply_branch_scope(db.query(model), model, current_user, branch_code)
    if date_from or date_to:
        start, end = created_at_bounds(date_from or date.min, date_to or date.max)
        if date_from:
            query = query.filter(model.created_at >= start)
        if date_to:
            query = query.filter(model.created_at <= end)
    return query.order_by(model.created_at.desc()).all()


def resolve_email_config(db: Session) -> tuple[str | None, str]:
    """(api key, sender). Environment configuration wins over stored settings."""
    stored = read_system_settings(db)
    api_key = settings.RESEND_API_KEY or stored.get("resend_api_key") or None
    from_name = stored.get("email_from_name") or settings.EMAIL_FROM_NAME
    from_address = stored.get("email_from") or settings.EMAIL_FROM
    return api_key, f"{from_name} <{from_address}>"


def _branch_emails(db: Session, branch_codes: list[str]) -> dict[str, str]:
    users = db.query(User).filter(
        User.user_type == "branch",
        User.branch_code.in_(branch_codes),
        User.is_active == True,  # noqa: E712
    ).all()
    emails: dict[str, str] = {}
    for user in users:
        if user.email and user.branch_code not in emails:
            emails[user.branch_code] = user.email
    return emails


def build_branch_report(branch_code: str, materials: list) -> email_client.BranchReport:
    counts = count_by_bucket([m.status for m in materials])
    return email_client.BranchReport(
        branch_code=branch_code,
        waiting=counts["waiting"],
        collected=counts["collected"],
        shipped=counts["shipped"],
        received=counts["received"],
        total=counts["total"],
        waiting_items=[m for m in materials if m.status == WAITING],
        collected_items=[m for m in materials if m.status == COLLECTED],
    )


def send_branch_emails_use_case(
    *,
    db: Session,
    data: BranchEmailRequest,
    current_user: User,
    now: Callable[[], datetime] = now_utc,
) -> BranchEmailResult:
    """One report per branch; branches without an email are reported as failures."""
    api_key, sender = resolve_email_config(db)
    if not api_key:
        raise DomainError(
            code="EMAIL_API_KEY_MISSING",
            http_status=400,
            message="Email provider API key is not configured",
        )

    branch_codes = list(dict.fromkeys(code.strip() for code in data.branch_codes if code.strip()))
    emails = _branch_emails(db, branch_codes)
    date_range = email_client.format_date_range(data.date_from, data.date_to)
    sent_at = now()

    outcomes: list[BranchEmailOutcome] = []
    for branch_code in branch_codes:
        email = emails.get(branch_code)
        if not email:
            outcomes.append(BranchEmailOutcome(branch_code=branch_code, success=False, error="이메일 미등록"))
            continue

        materials = scoped_records(
            db,
            MaterialUsage,
            current_user=current_user,
            branch_code=branch_code,
            date_from=data.date_from,
            date_to=data.date_to,
        )
        report = build_branch_report(branch_code, materials)
        outcome = email_client.send_email(
            api_key=api_key,
            sender=sender,
            recipients=[email],
            subject=email_client.build_report_subject(branch_code, date_range),
            text=email_client.build_report_text(report, date_range=date_range, sent_at=sent_at),
        )
        outcomes.append(
            BranchEmailOutcome(
                branch_code=branch_code,
                success=outcome.success,
                email=email,
                error=outcome.error,
            )
        )

    sent = sum(1 for o in outcomes if o.success)
    logger.info(
        "email.branch_reports sent=%s failed=%s by=%s",
        sent,
        len(outcomes) - sent,
        current_user.user_code,
    )
    return BranchEmailResult(results=outcomes, sent=sent, failed=len(outcomes) - sent)


def send_email_use_case(*, db: Session, data: SendEmailRequest) -> SendEmailResult:
    """Send to explicit recipients; without an API key delivery is only simulated."""
    recipients = [r.strip() for r in data.recipients if r.strip()]
    if not recipients:
        raise DomainError(code="EMAIL_RECIPIENTS_REQUIRED", http_status=400, message="Select at least one recipient")
    if not data.body.strip():
        raise DomainError(code="EMAIL_BODY_REQUIRED", http_status=400, message="Subject and body are required")

    api_key, sender = resolve_email_config(db)
    if not api_key:
        logger.warning(
            "email.send simulated recipients=%s subject=%s (no provider API key)",
            len(recipients),
            data.subject,
        )
        return SendEmailResult(success=True, simulated=True, recipients=recipients)

    outcome = email_client.send_email(
        api_key=api_key,
        sender=sender,
        recipients=recipients,
        subject=data.subject,
        text=data.body,
    )
    if not outcome.success:
        raise DomainError(
            code="EMAIL_SEND_FAILED",
            http_status=502,
            message=outcome.error or "Failed to send email",
        )
    return SendEmailResult(success=True, recipients=recipients, provider_id=outcome.provider_id)
