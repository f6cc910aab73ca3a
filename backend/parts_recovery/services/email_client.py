"""Outbound email via the Resend HTTP API and branch report text."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

import requests

from ..config import settings

logger = logging.getLogger(__name__)

NO_REPLY_FOOTER = (
    "\n\n---\n※ 본 메일은 자동발송되는 메일입니다. 회신하실 수 없습니다.\n"
    "   문의사항은 담당자에게 직접 연락해 주세요."
)
WAITING_ITEM_LIMIT = 50
COLLECTED_ITEM_LIMIT = 30


@dataclass
class SendOutcome:
    success: bool
    provider_id: str | None = None
    error: str | None = None


@dataclass
class BranchReport:
    branch_code: str
    waiting: int = 0
    collected: int = 0
    shipped: int = 0
    received: int = 0
    total: int = 0
    waiting_items: list = field(default_factory=list)
    collected_items: list = field(default_factory=list)


def format_date_range(date_from, date_to) -> str:
    if date_from and date_to:
        return f"{date_from} ~ {date_to}"
    return "전체 기간"


def build_report_subject(branch_code: str, date_range: str) -> str:
    return f"[자동발송] [{branch_code}] 부품회수 현황 ({date_range})"


def build_report_text(report: BranchReport, *, date_range: str, sent_at: datetime) -> str:
    lines = [
        f"[{report.branch_code}] 부품 회수 현황 리포트",
        f"조회 기간: {date_range}",
        f"발송 일시: {sent_at.strftime('%Y-%m-%d %H:%M:%S')}",
        "",
        "=== 현황 요약 ===",
        f"회수대기: {report.waiting}건",
        f"회수완료: {report.collected}건",
        f"발송완료: {report.shipped}건",
        f"입고완료: {report.received}건",
        f"총계: {report.total}건",
        "",
    ]

    if report.waiting_items:
        lines.append(f"=== 회수대기 상세 ({len(report.waiting_items)}건) ===")
        for idx, item in enumerate(report.waiting_items[:WAITING_ITEM_LIMIT], start=1):
            lines.append(
                f"{idx}. 요청번호: {item.request_number} | 자재: {item.material_code}"
                f" | 기사: {item.technician_code or '-'}"
            )
        if len(report.waiting_items) > WAITING_ITEM_LIMIT:
            lines.append(f"... 외 {len(report.waiting_items) - WAITING_ITEM_LIMIT}건")
        lines.append("")

    if report.collected_items:
        lines.append(f"=== 발송대기 상세 ({len(report.collected_items)}건) ===")
        lines.append("※ 회수 완료된 부품을 품질팀으로 발송해주세요.")
        for idx, item in enumerate(report.collected_items[:COLLECTED_ITEM_LIMIT], start=1):
            lines.append(f"{idx}. 요청번호: {item.request_number} | 자재: {item.material_code}")
        if len(report.collected_items) > COLLECTED_ITEM_LIMIT:
            lines.append(f"... 외 {len(report.collected_items) - COLLECTED_ITEM_LIMIT}건")

    return "\n".join(lines) + NO_REPLY_FOOTER


def send_email(
    *,
    api_key: str,
    sender: str,
    recipients: Sequence[str],
    subject: str,
    text: str,
) -> SendOutcome:
    """Send one plain-text message through Resend."""
    try:
        response = requests.post(
            settings.RESEND_API_URL,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key}",
            },
            json={
                "from": sender,
                "to": list(recipients),
                "subject": subject,
                "text": text,
            },
            timeout=settings.EMAIL_TIMEOUT_SECONDS,
        )
    except requests.RequestException:
        logger.exception("email.send transport error recipients=%s", len(recipients))
        return SendOutcome(success=False, error="발송 오류")

    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    if response.ok:
        return SendOutcome(success=True, provider_id=data.get("id"))

    logger.warning(
        "email.send rejected status=%s body=%s",
        response.status_code,
        response.text[:200],
    )
    return SendOutcome(success=False, error=data.get("message") or "발송 실패")
