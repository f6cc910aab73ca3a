"""Recovery status workflow rules shared by materials and products."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from ..config import settings

LOCAL_TZ = ZoneInfo(settings.TIMEZONE)

WAITING = "회수대기"
COLLECTED = "회수완료"
SHIPPED = "발송"
RECEIVED = "입고완료"
CANCELLED = "발송불가"
UNSELECTED = "미선택"

MATERIAL_STATUSES: tuple[str, ...] = (WAITING, COLLECTED, SHIPPED, RECEIVED, CANCELLED)
PRODUCT_STATUSES: tuple[str, ...] = (UNSELECTED, WAITING, COLLECTED, SHIPPED, RECEIVED, CANCELLED)
CANCEL_REASONS: tuple[str, ...] = ("분실", "파손", "재사용", "기타")

MATERIAL = "material"
PRODUCT = "product"

# Targets reachable through the normal (non-forced) workflow, per user type.
_ROLE_TARGETS: dict[str, dict[str, set[str]]] = {
    MATERIAL: {
        "admin_cs": {WAITING, COLLECTED, SHIPPED, RECEIVED},
        "admin_quality": {RECEIVED},
        "branch": {COLLECTED, SHIPPED},
    },
    PRODUCT: {
        "admin_cs": {WAITING, COLLECTED, SHIPPED, RECEIVED, CANCELLED},
        "admin_quality": {RECEIVED},
        "branch": {COLLECTED, SHIPPED, CANCELLED},
    },
}

# status -> (timestamp field, actor field)
_ACTOR_FIELDS: dict[str, tuple[str, str]] = {
    COLLECTED: ("collected_at", "collected_by"),
    SHIPPED: ("shipped_at", "shipped_by"),
    RECEIVED: ("received_at", "received_by"),
    CANCELLED: ("cancelled_at", "cancelled_by"),
}

# Summary bucket names used by reporting.
STATUS_BUCKETS: dict[str, str] = {
    UNSELECTED: "unselected",
    WAITING: "waiting",
    COLLECTED: "collected",
    SHIPPED: "shipped",
    RECEIVED: "received",
    CANCELLED: "cancelled",
}


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def local_day(value: Any) -> date | None:
    """Calendar day of a timestamp in the configured zone; naive values are taken as local."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(LOCAL_TZ)
        return value.date()
    if isinstance(value, date):
        return value
    return None


def statuses_for(record_kind: str) -> tuple[str, ...]:
    if record_kind == PRODUCT:
        return PRODUCT_STATUSES
    return MATERIAL_STATUSES


def validate_target_status(*, record_kind: str, next_status: str | None) -> str:
    nxt = (next_status or "").strip()
    if nxt not in statuses_for(record_kind):
        raise ValueError(f"Invalid {record_kind} status: {nxt or '<empty>'}")
    return nxt


def ensure_role_may_set(*, record_kind: str, user_type: str, next_status: str) -> None:
    allowed = _ROLE_TARGETS.get(record_kind, {}).get(user_type, set())
    if next_status not in allowed:
        raise PermissionError(f"{user_type} may not set status {next_status}")


def ensure_transition_payload(
    *,
    next_status: str,
    carrier: str | None,
    tracking_number: str | None,
    cancel_reason: str | None,
) -> None:
    if next_status == SHIPPED and not ((carrier or "").strip() and (tracking_number or "").strip()):
        raise ValueError("Shipping requires carrier and tracking number")
    if next_status == CANCELLED:
        if not cancel_reason:
            raise ValueError("Cancellation requires a reason")
        if cancel_reason not in CANCEL_REASONS:
            raise ValueError(f"Unknown cancel reason: {cancel_reason}")


def apply_status_fields(
    record: object,
    *,
    next_status: str,
    status_attr: str,
    actor: str,
    carrier: str | None = None,
    tracking_number: str | None = None,
    cancel_reason: str | None = None,
    cancel_reason_detail: str | None = None,
    at: datetime | None = None,
) -> str | None:
    """Set the status and its actor/timestamp pair; return the previous status.

    Moving backward does not clear fields of later stages, they keep the last
    recorded actor and time.
    """
    ts = at or now_utc()
    previous = getattr(record, status_attr)
    setattr(record, status_attr, next_status)

    fields = _ACTOR_FIELDS.get(next_status)
    if fields is not None:
        ts_field, actor_field = fields
        setattr(record, ts_field, ts)
        setattr(record, actor_field, actor)

    if next_status == SHIPPED:
        record.carrier = carrier
        record.tracking_number = tracking_number
    elif next_status == CANCELLED:
        record.cancel_reason = cancel_reason
        record.cancel_reason_detail = cancel_reason_detail

    record.updated_at = ts
    return previous


def count_by_bucket(statuses: list[str]) -> dict[str, int]:
    counts = {bucket: 0 for bucket in STATUS_BUCKETS.values()}
    for status in statuses:
        bucket = STATUS_BUCKETS.get(status)
        if bucket is not None:
            counts[bucket] += 1
    counts["total"] = len(statuses)
    return counts
