"""Aggregation helpers for dashboards, calendars and reports."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Any, Iterable

from .recovery_status import count_by_bucket, local_day


def status_counts(records: Iterable[Any], *, status_attr: str = "status") -> dict[str, int]:
    return count_by_bucket([getattr(record, status_attr) for record in records])


def branch_summary(
    materials: Iterable[Any],
    products: Iterable[Any],
) -> list[dict[str, Any]]:
    """Per-branch material and product counts, ordered by branch code."""
    material_statuses: dict[str, list[str]] = defaultdict(list)
    product_statuses: dict[str, list[str]] = defaultdict(list)
    for record in materials:
        material_statuses[record.branch_code or ""].append(record.status)
    for record in products:
        product_statuses[record.branch_code or ""].append(record.recovery_status)

    branches = sorted(set(material_statuses) | set(product_statuses))
    return [
        {
            "branch_code": branch,
            "materials": count_by_bucket(material_statuses.get(branch, [])),
            "products": count_by_bucket(product_statuses.get(branch, [])),
        }
        for branch in branches
    ]


def material_summary(materials: Iterable[Any]) -> list[dict[str, Any]]:
    """Per material code counts, most frequent first."""
    statuses: dict[str, list[str]] = defaultdict(list)
    names: dict[str, str | None] = {}
    for record in materials:
        statuses[record.material_code].append(record.status)
        if not names.get(record.material_code):
            names[record.material_code] = record.material_name
    rows = [
        {
            "material_code": code,
            "material_name": names.get(code),
            "counts": count_by_bucket(code_statuses),
        }
        for code, code_statuses in statuses.items()
    ]
    rows.sort(key=lambda row: (-row["counts"]["total"], row["material_code"]))
    return rows


def daily_series(
    records: Iterable[Any],
    *,
    status_attr: str = "status",
    date_attr: str = "created_at",
) -> list[dict[str, Any]]:
    """Per-day counts for the calendar; days without records are omitted."""
    by_day: dict[date, list[str]] = defaultdict(list)
    for record in records:
        day = local_day(getattr(record, date_attr, None))
        if day is not None:
            by_day[day].append(getattr(record, status_attr))
    return [
        {"day": day, "counts": count_by_bucket(by_day[day])}
        for day in sorted(by_day)
    ]
