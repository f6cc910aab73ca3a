"""Product auto-selection rule helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

APPROVED = "승인"


@dataclass(frozen=True)
class AutoSelection:
    contract_date: date
    is_within_one_year: bool
    is_auto_recovery_model: bool
    is_auto_selected: bool


def extract_contract_date(customer_number: str | None) -> date | None:
    """Contract date from the third dash segment (YYMMDD, 20YY) of a customer number."""
    parts = (customer_number or "").strip().split("-")
    if len(parts) < 4:
        return None
    raw = parts[2]
    if len(raw) != 6 or not raw.isdigit():
        return None
    try:
        return date(2000 + int(raw[0:2]), int(raw[2:4]), int(raw[4:6]))
    except ValueError:
        return None


def extract_branch_code(employee_number: object) -> str:
    if employee_number is None:
        return ""
    text = str(employee_number).strip()
    return text[:4]


def add_one_year(value: date) -> date:
    try:
        return value.replace(year=value.year + 1)
    except ValueError:
        # Feb 29 rolls over to Mar 1.
        return value.replace(year=value.year + 1, month=2, day=28) + timedelta(days=1)


def is_within_one_year(contract_date: date, termination_date: date) -> bool:
    return termination_date < add_one_year(contract_date)


def is_auto_recovery_model(model_name: str | None, prefixes: Iterable[str]) -> bool:
    if not model_name:
        return False
    upper = model_name.upper()
    return any(prefix and upper.startswith(prefix.upper()) for prefix in prefixes)


def evaluate_auto_selection(
    *,
    customer_number: str,
    model_name: str,
    termination_date: date,
    approval_status: str | None,
    prefixes: Iterable[str],
) -> AutoSelection | None:
    """Return the selection flags, or None when no contract date can be derived."""
    contract_date = extract_contract_date(customer_number)
    if contract_date is None:
        return None
    within = is_within_one_year(contract_date, termination_date)
    auto_model = is_auto_recovery_model(model_name, prefixes)
    return AutoSelection(
        contract_date=contract_date,
        is_within_one_year=within,
        is_auto_recovery_model=auto_model,
        is_auto_selected=(approval_status or "").strip() == APPROVED and within and auto_model,
    )
