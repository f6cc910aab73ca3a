from __future__ import annotations

from datetime import date

import pytest

from parts_recovery.services.auto_selection import (
    add_one_year,
    evaluate_auto_selection,
    extract_branch_code,
    extract_contract_date,
    is_auto_recovery_model,
    is_within_one_year,
)


@pytest.mark.parametrize(
    ("customer_number", "expected"),
    [
        ("A-1-240315-9", date(2024, 3, 15)),
        ("X-Y-000101-Z-extra", date(2000, 1, 1)),
        ("A-1-241315-9", None),  # month 13
        ("A-1-24031-9", None),
        ("A-1-2403AB-9", None),
        ("A-1-240315", None),  # fewer than four segments
        ("", None),
        (None, None),
    ],
)
def test_extract_contract_date(customer_number, expected) -> None:
    assert extract_contract_date(customer_number) == expected


def test_extract_branch_code_takes_first_four_characters() -> None:
    assert extract_branch_code("SE01-0042") == "SE01"
    assert extract_branch_code(1234567) == "1234"
    assert extract_branch_code(None) == ""


def test_add_one_year_rolls_leap_day_to_march_first() -> None:
    assert add_one_year(date(2024, 2, 29)) == date(2025, 3, 1)
    assert add_one_year(date(2023, 6, 30)) == date(2024, 6, 30)


def test_one_year_window_is_exclusive_at_the_anniversary() -> None:
    contract = date(2024, 3, 15)
    assert is_within_one_year(contract, date(2025, 3, 14)) is True
    assert is_within_one_year(contract, date(2025, 3, 15)) is False


def test_auto_recovery_model_prefix_is_case_insensitive() -> None:
    assert is_auto_recovery_model("cbt-1000", ["CBT-"]) is True
    assert is_auto_recovery_model("CRP-1000", ["CBT-", "CWS-"]) is False
    assert is_auto_recovery_model(None, ["CBT-"]) is False


def test_evaluate_auto_selection_requires_all_three_conditions() -> None:
    selected = evaluate_auto_selection(
        customer_number="A-1-240315-9",
        model_name="CBT-1000",
        termination_date=date(2025, 1, 10),
        approval_status="승인",
        prefixes=["CBT-"],
    )
    assert selected is not None
    assert selected.contract_date == date(2024, 3, 15)
    assert selected.is_auto_selected is True

    late = evaluate_auto_selection(
        customer_number="A-1-240315-9",
        model_name="CBT-1000",
        termination_date=date(2025, 4, 1),
        approval_status="승인",
        prefixes=["CBT-"],
    )
    assert late.is_within_one_year is False
    assert late.is_auto_selected is False

    other_model = evaluate_auto_selection(
        customer_number="A-1-240315-9",
        model_name="CRP-1000",
        termination_date=date(2025, 1, 10),
        approval_status="승인",
        prefixes=["CBT-"],
    )
    assert other_model.is_auto_recovery_model is False
    assert other_model.is_auto_selected is False


def test_evaluate_auto_selection_without_contract_date_returns_none() -> None:
    assert (
        evaluate_auto_selection(
            customer_number="broken",
            model_name="CBT-1000",
            termination_date=date(2025, 1, 10),
            approval_status="승인",
            prefixes=["CBT-"],
        )
        is None
    )
