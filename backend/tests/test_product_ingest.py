from __future__ import annotations

from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest

from parts_recovery.domain_errors import DomainError
from parts_recovery.models import AutoRecoveryModel, ProductRecovery, ProductUploadHistory
from parts_recovery.use_cases.product_ingest import ingest_products_use_case

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class _QueryStub:
    def __init__(self, rows):
        self._rows = rows

    def filter(self, *_args, **_kwargs):
        return self

    def all(self):
        return list(self._rows)


class _SessionStub:
    def __init__(self, *, prefixes=("CBT-",), existing=()):
        self._models = [SimpleNamespace(model_prefix=p, is_active=True) for p in prefixes]
        self._existing = list(existing)
        self.added = []
        self.commits = 0

    def query(self, model):
        if model is AutoRecoveryModel:
            return _QueryStub(self._models)
        if model is ProductRecovery:
            return _QueryStub(self._existing)
        raise AssertionError(f"Unexpected model queried: {model}")

    def add(self, obj):
        self.added.append(obj)

    def commit(self):
        self.commits += 1

    def rollback(self):
        return None


def _row(customer_number, model_name, termination, approval="승인", employee="SE01-77"):
    return {
        "customer_number": customer_number,
        "model_name": model_name,
        "termination_request_date": termination,
        "approval_status": approval,
        "employee_number": employee,
    }


def _ingest(db, rows, **kwargs):
    return ingest_products_use_case(
        db=db,
        rows=rows,
        recovery_type="철거",
        file_name="removal.xlsx",
        current_user=SimpleNamespace(user_code="고객만족팀CS"),
        now=lambda: NOW,
        **kwargs,
    )


def test_auto_selected_rows_start_waiting_others_unselected() -> None:
    db = _SessionStub()
    rows = [
        _row("A-1-240315-9", "CBT-1000", date(2025, 1, 10)),
        _row("A-2-240315-9", "CRP-1000", date(2025, 1, 10)),
    ]

    result = _ingest(db, rows)

    assert (result.total, result.approved, result.auto_selected, result.saved) == (2, 2, 1, 2)
    products = [obj for obj in db.added if isinstance(obj, ProductRecovery)]
    auto, manual = products
    assert auto.recovery_status == "회수대기"
    assert auto.selection_type == "자동"
    assert auto.selected_by == "SYSTEM"
    assert auto.selected_at == NOW
    assert auto.branch_code == "SE01"
    assert auto.contract_date == date(2024, 3, 15)
    assert manual.recovery_status == "미선택"
    assert manual.selection_type is None
    assert manual.selected_at is None


def test_unapproved_and_undated_rows_are_skipped() -> None:
    db = _SessionStub()
    rows = [
        _row("A-1-240315-9", "CBT-1000", date(2025, 1, 10), approval="반려"),
        _row("A-1-240315-9", "CBT-1000", None),
        _row("no-contract-date", "CBT-1000", date(2025, 1, 10)),
    ]

    result = _ingest(db, rows)

    assert result.approved == 2
    assert result.skipped == 3
    assert result.saved == 0
    history = [obj for obj in db.added if isinstance(obj, ProductUploadHistory)]
    assert history[0].skipped_rows == 3
    assert history[0].recovery_type == "철거"


def test_duplicate_key_is_not_inserted_twice() -> None:
    existing = SimpleNamespace(
        customer_number="A-1-240315-9",
        model_name="CBT-1000",
        termination_request_date=date(2025, 1, 10),
        recovery_status="발송",
        customer_name="old",
    )
    db = _SessionStub(existing=[existing])

    result = _ingest(db, [_row("A-1-240315-9", "CBT-1000", date(2025, 1, 10))])

    assert result.duplicate == 1
    assert result.saved == 0
    assert existing.customer_name == "old"


def test_overwrite_keeps_recovery_status() -> None:
    existing = SimpleNamespace(
        customer_number="A-1-240315-9",
        model_name="CBT-1000",
        termination_request_date=date(2025, 1, 10),
        recovery_status="발송",
        customer_name="old",
    )
    db = _SessionStub(existing=[existing])
    row = _row("A-1-240315-9", "CBT-1000", date(2025, 1, 10))
    row["customer_name"] = "new"

    result = _ingest(db, [row], overwrite=True)

    assert result.overwritten == 1
    assert existing.customer_name == "new"
    assert existing.recovery_status == "발송"


def test_default_prefixes_apply_when_none_configured() -> None:
    db = _SessionStub(prefixes=())

    result = _ingest(db, [_row("A-1-240315-9", "CWS-200", date(2025, 1, 10))])

    assert result.auto_selected == 1


def test_unknown_recovery_type_is_rejected() -> None:
    with pytest.raises(DomainError) as exc:
        ingest_products_use_case(
            db=_SessionStub(),
            rows=[],
            recovery_type="교환",
            file_name="x.xlsx",
            current_user=SimpleNamespace(user_code="CS"),
        )
    assert exc.value.code == "PRODUCT_RECOVERY_TYPE_INVALID"
