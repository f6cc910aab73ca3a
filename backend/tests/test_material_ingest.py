from __future__ import annotations

from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import SQLAlchemyError

from parts_recovery.domain_errors import DomainError
from parts_recovery.models import MaterialUsage, RecoveryMaterial, UploadHistory
from parts_recovery.use_cases.material_ingest import ingest_materials_use_case


class _QueryStub:
    def __init__(self, rows):
        self._rows = rows

    def filter(self, *_args, **_kwargs):
        return self

    def all(self):
        return list(self._rows)


class _SessionStub:
    def __init__(self, *, allowed, existing=(), fail_commit=False):
        self._allowed = [SimpleNamespace(material_code=code, is_active=True) for code in allowed]
        self._existing = list(existing)
        self.fail_commit = fail_commit
        self.added = []
        self.commits = 0
        self.rollbacks = 0

    def query(self, model):
        if model is RecoveryMaterial:
            return _QueryStub(self._allowed)
        if model is MaterialUsage:
            return _QueryStub(self._existing)
        raise AssertionError(f"Unexpected model queried: {model}")

    def add(self, obj):
        self.added.append(obj)

    def flush(self):
        return None

    def commit(self):
        if self.fail_commit:
            raise SQLAlchemyError("boom")
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def _row(request_number, branch, material, **extra):
    row = {
        "request_number": request_number,
        "branch_code": branch,
        "material_code": material,
        "process_time": "2025-01-05 10:00:00",
        "parts_cost": 1000,
    }
    row.update(extra)
    return row


def _user():
    return SimpleNamespace(user_code="고객만족팀CS", user_type="admin_cs", branch_code=None)


def test_ingest_keeps_only_allow_listed_codes_and_counts_per_bucket() -> None:
    db = _SessionStub(allowed=["M-1"])
    rows = [
        _row("R1", "SE01", "M-1"),
        _row("R2", "SE01", "M-2"),
        _row("R3", "BS02", "M-1", process_time=None),
    ]

    result = ingest_materials_use_case(
        db=db,
        rows=rows,
        file_name="usage.xlsx",
        current_user=_user(),
        today=lambda: date(2025, 2, 1),
    )

    assert (result.total, result.saved, result.discarded, result.duplicate) == (3, 2, 1, 0)
    assert result.by_date["2025-01-05"].saved == 1
    assert result.by_date["2025-01-05"].discarded == 1
    assert result.by_date["2025-02-01"].saved == 1
    assert result.by_branch["SE01"].discarded == 1
    assert result.by_branch["BS02"].saved == 1

    saved = [obj for obj in db.added if isinstance(obj, MaterialUsage)]
    assert [m.request_number for m in saved] == ["R1", "R3"]
    assert all(m.status == "회수대기" and m.is_recovery_target for m in saved)

    history = [obj for obj in db.added if isinstance(obj, UploadHistory)]
    assert len(history) == 1
    assert history[0].saved_rows == 2
    assert history[0].uploaded_by == "고객만족팀CS"
    assert db.commits == 1


def test_ingest_counts_existing_and_in_file_duplicates() -> None:
    existing = SimpleNamespace(request_number="R1", branch_code="SE01", material_code="M-1", status="발송")
    db = _SessionStub(allowed=["M-1"], existing=[existing])
    rows = [_row("R1", "SE01", "M-1"), _row("R2", "SE01", "M-1"), _row("R2", "SE01", "M-1")]

    result = ingest_materials_use_case(db=db, rows=rows, file_name="usage.xlsx", current_user=_user())

    assert result.saved == 1
    assert result.duplicate == 2
    assert result.overwritten == 0
    assert existing.status == "발송"


def test_overwrite_updates_raw_columns_but_not_workflow_status() -> None:
    existing = SimpleNamespace(
        request_number="R1",
        branch_code="SE01",
        material_code="M-1",
        status="발송",
        parts_cost=1,
        model_name="OLD",
    )
    db = _SessionStub(allowed=["M-1"], existing=[existing])

    result = ingest_materials_use_case(
        db=db,
        rows=[_row("R1", "SE01", "M-1", model_name="NEW", parts_cost=None)],
        file_name="usage.xlsx",
        current_user=_user(),
        overwrite=True,
    )

    assert result.duplicate == 1
    assert result.overwritten == 1
    assert existing.model_name == "NEW"
    assert existing.parts_cost == 0
    assert existing.status == "발송"


def test_ingest_commit_failure_maps_to_domain_error() -> None:
    db = _SessionStub(allowed=["M-1"], fail_commit=True)

    with pytest.raises(DomainError) as exc:
        ingest_materials_use_case(db=db, rows=[_row("R1", "SE01", "M-1")], file_name="f.xlsx", current_user=_user())

    assert exc.value.code == "MATERIAL_UPLOAD_FAILED"
    assert exc.value.http_status == 500
    assert db.rollbacks == 1
