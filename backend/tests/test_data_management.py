from __future__ import annotations

from datetime import date, datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from parts_recovery.config import settings
from parts_recovery.domain_errors import DomainError
from parts_recovery.models import DataBackup, MaterialUsage
from parts_recovery.schemas import DataDeleteRequest
from parts_recovery.use_cases.data_management import delete_range_use_case, serialize_row


class _QueryStub:
    def __init__(self, session, rows):
        self._session = session
        self._rows = rows

    def filter(self, *_args, **_kwargs):
        return self

    def all(self):
        return list(self._rows)

    def delete(self, synchronize_session=None):
        self._session.deletes += 1
        return len(self._rows)


class _SessionStub:
    def __init__(self, rows, *, fail_first_commit=False):
        self._rows = rows
        self._fail_first_commit = fail_first_commit
        self.added = []
        self.commits = 0
        self.rollbacks = 0
        self.deletes = 0

    def query(self, model):
        if model is MaterialUsage:
            return _QueryStub(self, self._rows)
        raise AssertionError(f"Unexpected model queried: {model}")

    def add(self, obj):
        self.added.append(obj)

    def commit(self):
        if self._fail_first_commit and self.commits == 0:
            raise SQLAlchemyError("disk full")
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def _admin():
    return SimpleNamespace(user_code="고객만족팀CS", user_type="admin_cs", branch_code=None)


def _material():
    return SimpleNamespace(
        id=uuid4(),
        request_number="R1",
        branch_code="SE01",
        material_code="M-1",
        status="회수대기",
        created_at=datetime(2025, 1, 5, 10, tzinfo=timezone.utc),
    )


def _request(**overrides):
    payload = dict(
        table="material_usage",
        date_from=date(2025, 1, 1),
        date_to=date(2025, 1, 31),
        confirm_text=settings.DATA_DELETE_CONFIRM_PHRASE,
    )
    payload.update(overrides)
    return DataDeleteRequest(**payload)


def test_backup_is_committed_before_rows_are_deleted() -> None:
    rows = [_material(), _material()]
    db = _SessionStub(rows)

    result = delete_range_use_case(db=db, data=_request(), current_user=_admin())

    backups = [obj for obj in db.added if isinstance(obj, DataBackup)]
    assert len(backups) == 1
    assert backups[0].deleted_count == 2
    assert backups[0].original_data[0]["request_number"] == "R1"
    assert result.deleted_count == 2
    assert result.backup_id == backups[0].id
    assert db.commits == 2
    assert db.deletes == 1


def test_backup_failure_deletes_nothing() -> None:
    db = _SessionStub([_material()], fail_first_commit=True)

    with pytest.raises(DomainError) as exc:
        delete_range_use_case(db=db, data=_request(), current_user=_admin())

    assert exc.value.code == "DATA_BACKUP_FAILED"
    assert db.deletes == 0
    assert db.rollbacks == 1


def test_confirmation_phrase_must_match() -> None:
    with pytest.raises(DomainError) as exc:
        delete_range_use_case(db=_SessionStub([]), data=_request(confirm_text="delete"), current_user=_admin())

    assert exc.value.code == "DATA_DELETE_CONFIRMATION_MISMATCH"


def test_inverted_range_is_rejected() -> None:
    with pytest.raises(DomainError) as exc:
        delete_range_use_case(
            db=_SessionStub([]),
            data=_request(date_from=date(2025, 2, 1), date_to=date(2025, 1, 1)),
            current_user=_admin(),
        )

    assert exc.value.code == "DATA_DELETE_RANGE_INVALID"


def test_empty_range_is_not_found() -> None:
    with pytest.raises(DomainError) as exc:
        delete_range_use_case(db=_SessionStub([]), data=_request(), current_user=_admin())

    assert exc.value.http_status == 404


def test_only_cs_admin_may_delete() -> None:
    quality = SimpleNamespace(user_code="CUCKOO품질팀", user_type="admin_quality", branch_code=None)

    with pytest.raises(DomainError) as exc:
        delete_range_use_case(db=_SessionStub([_material()]), data=_request(), current_user=quality)

    assert exc.value.code == "DATA_DELETE_FORBIDDEN"


def test_serialize_row_is_json_safe() -> None:
    record = _material()

    data = serialize_row(MaterialUsage, record)

    assert data["id"] == str(record.id)
    assert data["created_at"] == "2025-01-05T10:00:00+00:00"
    assert data["carrier"] is None
