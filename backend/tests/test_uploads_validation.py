import inspect
import io
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from parts_recovery.config import settings
from parts_recovery.routers import uploads
from parts_recovery.routers.uploads import _validate_upload


def test_validate_upload_accepts_xlsx_case_insensitively() -> None:
    assert _validate_upload(SimpleNamespace(filename="사용자재.XLSX")) == "xlsx"


@pytest.mark.parametrize("filename", ["", "noext", "legacy.xls", "data.csv"])
def test_validate_upload_rejects_unsupported_names(filename) -> None:
    with pytest.raises(HTTPException) as exc:
        _validate_upload(SimpleNamespace(filename=filename))
    assert exc.value.status_code == 400


def test_read_limited_returns_whole_spooled_file(monkeypatch) -> None:
    monkeypatch.setattr(uploads, "_CHUNK_SIZE", 4)
    upload = SimpleNamespace(file=io.BytesIO(b"0123456789"))

    assert uploads._read_limited(upload) == b"0123456789"


def test_read_limited_enforces_max_upload_size(monkeypatch) -> None:
    monkeypatch.setattr(uploads, "_CHUNK_SIZE", 4)
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 6)
    upload = SimpleNamespace(file=io.BytesIO(b"0123456789"))

    with pytest.raises(HTTPException) as exc:
        uploads._read_limited(upload)
    assert exc.value.status_code == 400


def test_upload_handlers_run_in_the_threadpool() -> None:
    assert not inspect.iscoroutinefunction(uploads.upload_materials)
    assert not inspect.iscoroutinefunction(uploads.upload_products)
