from __future__ import annotations

from datetime import date, datetime
from types import SimpleNamespace

import pytest
import requests

from parts_recovery.config import settings
from parts_recovery.domain_errors import DomainError
from parts_recovery.models import MaterialUsage, SystemSetting, User
from parts_recovery.schemas import BranchEmailRequest, SendEmailRequest
from parts_recovery.services import email_client
from parts_recovery.use_cases import reports


class _QueryStub:
    def __init__(self, rows):
        self._rows = rows

    def filter(self, *_args, **_kwargs):
        return self

    def order_by(self, *_args):
        return self

    def all(self):
        return list(self._rows)


class _SessionStub:
    def __init__(self, *, settings_rows=(), users=(), materials=()):
        self._rows = {
            SystemSetting: list(settings_rows),
            User: list(users),
            MaterialUsage: list(materials),
        }

    def query(self, model):
        if model in self._rows:
            return _QueryStub(self._rows[model])
        raise AssertionError(f"Unexpected model queried: {model}")


class _Response:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        return self._payload


def _item(n, status="회수대기"):
    return SimpleNamespace(request_number=f"R{n}", material_code="M-1", technician_code=None, status=status)


def test_report_text_limits_detail_lines_and_appends_footer() -> None:
    report = email_client.BranchReport(
        branch_code="SE01",
        waiting=55,
        total=55,
        waiting_items=[_item(n) for n in range(55)],
    )

    text = email_client.build_report_text(report, date_range="전체 기간", sent_at=datetime(2025, 1, 2, 9, 30))

    assert "회수대기: 55건" in text
    assert "50. 요청번호: R49" in text
    assert "51. 요청번호" not in text
    assert "... 외 5건" in text
    assert "발송대기 상세" not in text
    assert text.endswith(email_client.NO_REPLY_FOOTER)


def test_subject_and_date_range() -> None:
    assert email_client.format_date_range(None, date(2025, 1, 31)) == "전체 기간"
    date_range = email_client.format_date_range(date(2025, 1, 1), date(2025, 1, 31))
    assert email_client.build_report_subject("SE01", date_range) == "[자동발송] [SE01] 부품회수 현황 (2025-01-01 ~ 2025-01-31)"


def test_send_email_posts_to_provider(monkeypatch) -> None:
    calls = []

    def _post(url, **kwargs):
        calls.append((url, kwargs))
        return _Response(200, {"id": "msg-1"})

    monkeypatch.setattr(email_client.requests, "post", _post)

    outcome = email_client.send_email(api_key="k", sender="A <a@x>", recipients=["b@x"], subject="s", text="t")

    assert outcome.success is True
    assert outcome.provider_id == "msg-1"
    url, kwargs = calls[0]
    assert url == settings.RESEND_API_URL
    assert kwargs["headers"]["Authorization"] == "Bearer k"
    assert kwargs["json"]["to"] == ["b@x"]


def test_send_email_reports_provider_and_transport_errors(monkeypatch) -> None:
    monkeypatch.setattr(email_client.requests, "post", lambda url, **kw: _Response(422, {"message": "invalid from"}))
    rejected = email_client.send_email(api_key="k", sender="s", recipients=["b@x"], subject="s", text="t")
    assert (rejected.success, rejected.error) == (False, "invalid from")

    def _raise(url, **kw):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(email_client.requests, "post", _raise)
    broken = email_client.send_email(api_key="k", sender="s", recipients=["b@x"], subject="s", text="t")
    assert (broken.success, broken.error) == (False, "발송 오류")


def test_send_email_tolerates_non_object_json(monkeypatch) -> None:
    monkeypatch.setattr(email_client.requests, "post", lambda url, **kw: _Response(500, ["unexpected"]))
    rejected = email_client.send_email(api_key="k", sender="s", recipients=["b@x"], subject="s", text="t")
    assert (rejected.success, rejected.error) == (False, "발송 실패")

    monkeypatch.setattr(email_client.requests, "post", lambda url, **kw: _Response(200, "queued"))
    sent = email_client.send_email(api_key="k", sender="s", recipients=["b@x"], subject="s", text="t")
    assert (sent.success, sent.provider_id) == (True, None)


def test_send_email_use_case_simulates_without_api_key(monkeypatch) -> None:
    monkeypatch.setattr(settings, "RESEND_API_KEY", None)

    def _must_not_send(**_kwargs):
        raise AssertionError("provider must not be called")

    monkeypatch.setattr(reports.email_client, "send_email", _must_not_send)

    result = reports.send_email_use_case(
        db=_SessionStub(),
        data=SendEmailRequest(recipients=[" a@x ", ""], subject="hello", body="body"),
    )

    assert result.simulated is True
    assert result.recipients == ["a@x"]


def test_stored_api_key_is_used_when_environment_has_none(monkeypatch) -> None:
    monkeypatch.setattr(settings, "RESEND_API_KEY", None)
    sent = {}

    def _send(**kwargs):
        sent.update(kwargs)
        return email_client.SendOutcome(success=True, provider_id="p-1")

    monkeypatch.setattr(reports.email_client, "send_email", _send)
    db = _SessionStub(
        settings_rows=[
            SimpleNamespace(setting_key="resend_api_key", setting_value="stored-key"),
            SimpleNamespace(setting_key="email_from", setting_value="cs@example.com"),
        ]
    )

    result = reports.send_email_use_case(db=db, data=SendEmailRequest(recipients=["a@x"], subject="s", body="b"))

    assert result.provider_id == "p-1"
    assert sent["api_key"] == "stored-key"
    assert sent["sender"] == f"{settings.EMAIL_FROM_NAME} <cs@example.com>"


def test_branch_emails_require_api_key(monkeypatch) -> None:
    monkeypatch.setattr(settings, "RESEND_API_KEY", None)

    with pytest.raises(DomainError) as exc:
        reports.send_branch_emails_use_case(
            db=_SessionStub(),
            data=BranchEmailRequest(branch_codes=["SE01"]),
            current_user=SimpleNamespace(user_code="CS", user_type="admin_cs", branch_code=None),
        )

    assert exc.value.code == "EMAIL_API_KEY_MISSING"


def test_branch_emails_report_missing_addresses(monkeypatch) -> None:
    monkeypatch.setattr(settings, "RESEND_API_KEY", "env-key")
    sent = []

    def _send(**kwargs):
        sent.append(kwargs)
        return email_client.SendOutcome(success=True, provider_id="p")

    monkeypatch.setattr(reports.email_client, "send_email", _send)
    db = _SessionStub(
        users=[SimpleNamespace(branch_code="SE01", email="se01@example.com")],
        materials=[_item(1), _item(2, status="회수완료")],
    )

    result = reports.send_branch_emails_use_case(
        db=db,
        data=BranchEmailRequest(branch_codes=["SE01", "BS02", "SE01"]),
        current_user=SimpleNamespace(user_code="CS", user_type="admin_cs", branch_code=None),
        now=lambda: datetime(2025, 1, 2, 9, 0),
    )

    assert (result.sent, result.failed) == (1, 1)
    assert result.results[1].error == "이메일 미등록"
    assert sent[0]["recipients"] == ["se01@example.com"]
    assert sent[0]["api_key"] == "env-key"
    assert "회수대기: 1건" in sent[0]["text"]
