from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from parts_recovery.config import settings
from parts_recovery.domain_errors import DomainError
from parts_recovery.models import LoginHistory, User
from parts_recovery.schemas import UserUpdate
from parts_recovery.use_cases import accounts

NOW = datetime(2025, 1, 2, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _plain_hashing(monkeypatch):
    monkeypatch.setattr(accounts, "get_password_hash", lambda password: f"hashed:{password}")
    monkeypatch.setattr(accounts, "verify_password", lambda password, hashed: hashed == f"hashed:{password}")


class _QueryStub:
    def __init__(self, result):
        self._result = result

    def filter(self, *_args, **_kwargs):
        return self

    def first(self):
        return self._result


class _SessionStub:
    def __init__(self, user=None, *, failing_commits=()):
        self._user = user
        self._failing_commits = set(failing_commits)
        self.added = []
        self.commits = 0
        self.rollbacks = 0

    def query(self, model):
        if model is User:
            return _QueryStub(self._user)
        raise AssertionError(f"Unexpected model queried: {model}")

    def add(self, obj):
        self.added.append(obj)

    def commit(self):
        self.commits += 1
        if self.commits in self._failing_commits:
            raise SQLAlchemyError("boom")

    def rollback(self):
        self.rollbacks += 1


def _login(db, code, password):
    return accounts.login_use_case(db=db, user_code=code, password=password, ip_address="10.0.0.1", now=lambda: NOW)


def test_admin_code_is_provisioned_with_default_password() -> None:
    db = _SessionStub()

    outcome = _login(db, settings.ADMIN_CS_CODE, settings.ADMIN_DEFAULT_PASSWORD)

    assert outcome.provisioned is True
    assert outcome.user.user_type == "admin_cs"
    assert outcome.user.is_default_password is True
    assert outcome.user.branch_code is None
    assert outcome.user.last_login_at == NOW
    assert any(isinstance(obj, LoginHistory) for obj in db.added)


def test_branch_code_is_provisioned_when_password_equals_code() -> None:
    outcome = _login(_SessionStub(), "SE01", "SE01")

    assert outcome.user.user_type == "branch"
    assert outcome.user.branch_code == "SE01"


@pytest.mark.parametrize(
    ("code", "password"),
    [("SE01", "wrong"), ("someone", "someone"), (settings.ADMIN_QUALITY_CODE, "nope"), ("", "x")],
)
def test_unknown_codes_are_not_provisioned(code, password) -> None:
    with pytest.raises(DomainError) as exc:
        _login(_SessionStub(), code, password)

    assert exc.value.code == "INVALID_CREDENTIALS"
    assert exc.value.http_status == 401


def test_existing_user_wrong_password_is_rejected() -> None:
    user = SimpleNamespace(user_code="SE01", user_type="branch", password_hash="hashed:secret99", is_active=True)

    with pytest.raises(DomainError) as exc:
        _login(_SessionStub(user), "SE01", "SE01")

    assert exc.value.code == "INVALID_CREDENTIALS"


def test_inactive_user_is_refused() -> None:
    user = SimpleNamespace(user_code="SE01", user_type="branch", password_hash="hashed:SE01", is_active=False)

    with pytest.raises(DomainError) as exc:
        _login(_SessionStub(user), "SE01", "SE01")

    assert exc.value.code == "USER_INACTIVE"
    assert exc.value.http_status == 403


def test_login_history_failure_does_not_fail_login() -> None:
    user = SimpleNamespace(user_code="SE01", user_type="branch", password_hash="hashed:SE01", is_active=True)
    db = _SessionStub(user, failing_commits={2})

    outcome = _login(db, "SE01", "SE01")

    assert outcome.user is user
    assert db.rollbacks == 1


def test_change_password_clears_default_flag() -> None:
    user = SimpleNamespace(user_code="SE01", password_hash="hashed:SE01", is_default_password=True)
    db = _SessionStub()

    accounts.change_password_use_case(db=db, current_user=user, current_password="SE01", new_password="Better#2025")

    assert user.password_hash == "hashed:Better#2025"
    assert user.is_default_password is False
    assert db.commits == 1


def test_change_password_checks_current_and_difference() -> None:
    user = SimpleNamespace(user_code="SE01", password_hash="hashed:SE01", is_default_password=True)

    with pytest.raises(DomainError) as exc:
        accounts.change_password_use_case(db=_SessionStub(), current_user=user, current_password="x", new_password="y")
    assert exc.value.code == "CURRENT_PASSWORD_INVALID"

    with pytest.raises(DomainError) as exc:
        accounts.change_password_use_case(db=_SessionStub(), current_user=user, current_password="SE01", new_password="SE01")
    assert exc.value.code == "PASSWORD_UNCHANGED"


def test_reset_password_restores_code_for_branch_accounts() -> None:
    target = SimpleNamespace(user_code="SE01", user_type="branch", password_hash="hashed:custom", is_default_password=False)
    admin = SimpleNamespace(user_code=settings.ADMIN_CS_CODE, user_type="admin_cs")

    accounts.reset_password_use_case(db=_SessionStub(target), user_code="SE01", current_user=admin)

    assert target.password_hash == "hashed:SE01"
    assert target.is_default_password is True


def test_reset_password_requires_cs_admin() -> None:
    quality = SimpleNamespace(user_code=settings.ADMIN_QUALITY_CODE, user_type="admin_quality")

    with pytest.raises(DomainError) as exc:
        accounts.reset_password_use_case(db=_SessionStub(), user_code="SE01", current_user=quality)

    assert exc.value.code == "PASSWORD_RESET_FORBIDDEN"


def test_user_cannot_deactivate_self() -> None:
    me = SimpleNamespace(id=uuid4(), user_code=settings.ADMIN_CS_CODE, is_active=True, email=None)

    with pytest.raises(DomainError) as exc:
        accounts.update_user_use_case(db=_SessionStub(me), user_id=me.id, data=UserUpdate(is_active=False), current_user=me)

    assert exc.value.code == "USER_SELF_DEACTIVATION"


def test_update_user_sets_email() -> None:
    branch = SimpleNamespace(id=uuid4(), user_code="SE01", is_active=True, email=None)
    admin = SimpleNamespace(id=uuid4(), user_code=settings.ADMIN_CS_CODE)

    accounts.update_user_use_case(
        db=_SessionStub(branch),
        user_id=branch.id,
        data=UserUpdate(email=" se01@example.com "),
        current_user=admin,
    )

    assert branch.email == "se01@example.com"


def test_password_with_surrounding_spaces_still_logs_in_after_change() -> None:
    user = SimpleNamespace(
        user_code="SE01",
        user_type="branch",
        password_hash="hashed:SE01",
        is_default_password=True,
        is_active=True,
    )
    db = _SessionStub(user)

    accounts.change_password_use_case(db=db, current_user=user, current_password="SE01", new_password="goodpass1 ")
    outcome = _login(db, "SE01", "goodpass1 ")

    assert outcome.user is user
    assert user.password_hash == "hashed:goodpass1"
