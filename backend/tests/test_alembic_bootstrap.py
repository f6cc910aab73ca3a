from pathlib import Path

import alembic_bootstrap


class _InspectorStub:
    def __init__(self, tables):
        self._tables = set(tables)

    def has_table(self, name):
        return name in self._tables


def _use_tables(monkeypatch, *tables):
    monkeypatch.setattr(alembic_bootstrap, "inspect", lambda bind: _InspectorStub(tables))


def test_seeded_database_without_version_table_is_stamped(monkeypatch) -> None:
    _use_tables(monkeypatch, "users", "material_usage")
    stamped = []
    monkeypatch.setattr(
        alembic_bootstrap.command,
        "stamp",
        lambda config, revision: stamped.append((config.get_main_option("script_location"), revision)),
    )

    assert alembic_bootstrap.stamp_baseline(object()) is True
    assert stamped == [(str(Path(alembic_bootstrap.ALEMBIC_INI).parent / "alembic"), "001")]


def test_versioned_or_empty_database_is_left_alone(monkeypatch) -> None:
    def _no_stamp(*_args):
        raise AssertionError("stamp must not run")

    monkeypatch.setattr(alembic_bootstrap.command, "stamp", _no_stamp)

    _use_tables(monkeypatch, "alembic_version", "users")
    assert alembic_bootstrap.stamp_baseline(object()) is False

    _use_tables(monkeypatch)
    assert alembic_bootstrap.stamp_baseline(object()) is False


def test_unversioned_tables_only_lists_model_tables(monkeypatch) -> None:
    _use_tables(monkeypatch, "users", "product_recovery", "legacy_notes")

    assert alembic_bootstrap.unversioned_tables(object()) == ["product_recovery", "users"]
