from __future__ import annotations

from datetime import date, datetime, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from parts_recovery.services.packing_slip import build_slip_pages, resolve_destination_address
from parts_recovery.services import recovery_status
from parts_recovery.services.reporting import branch_summary, daily_series, material_summary, status_counts
from parts_recovery.use_cases import data_management
from parts_recovery.use_cases.data_management import created_at_bounds


def _material(code, status, branch="SE01", name=None, day=1):
    return SimpleNamespace(
        material_code=code,
        material_name=name,
        status=status,
        branch_code=branch,
        created_at=datetime(2025, 1, day, 9, tzinfo=timezone.utc),
    )


def test_status_counts_for_products_use_recovery_status() -> None:
    products = [SimpleNamespace(recovery_status="미선택"), SimpleNamespace(recovery_status="발송")]

    counts = status_counts(products, status_attr="recovery_status")

    assert counts["unselected"] == 1
    assert counts["shipped"] == 1
    assert counts["total"] == 2


def test_branch_summary_merges_material_and_product_branches() -> None:
    materials = [_material("M-1", "회수대기"), _material("M-1", "회수완료", branch="BS02")]
    products = [SimpleNamespace(branch_code="JJ03", recovery_status="미선택")]

    rows = branch_summary(materials, products)

    assert [row["branch_code"] for row in rows] == ["BS02", "JJ03", "SE01"]
    assert rows[2]["materials"]["waiting"] == 1
    assert rows[1]["products"]["unselected"] == 1
    assert rows[1]["materials"]["total"] == 0


def test_material_summary_orders_by_volume_then_code() -> None:
    materials = [
        _material("M-2", "회수대기"),
        _material("M-1", "회수대기", name="패킹"),
        _material("M-3", "발송"),
        _material("M-3", "입고완료"),
    ]

    rows = material_summary(materials)

    assert [row["material_code"] for row in rows] == ["M-3", "M-1", "M-2"]
    assert rows[1]["material_name"] == "패킹"


def test_daily_series_groups_by_created_day() -> None:
    materials = [_material("M-1", "회수대기", day=3), _material("M-1", "발송", day=1), _material("M-1", "발송", day=3)]

    series = daily_series(materials)

    assert [entry["day"] for entry in series] == [date(2025, 1, 1), date(2025, 1, 3)]
    assert series[1]["counts"]["total"] == 2


def test_packing_slip_routes_by_model_prefix() -> None:
    routes = [("CBT-", "밥솥창고"), ("CWS-", "정수기창고")]

    assert resolve_destination_address("cbt-100", routes=routes, default_address="본사") == "밥솥창고"
    assert resolve_destination_address("CWS-1", routes=routes, default_address="본사") == "정수기창고"
    assert resolve_destination_address("CRP-1", routes=routes, default_address="본사") == "본사"
    assert resolve_destination_address(None, routes=routes, default_address="본사") == "본사"


def test_slip_pages_use_branch_as_sender() -> None:
    product = SimpleNamespace(branch_code="SE01", model_name="CBT-100")

    pages = build_slip_pages([product])

    assert pages[0]["sender"] == "SE01"
    assert pages[0]["product"] is product
    assert pages[0]["destination"]


def test_daily_series_counts_days_in_the_local_zone(monkeypatch) -> None:
    monkeypatch.setattr(recovery_status, "LOCAL_TZ", ZoneInfo("Asia/Seoul"))
    # 23:30 UTC on Jan 1 is already Jan 2 in Seoul.
    late = SimpleNamespace(status="회수대기", created_at=datetime(2025, 1, 1, 23, 30, tzinfo=timezone.utc))

    series = daily_series([late])

    assert [entry["day"] for entry in series] == [date(2025, 1, 2)]


def test_created_at_bounds_cover_whole_local_days(monkeypatch) -> None:
    seoul = ZoneInfo("Asia/Seoul")
    monkeypatch.setattr(data_management, "LOCAL_TZ", seoul)
    start, end = created_at_bounds(date(2025, 1, 2), date(2025, 1, 2))
    early = datetime(2025, 1, 1, 23, 30, tzinfo=timezone.utc)

    assert start <= early <= end
    assert start.tzinfo is seoul
