"""Spreadsheet import/export (openpyxl) with localized column mappings."""

from __future__ import annotations

import io
import logging
import zipfile
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

logger = logging.getLogger(__name__)

EXCEL_EPOCH = date(1899, 12, 30)

MATERIAL_COLUMNS: dict[str, str] = {
    "요청번호": "request_number",
    "이관처": "branch_code",
    "접수시간": "receipt_time",
    "모델명": "model_name",
    "제조번호": "serial_number",
    "접수구분": "receipt_type",
    "문의내용": "inquiry_content",
    "처리시간": "process_time",
    "처리구분": "process_type",
    "수리구분": "repair_type",
    "기사코드": "technician_code",
    "처리내용": "process_content",
    "고장대분류": "fault_category_large",
    "고장중분류": "fault_category_medium",
    "고장소분류": "fault_category_small",
    "고장원인": "fault_cause",
    "부품비": "parts_cost",
    "수리비": "repair_cost",
    "출장료": "visit_cost",
    "유무상처리": "warranty_type",
    "자재코드": "material_code",
    "품명 및 규격": "material_name",
    "품명및규격": "material_name",
    "유무상처리2": "warranty_type2",
    "출고수량": "output_quantity",
}
MATERIAL_INT_FIELDS = {"parts_cost", "repair_cost", "visit_cost", "output_quantity"}
MATERIAL_DATETIME_FIELDS = {"receipt_time", "process_time"}
MATERIAL_REQUIRED_FIELDS = ("request_number", "branch_code", "material_code")

_PRODUCT_COMMON_COLUMNS: dict[str, str] = {
    "요청일자": "request_date",
    "요청지점": "request_branch",
    "고객번호": "customer_number",
    "고객명": "customer_name",
    "주문자명": "orderer_name",
    "모델명": "model_name",
    "신규접수": "new_request",
    "계약해지요청일": "termination_request_date",
    "작업의뢰(대)": "work_request_large",
    "작업의뢰(중)": "work_request_medium",
    "작업의뢰(소)": "work_request_small",
    "특이사항": "special_notes",
    "요청사항": "request_notes",
    "반려사유": "rejection_reason",
    "매출차감": "sales_deduction",
    "잡이익차감": "misc_profit_deduction",
    "품의진행상태": "approval_status",
    "사원번호": "employee_number",
    "상태": "status_raw",
}
PRODUCT_COLUMNS: dict[str, dict[str, str]] = {
    "철거": {
        **_PRODUCT_COMMON_COLUMNS,
        "위약금": "penalty_fee",
        "등록비": "registration_fee",
        "기타할인": "other_discount",
        "소모품비": "consumable_fee",
        "철거비": "removal_fee",
        "고장코드": "fault_code",
    },
    "불량교환": dict(_PRODUCT_COMMON_COLUMNS),
}
PRODUCT_DATE_FIELDS = {"request_date", "termination_request_date"}
PRODUCT_REQUIRED_FIELDS = ("customer_number", "model_name")

MATERIAL_EXPORT_COLUMNS: list[tuple[str, str]] = [
    ("요청번호", "request_number"),
    ("이관처", "branch_code"),
    ("접수시간", "receipt_time"),
    ("모델명", "model_name"),
    ("제조번호", "serial_number"),
    ("접수구분", "receipt_type"),
    ("문의내용", "inquiry_content"),
    ("처리시간", "process_time"),
    ("처리구분", "process_type"),
    ("수리구분", "repair_type"),
    ("기사코드", "technician_code"),
    ("처리내용", "process_content"),
    ("고장대분류", "fault_category_large"),
    ("고장중분류", "fault_category_medium"),
    ("고장소분류", "fault_category_small"),
    ("고장원인", "fault_cause"),
    ("부품비", "parts_cost"),
    ("수리비", "repair_cost"),
    ("출장료", "visit_cost"),
    ("유무상처리", "warranty_type"),
    ("자재코드", "material_code"),
    ("품명 및 규격", "material_name"),
    ("유무상처리2", "warranty_type2"),
    ("출고수량", "output_quantity"),
    ("상태", "status"),
    ("회수완료시간", "collected_at"),
    ("회수완료처리자", "collected_by"),
    ("발송시간", "shipped_at"),
    ("발송처리자", "shipped_by"),
    ("운송회사", "carrier"),
    ("송장번호", "tracking_number"),
    ("입고완료시간", "received_at"),
    ("입고완료처리자", "received_by"),
    ("발송불가사유", "cancel_reason"),
    ("발송불가상세", "cancel_reason_detail"),
]

PRODUCT_EXPORT_COLUMNS: list[tuple[str, str]] = [
    ("회수구분", "recovery_type"),
    ("요청일자", "request_date"),
    ("요청지점", "request_branch"),
    ("고객번호", "customer_number"),
    ("고객명", "customer_name"),
    ("모델명", "model_name"),
    ("계약일", "contract_date"),
    ("계약해지요청일", "termination_request_date"),
    ("1년이내", "is_within_one_year"),
    ("자동회수모델", "is_auto_recovery_model"),
    ("선택구분", "selection_type"),
    ("설치법인", "branch_code"),
    ("사원번호", "employee_number"),
    ("품의진행상태", "approval_status"),
    ("상태", "recovery_status"),
    ("회수완료시간", "collected_at"),
    ("회수완료처리자", "collected_by"),
    ("발송시간", "shipped_at"),
    ("발송처리자", "shipped_by"),
    ("운송회사", "carrier"),
    ("송장번호", "tracking_number"),
    ("입고완료시간", "received_at"),
    ("입고완료처리자", "received_by"),
    ("발송불가사유", "cancel_reason"),
    ("발송불가상세", "cancel_reason_detail"),
]


class SpreadsheetError(ValueError):
    """Raised when an uploaded workbook cannot be read."""


def excel_serial_to_datetime(serial: float) -> datetime:
    whole = int(serial)
    seconds = int(round((serial - whole) * 86400))
    return datetime.combine(EXCEL_EPOCH + timedelta(days=whole), datetime.min.time()) + timedelta(seconds=seconds)


def coerce_int(value: Any) -> int:
    """Leading-integer parse with 0 default ("1,200" -> 1200, "12.5" -> 12)."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip().replace(",", "")
    digits = ""
    for idx, ch in enumerate(text):
        if ch.isdigit() or (idx == 0 and ch in "+-"):
            digits += ch
        else:
            break
    try:
        return int(digits)
    except ValueError:
        return 0


def coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def coerce_datetime_text(value: Any) -> str | None:
    """Serial numbers and datetime cells become 'YYYY-MM-DD HH:MM:SS'; text is kept."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return excel_serial_to_datetime(float(value)).strftime("%Y-%m-%d %H:%M:%S")
    return coerce_text(value)


def coerce_date(value: Any) -> date | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return excel_serial_to_datetime(float(value)).date()
    text = str(value).strip()
    if not text:
        return None
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%Y.%m.%d", "%Y%m%d"):
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    if text.replace(".", "", 1).isdigit():
        try:
            return excel_serial_to_datetime(float(text)).date()
        except OverflowError:
            return None
    return None


def date_bucket(value: str | None, *, today: date) -> str:
    """Calendar day for per-date counts: the leading date of a timestamp text, else today."""
    parsed = coerce_date(value[:10]) if value else None
    return (parsed or today).isoformat()


def _read_rows(content: bytes, file_name: str) -> Iterable[tuple[Any, ...]]:
    ext = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    if ext == "xls":
        raise SpreadsheetError("Legacy .xls workbooks are not supported; save the file as .xlsx")
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise SpreadsheetError("Could not read the workbook") from exc
    try:
        return list(wb.worksheets[0].iter_rows(values_only=True))
    finally:
        wb.close()


def _map_rows(rows: list[tuple[Any, ...]], mapping: dict[str, str]) -> list[dict[str, Any]]:
    if not rows:
        return []
    header = [str(cell).strip() if cell is not None else "" for cell in rows[0]]
    keys = [mapping.get(name) for name in header]
    mapped: list[dict[str, Any]] = []
    for row in rows[1:]:
        if row is None or all(cell is None for cell in row):
            continue
        record: dict[str, Any] = {}
        for key, value in zip(keys, row):
            if key and key not in record:
                record[key] = value
            elif key and record.get(key) is None:
                record[key] = value
        mapped.append(record)
    return mapped


def parse_material_workbook(content: bytes, file_name: str) -> list[dict[str, Any]]:
    """Parse a material usage sheet into normalized row dicts."""
    parsed: list[dict[str, Any]] = []
    for raw in _map_rows(_read_rows(content, file_name), MATERIAL_COLUMNS):
        row: dict[str, Any] = {}
        for key, value in raw.items():
            if key in MATERIAL_INT_FIELDS:
                row[key] = coerce_int(value)
            elif key in MATERIAL_DATETIME_FIELDS:
                row[key] = coerce_datetime_text(value)
            else:
                row[key] = coerce_text(value)
        if all(row.get(field) for field in MATERIAL_REQUIRED_FIELDS):
            parsed.append(row)
    logger.info("spreadsheet.materials file=%s parsed=%s", file_name, len(parsed))
    return parsed


def parse_product_workbook(content: bytes, file_name: str, *, recovery_type: str) -> list[dict[str, Any]]:
    """Parse a removal or defect-exchange sheet into normalized row dicts."""
    mapping = PRODUCT_COLUMNS.get(recovery_type)
    if mapping is None:
        raise SpreadsheetError(f"Unknown recovery type: {recovery_type}")
    parsed: list[dict[str, Any]] = []
    for raw in _map_rows(_read_rows(content, file_name), mapping):
        row: dict[str, Any] = {}
        for key, value in raw.items():
            if key in PRODUCT_DATE_FIELDS:
                row[key] = coerce_date(value)
            else:
                row[key] = coerce_text(value)
        if all(row.get(field) for field in PRODUCT_REQUIRED_FIELDS):
            parsed.append(row)
    logger.info(
        "spreadsheet.products file=%s type=%s parsed=%s",
        file_name,
        recovery_type,
        len(parsed),
    )
    return parsed


def _export_value(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.replace(tzinfo=None)
        return value
    if isinstance(value, bool):
        return "Y" if value else "N"
    return value


def build_export_workbook(
    records: Iterable[Any],
    columns: list[tuple[str, str]],
    *,
    sheet_title: str,
) -> bytes:
    """Write records to a single-sheet workbook with localized headers."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title
    ws.append([header for header, _ in columns])
    for record in records:
        ws.append([_export_value(getattr(record, attr, None)) for _, attr in columns])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
