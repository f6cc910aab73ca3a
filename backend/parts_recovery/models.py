"""SQLAlchemy models for the recovery pipeline."""
from sqlalchemy import (
    Boolean, Column, String, Integer, Date, DateTime, Text,
    CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.sql import func
import uuid
from .database import Base

RECOVERY_STATUSES = ("회수대기", "회수완료", "발송", "입고완료", "발송불가")
PRODUCT_RECOVERY_STATUSES = ("미선택",) + RECOVERY_STATUSES
CANCEL_REASONS = ("분실", "파손", "재사용", "기타")
USER_TYPES = ("admin_cs", "admin_quality", "branch")
PRODUCT_RECOVERY_TYPES = ("철거", "불량교환")


def _in(column_name: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column_name} IN ({quoted})"


class User(Base):
    """User account (CS admin, quality admin, or branch)."""
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_code = Column(String(100), unique=True, nullable=False, index=True)
    user_type = Column(String(20), nullable=False, index=True)
    branch_code = Column(String(20), nullable=True, index=True)
    password_hash = Column(String(255), nullable=False)
    # Forces a one-time password change after provisioning or admin reset.
    is_default_password = Column(Boolean, default=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    email = Column(String(255), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(_in("user_type", USER_TYPES), name="chk_user_type"),
    )


class MaterialUsage(Base):
    """One recovered part moving through the pipeline."""
    __tablename__ = "material_usage"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_number = Column(String(100), nullable=False, index=True)
    branch_code = Column(String(20), nullable=False, index=True)
    receipt_time = Column(String(50), nullable=True)
    model_name = Column(String(255), nullable=True)
    serial_number = Column(String(100), nullable=True)
    receipt_type = Column(String(100), nullable=True)
    inquiry_content = Column(Text, nullable=True)
    process_time = Column(String(50), nullable=True)
    process_type = Column(String(100), nullable=True)
    repair_type = Column(String(100), nullable=True)
    technician_code = Column(String(50), nullable=True)
    process_content = Column(Text, nullable=True)
    fault_category_large = Column(String(100), nullable=True)
    fault_category_medium = Column(String(100), nullable=True)
    fault_category_small = Column(String(100), nullable=True)
    fault_cause = Column(String(255), nullable=True)
    parts_cost = Column(Integer, nullable=False, default=0)
    repair_cost = Column(Integer, nullable=False, default=0)
    visit_cost = Column(Integer, nullable=False, default=0)
    warranty_type = Column(String(50), nullable=True)
    material_code = Column(String(100), nullable=False, index=True)
    material_name = Column(String(255), nullable=True)
    warranty_type2 = Column(String(50), nullable=True)
    output_quantity = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default="회수대기", index=True)
    collected_at = Column(DateTime(timezone=True), nullable=True)
    collected_by = Column(String(100), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    shipped_by = Column(String(100), nullable=True)
    carrier = Column(String(100), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=True)
    received_by = Column(String(100), nullable=True)
    cancel_reason = Column(String(20), nullable=True)
    cancel_reason_detail = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(100), nullable=True)

    is_recovery_target = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(_in("status", RECOVERY_STATUSES), name="chk_material_usage_status"),
        CheckConstraint(
            _in("cancel_reason", CANCEL_REASONS) + " OR cancel_reason IS NULL",
            name="chk_material_usage_cancel_reason",
        ),
        UniqueConstraint(
            "request_number", "branch_code", "material_code",
            name="uq_material_usage_natural_key",
        ),
        Index("idx_material_usage_branch_status", "branch_code", "status"),
    )


class ProductRecovery(Base):
    """One returned appliance (removal or defect exchange)."""
    __tablename__ = "product_recovery"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    request_date = Column(Date, nullable=True)
    request_branch = Column(String(100), nullable=True)
    customer_number = Column(String(50), nullable=False, index=True)
    customer_name = Column(String(100), nullable=True)
    orderer_name = Column(String(100), nullable=True)
    model_name = Column(String(255), nullable=False, index=True)

    # Removal-only fields
    penalty_fee = Column(String(50), nullable=True)
    registration_fee = Column(String(50), nullable=True)
    other_discount = Column(String(50), nullable=True)
    consumable_fee = Column(String(50), nullable=True)
    removal_fee = Column(String(50), nullable=True)
    fault_code = Column(String(50), nullable=True)

    new_request = Column(String(100), nullable=True)
    termination_request_date = Column(Date, nullable=False)
    work_request_large = Column(String(100), nullable=True)
    work_request_medium = Column(String(100), nullable=True)
    work_request_small = Column(String(100), nullable=True)
    special_notes = Column(Text, nullable=True)
    request_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    sales_deduction = Column(String(50), nullable=True)
    misc_profit_deduction = Column(String(50), nullable=True)
    approval_status = Column(String(20), nullable=False)
    employee_number = Column(String(50), nullable=True)
    status_raw = Column(String(50), nullable=True)

    recovery_type = Column(String(20), nullable=False, index=True)

    contract_date = Column(Date, nullable=False)
    is_within_one_year = Column(Boolean, nullable=False, default=False)
    is_auto_recovery_model = Column(Boolean, nullable=False, default=False)
    is_auto_selected = Column(Boolean, nullable=False, default=False)
    selection_type = Column(String(10), nullable=True)

    branch_code = Column(String(20), nullable=False, index=True)

    recovery_status = Column(String(20), nullable=False, default="미선택", index=True)
    selected_at = Column(DateTime(timezone=True), nullable=True)
    selected_by = Column(String(100), nullable=True)
    collected_at = Column(DateTime(timezone=True), nullable=True)
    collected_by = Column(String(100), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    shipped_by = Column(String(100), nullable=True)
    carrier = Column(String(100), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=True)
    received_by = Column(String(100), nullable=True)
    cancel_reason = Column(String(20), nullable=True)
    cancel_reason_detail = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            _in("recovery_status", PRODUCT_RECOVERY_STATUSES),
            name="chk_product_recovery_status",
        ),
        CheckConstraint(_in("recovery_type", PRODUCT_RECOVERY_TYPES), name="chk_product_recovery_type"),
        CheckConstraint(
            "selection_type IN ('자동', '수동') OR selection_type IS NULL",
            name="chk_product_selection_type",
        ),
        UniqueConstraint(
            "customer_number", "model_name", "termination_request_date",
            name="uq_product_recovery_natural_key",
        ),
        Index("idx_product_recovery_branch_status", "branch_code", "recovery_status"),
    )


class RecoveryMaterial(Base):
    """Allow-list entry: material codes retained at upload time."""
    __tablename__ = "recovery_materials"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    material_code = Column(String(100), unique=True, nullable=False, index=True)
    material_name = Column(String(255), nullable=True)
    serial_number_start = Column(String(100), nullable=True)
    serial_number_end = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    created_by = Column(String(100), nullable=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)
    deactivated_by = Column(String(100), nullable=True)


class RecoveryMaterialHistory(Base):
    """Allow-list registration/release history."""
    __tablename__ = "recovery_material_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    material_code = Column(String(100), nullable=False, index=True)
    material_name = Column(String(255), nullable=True)
    action = Column(String(10), nullable=False)
    action_by = Column(String(100), nullable=True)
    action_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        CheckConstraint("action IN ('등록', '해제')", name="chk_recovery_material_history_action"),
    )


class AutoRecoveryModel(Base):
    """Model-name prefix eligible for product auto-selection."""
    __tablename__ = "auto_recovery_models"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    model_prefix = Column(String(50), unique=True, nullable=False)
    description = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    created_by = Column(String(100), nullable=True)


class StatusChangeHistory(Base):
    """Material status transition audit row."""
    __tablename__ = "status_change_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    material_usage_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    request_number = Column(String(100), nullable=True)
    branch_code = Column(String(20), nullable=True, index=True)
    material_code = Column(String(100), nullable=True)
    previous_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)
    carrier = Column(String(100), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    cancel_reason = Column(String(20), nullable=True)
    cancel_reason_detail = Column(Text, nullable=True)
    is_forced = Column(Boolean, nullable=False, default=False)
    changed_by = Column(String(100), nullable=True)
    changed_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class ProductStatusHistory(Base):
    """Product status transition audit row."""
    __tablename__ = "product_status_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_recovery_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    customer_number = Column(String(50), nullable=True)
    branch_code = Column(String(20), nullable=True, index=True)
    model_name = Column(String(255), nullable=True)
    previous_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)
    carrier = Column(String(100), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    cancel_reason = Column(String(20), nullable=True)
    cancel_reason_detail = Column(Text, nullable=True)
    is_forced = Column(Boolean, nullable=False, default=False)
    changed_by = Column(String(100), nullable=True)
    changed_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class UploadHistory(Base):
    """Material spreadsheet upload summary."""
    __tablename__ = "upload_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    file_name = Column(String(255), nullable=False)
    total_rows = Column(Integer, nullable=False, default=0)
    saved_rows = Column(Integer, nullable=False, default=0)
    discarded_rows = Column(Integer, nullable=False, default=0)
    duplicate_rows = Column(Integer, nullable=False, default=0)
    recovery_target_rows = Column(Integer, nullable=False, default=0)
    by_date_detail = Column(JSONB, default={})
    by_branch_detail = Column(JSONB, default={})
    uploaded_by = Column(String(100), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class ProductUploadHistory(Base):
    """Product spreadsheet upload summary."""
    __tablename__ = "product_upload_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    file_name = Column(String(255), nullable=False)
    recovery_type = Column(String(20), nullable=False)
    total_rows = Column(Integer, nullable=False, default=0)
    approved_rows = Column(Integer, nullable=False, default=0)
    auto_selected_rows = Column(Integer, nullable=False, default=0)
    saved_rows = Column(Integer, nullable=False, default=0)
    duplicate_rows = Column(Integer, nullable=False, default=0)
    skipped_rows = Column(Integer, nullable=False, default=0)
    uploaded_by = Column(String(100), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class LoginHistory(Base):
    """Login audit row."""
    __tablename__ = "login_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_code = Column(String(100), nullable=False, index=True)
    user_type = Column(String(20), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    login_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class Carrier(Base):
    """Shipping company."""
    __tablename__ = "carriers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class SystemSetting(Base):
    """Key/value system settings (email sender, provider key)."""
    __tablename__ = "system_settings"

    setting_key = Column(String(100), primary_key=True)
    setting_value = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class DataBackup(Base):
    """Full copy of rows removed by a date-range delete."""
    __tablename__ = "data_backups"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    backup_type = Column(String(50), nullable=False, index=True)
    original_data = Column(JSONB, nullable=False)
    deleted_count = Column(Integer, nullable=False)
    date_from = Column(Date, nullable=False)
    date_to = Column(Date, nullable=False)
    deleted_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class ErrorLog(Base):
    """Client-reported error."""
    __tablename__ = "error_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    error_message = Column(String(500), nullable=True)
    error_stack = Column(String(2000), nullable=True)
    error_digest = Column(String(100), nullable=True)
    page_url = Column(String(500), nullable=True)
    user_code = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
