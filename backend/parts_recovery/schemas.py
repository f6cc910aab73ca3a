"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict
from typing import Literal, Optional
from datetime import date, datetime
from uuid import UUID


CancelReason = Literal["분실", "파손", "재사용", "기타"]
RecoveryType = Literal["철거", "불량교환"]


# User schemas
class UserResponse(BaseModel):
    id: UUID
    user_code: str
    user_type: str
    branch_code: Optional[str] = None
    email: Optional[str] = None
    is_active: bool
    is_default_password: bool
    last_login_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    email: Optional[str] = Field(default=None, max_length=255)
    is_active: Optional[bool] = None


# Auth schemas
class LoginRequest(BaseModel):
    user_code: str = Field(min_length=1, max_length=100)
    password: str


class LoginResponse(BaseModel):
    user: UserResponse
    must_change_password: bool = False
    provisioned: bool = False


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ResetPasswordRequest(BaseModel):
    user_code: str = Field(min_length=1, max_length=100)


# Material schemas
class MaterialRow(BaseModel):
    """One parsed material spreadsheet row."""
    request_number: str
    branch_code: str
    material_code: str
    receipt_time: Optional[str] = None
    model_name: Optional[str] = None
    serial_number: Optional[str] = None
    receipt_type: Optional[str] = None
    inquiry_content: Optional[str] = None
    process_time: Optional[str] = None
    process_type: Optional[str] = None
    repair_type: Optional[str] = None
    technician_code: Optional[str] = None
    process_content: Optional[str] = None
    fault_category_large: Optional[str] = None
    fault_category_medium: Optional[str] = None
    fault_category_small: Optional[str] = None
    fault_cause: Optional[str] = None
    parts_cost: int = 0
    repair_cost: int = 0
    visit_cost: int = 0
    warranty_type: Optional[str] = None
    material_name: Optional[str] = None
    warranty_type2: Optional[str] = None
    output_quantity: int = 0


class MaterialUsageResponse(MaterialRow):
    id: UUID
    status: str
    is_recovery_target: bool
    collected_at: Optional[datetime] = None
    collected_by: Optional[str] = None
    shipped_at: Optional[datetime] = None
    shipped_by: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    received_at: Optional[datetime] = None
    received_by: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancel_reason_detail: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class MaterialUploadCounts(BaseModel):
    saved: int = 0
    discarded: int = 0


class MaterialUploadResult(BaseModel):
    total: int
    saved: int
    discarded: int
    duplicate: int
    overwritten: int = 0
    by_date: dict[str, MaterialUploadCounts] = Field(default_factory=dict)
    by_branch: dict[str, MaterialUploadCounts] = Field(default_factory=dict)


# Product schemas
class ProductRow(BaseModel):
    """One parsed product spreadsheet row."""
    customer_number: str
    model_name: str
    termination_request_date: Optional[date] = None
    approval_status: Optional[str] = None
    request_date: Optional[date] = None
    request_branch: Optional[str] = None
    customer_name: Optional[str] = None
    orderer_name: Optional[str] = None
    penalty_fee: Optional[str] = None
    registration_fee: Optional[str] = None
    other_discount: Optional[str] = None
    consumable_fee: Optional[str] = None
    removal_fee: Optional[str] = None
    fault_code: Optional[str] = None
    new_request: Optional[str] = None
    work_request_large: Optional[str] = None
    work_request_medium: Optional[str] = None
    work_request_small: Optional[str] = None
    special_notes: Optional[str] = None
    request_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    sales_deduction: Optional[str] = None
    misc_profit_deduction: Optional[str] = None
    employee_number: Optional[str] = None
    status_raw: Optional[str] = None


class ProductRecoveryResponse(ProductRow):
    id: UUID
    recovery_type: str
    contract_date: date
    is_within_one_year: bool
    is_auto_recovery_model: bool
    is_auto_selected: bool
    selection_type: Optional[str] = None
    branch_code: str
    recovery_status: str
    selected_at: Optional[datetime] = None
    selected_by: Optional[str] = None
    collected_at: Optional[datetime] = None
    collected_by: Optional[str] = None
    shipped_at: Optional[datetime] = None
    shipped_by: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    received_at: Optional[datetime] = None
    received_by: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancel_reason_detail: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ProductUploadResult(BaseModel):
    total: int
    approved: int
    auto_selected: int
    saved: int
    duplicate: int
    overwritten: int = 0
    skipped: int


class SelectForRecoveryRequest(BaseModel):
    ids: list[UUID] = Field(min_length=1)


# Status workflow schemas
class StatusUpdateRequest(BaseModel):
    status: str
    carrier: Optional[str] = Field(default=None, max_length=100)
    tracking_number: Optional[str] = Field(default=None, max_length=100)
    cancel_reason: Optional[CancelReason] = None
    cancel_reason_detail: Optional[str] = None


class BulkStatusUpdateRequest(StatusUpdateRequest):
    ids: list[UUID] = Field(min_length=1)


class BulkFailure(BaseModel):
    id: UUID
    code: str
    message: str


class BulkStatusUpdateResult(BaseModel):
    succeeded: list[UUID] = Field(default_factory=list)
    failed: list[BulkFailure] = Field(default_factory=list)


class StatusChangeHistoryResponse(BaseModel):
    id: UUID
    material_usage_id: UUID
    request_number: Optional[str] = None
    branch_code: Optional[str] = None
    material_code: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: str
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancel_reason_detail: Optional[str] = None
    is_forced: bool
    changed_by: Optional[str] = None
    changed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ProductStatusHistoryResponse(BaseModel):
    id: UUID
    product_recovery_id: UUID
    customer_number: Optional[str] = None
    branch_code: Optional[str] = None
    model_name: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: str
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancel_reason_detail: Optional[str] = None
    is_forced: bool
    changed_by: Optional[str] = None
    changed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class UploadHistoryResponse(BaseModel):
    id: UUID
    file_name: str
    total_rows: int
    saved_rows: int
    discarded_rows: int
    duplicate_rows: int
    recovery_target_rows: int
    by_date_detail: Optional[dict] = None
    by_branch_detail: Optional[dict] = None
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ProductUploadHistoryResponse(BaseModel):
    id: UUID
    file_name: str
    recovery_type: str
    total_rows: int
    approved_rows: int
    auto_selected_rows: int
    saved_rows: int
    duplicate_rows: int
    skipped_rows: int
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class LoginHistoryResponse(BaseModel):
    id: UUID
    user_code: str
    user_type: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    login_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Settings schemas
class RecoveryMaterialCreate(BaseModel):
    material_code: str = Field(min_length=1, max_length=100)
    material_name: Optional[str] = Field(default=None, max_length=255)
    serial_number_start: Optional[str] = Field(default=None, max_length=100)
    serial_number_end: Optional[str] = Field(default=None, max_length=100)


class RecoveryMaterialResponse(BaseModel):
    id: UUID
    material_code: str
    material_name: Optional[str] = None
    serial_number_start: Optional[str] = None
    serial_number_end: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    deactivated_at: Optional[datetime] = None
    deactivated_by: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class RecoveryMaterialHistoryResponse(BaseModel):
    id: UUID
    material_code: str
    material_name: Optional[str] = None
    action: str
    action_by: Optional[str] = None
    action_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class AutoRecoveryModelCreate(BaseModel):
    model_prefix: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=255)


class AutoRecoveryModelResponse(BaseModel):
    id: UUID
    model_prefix: str
    description: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class CarrierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class SystemSettingsUpdate(BaseModel):
    email_from: Optional[str] = Field(default=None, max_length=255)
    email_from_name: Optional[str] = Field(default=None, max_length=255)
    resend_api_key: Optional[str] = Field(default=None, max_length=255)


class SystemSettingsResponse(BaseModel):
    email_from: Optional[str] = None
    email_from_name: Optional[str] = None
    has_api_key: bool = False


# Reporting schemas
class StatusCounts(BaseModel):
    total: int = 0
    unselected: int = 0
    waiting: int = 0
    collected: int = 0
    shipped: int = 0
    received: int = 0
    cancelled: int = 0


class BranchSummary(BaseModel):
    branch_code: str
    materials: StatusCounts
    products: StatusCounts


class MaterialSummary(BaseModel):
    material_code: str
    material_name: Optional[str] = None
    counts: StatusCounts


class DailyCounts(BaseModel):
    day: date
    counts: StatusCounts


class BranchEmailRequest(BaseModel):
    branch_codes: list[str] = Field(min_length=1)
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class BranchEmailOutcome(BaseModel):
    branch_code: str
    success: bool
    email: Optional[str] = None
    error: Optional[str] = None


class BranchEmailResult(BaseModel):
    results: list[BranchEmailOutcome]
    sent: int
    failed: int


class SendEmailRequest(BaseModel):
    recipients: list[str] = Field(min_length=1)
    subject: str = Field(min_length=1, max_length=500)
    body: str


class SendEmailResult(BaseModel):
    success: bool
    simulated: bool = False
    recipients: list[str]
    provider_id: Optional[str] = None


class PackingSlipRequest(BaseModel):
    ids: list[UUID] = Field(min_length=1)


# Data management schemas
class DataDeleteRequest(BaseModel):
    table: Literal["material_usage", "product_recovery"]
    date_from: date
    date_to: date
    confirm_text: str


class DataDeleteResult(BaseModel):
    deleted_count: int
    backup_id: UUID


class DataBackupResponse(BaseModel):
    id: UUID
    backup_type: str
    deleted_count: int
    date_from: date
    date_to: date
    deleted_by: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Error log schemas
class ErrorLogCreate(BaseModel):
    message: Optional[str] = None
    stack: Optional[str] = None
    digest: Optional[str] = None
    url: Optional[str] = None
    user_code: Optional[str] = None


class ErrorLogResponse(BaseModel):
    id: UUID
    error_message: Optional[str] = None
    error_stack: Optional[str] = None
    error_digest: Optional[str] = None
    page_url: Optional[str] = None
    user_code: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Health
class HealthResponse(BaseModel):
    status: str
    app: str
    database: str
