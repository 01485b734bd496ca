"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from homestay_registry.domain.workflow import allowed_actions
from homestay_registry.services.payments import payment_outcome


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Applications


class RoomDetails(BaseModel):
    """Room counts and nightly rates per room type"""

    single_bed_rooms: int = Field(0, ge=0)
    single_bed_room_rate: Decimal = Field(Decimal("0"), ge=0)
    double_bed_rooms: int = Field(0, ge=0)
    double_bed_room_rate: Decimal = Field(Decimal("0"), ge=0)
    family_suites: int = Field(0, ge=0)
    family_suite_rate: Decimal = Field(Decimal("0"), ge=0)


class ApplicationFields(BaseModel):
    property_name: Optional[str] = Field(None, min_length=1, max_length=255)
    address: Optional[str] = None
    district: Optional[str] = None
    pincode: Optional[str] = Field(None, pattern=r"^[1-9][0-9]{5}$")
    category: Optional[str] = None
    total_rooms: Optional[int] = None
    validity_years: Optional[int] = None
    room_details: Optional[RoomDetails] = None
    gstin: Optional[str] = Field(None, max_length=15)
    owner_name: Optional[str] = None
    owner_mobile: Optional[str] = Field(None, pattern=r"^[6-9][0-9]{9}$")
    owner_email: Optional[str] = None
    owner_gender: Optional[Literal["male", "female", "other"]] = None
    is_special_region: Optional[bool] = None

    def values(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent; fee fields never exist here"""
        return self.model_dump(mode="json", exclude_unset=True)


class ApplicationCreate(ApplicationFields):
    """Request body for POST /v1/applications"""

    submit: bool = False

    def values(self) -> Dict[str, Any]:
        data = super().values()
        data.pop("submit", None)
        return data


class ApplicationUpdate(ApplicationFields):
    """Request body for PATCH /v1/applications/{id}"""


class DocumentCreate(BaseModel):
    document_type: str = Field(..., min_length=1, max_length=100)
    file_name: str = Field(..., min_length=1, max_length=255)
    file_path: str = Field(..., min_length=1)
    file_size: int = Field(0, ge=0)
    mime_type: str = "application/octet-stream"


class DocumentResponse(ORMModel):
    id: uuid.UUID
    document_type: str
    file_name: str
    file_path: str
    file_size: int
    mime_type: str
    verification_status: str
    verification_notes: Optional[str] = None
    verified_by: Optional[uuid.UUID] = None
    verified_at: Optional[datetime] = None
    uploaded_at: Optional[datetime] = None


class ApplicationResponse(ORMModel):
    """Application with its locked fee snapshot"""

    id: uuid.UUID
    application_number: Optional[str] = None
    owner_id: uuid.UUID
    status: str
    review_cycle: int
    version: int

    property_name: str
    address: str
    district: str
    pincode: str
    category: str
    total_rooms: int
    validity_years: int
    room_details: Optional[Dict[str, Any]] = None
    gstin: Optional[str] = None
    owner_name: str
    owner_mobile: str
    owner_email: Optional[str] = None
    owner_gender: str
    is_special_region: bool

    base_fee: Optional[Decimal] = None
    per_room_fee: Optional[Decimal] = None
    total_before_discounts: Optional[Decimal] = None
    validity_discount: Optional[Decimal] = None
    female_owner_discount: Optional[Decimal] = None
    special_region_discount: Optional[Decimal] = None
    total_discount: Optional[Decimal] = None
    net_fee: Optional[Decimal] = None
    gst_amount: Optional[Decimal] = None
    total_fee: Optional[Decimal] = None
    fee_locked_at: Optional[datetime] = None

    certificate_number: Optional[str] = None
    certificate_issued_at: Optional[datetime] = None
    certificate_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    last_transition_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None

    allowed_actions: List[str] = []


class ApplicationDetailResponse(ApplicationResponse):
    """Single application with documents and the ones scrutiny left unresolved"""

    documents: List[DocumentResponse] = []
    carried_over_documents: List[DocumentResponse] = []


class ApplicationListResponse(BaseModel):
    applications: List[ApplicationResponse]
    count: int


class TimelineEntryResponse(ORMModel):
    sequence: int
    review_cycle: int
    actor_id: Optional[uuid.UUID] = None
    actor_role: str
    action: str
    from_status: str
    to_status: str
    remarks: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class TimelineResponse(BaseModel):
    application_id: uuid.UUID
    entries: List[TimelineEntryResponse]


class ReviewRequest(BaseModel):
    """Request body for POST /v1/applications/{id}/review"""

    action: Literal["start_review", "approve", "accept", "reject", "send_back"]
    remarks: Optional[str] = None


class RemarksRequest(BaseModel):
    remarks: Optional[str] = None


# Dealing assistant


class DocumentVerification(BaseModel):
    document_id: uuid.UUID
    status: Literal["pending", "verified", "rejected", "needs_correction"]
    notes: Optional[str] = None


class SaveScrutinyRequest(BaseModel):
    verifications: List[DocumentVerification] = []
    remarks: Optional[str] = None


class InspectionOrderResponse(ORMModel):
    id: uuid.UUID
    application_id: uuid.UUID
    cycle: int
    scheduled_by: uuid.UUID
    assigned_to: Optional[uuid.UUID] = None
    inspection_date: Optional[date] = None
    special_instructions: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None


class InspectionReportRequest(BaseModel):
    """Request body for POST /v1/da/inspections/{order_id}/submit-report"""

    actual_inspection_date: date
    room_count_verified: bool = False
    actual_room_count: Optional[int] = Field(None, ge=0)
    category_meets_standards: bool = False
    mandatory_checklist: Dict[str, bool]
    mandatory_remarks: Optional[str] = None
    desirable_checklist: Dict[str, bool]
    desirable_remarks: Optional[str] = None
    overall_satisfactory: bool = False
    recommendation: str
    detailed_findings: str
    da_remarks: Optional[str] = None


class InspectionReportResponse(ORMModel):
    id: uuid.UUID
    order_id: uuid.UUID
    application_id: uuid.UUID
    submitted_by: uuid.UUID
    actual_inspection_date: date
    room_count_verified: bool
    actual_room_count: Optional[int] = None
    category_meets_standards: bool
    mandatory_checklist: Dict[str, bool]
    mandatory_remarks: Optional[str] = None
    desirable_checklist: Dict[str, bool]
    desirable_remarks: Optional[str] = None
    overall_satisfactory: bool
    recommendation: str
    detailed_findings: str
    da_remarks: Optional[str] = None
    mandatory_compliance: int
    desirable_compliance: int
    compliance_percentage: int
    is_active: bool
    created_at: Optional[datetime] = None


# DTDO


class AcceptRequest(BaseModel):
    remarks: Optional[str] = None
    inspection_date: Optional[date] = None
    assigned_to: Optional[uuid.UUID] = None
    special_instructions: Optional[str] = None


class ScheduleInspectionRequest(BaseModel):
    application_id: uuid.UUID
    inspection_date: Optional[date] = None
    assigned_to: Optional[uuid.UUID] = None
    special_instructions: Optional[str] = None
    remarks: Optional[str] = None


# Payments


class PaymentCreate(BaseModel):
    """Request body for POST /v1/payments"""

    application_id: uuid.UUID
    gateway: str
    transaction_id: Optional[str] = None
    extra: Dict[str, Any] = {}

    def gateway_extra(self) -> Dict[str, Any]:
        extra = dict(self.extra)
        if self.transaction_id:
            extra["transaction_id"] = self.transaction_id
        return extra


class ManualPaymentRequest(BaseModel):
    """Request body for POST /v1/applications/{id}/payment"""

    transaction_id: str = Field(..., min_length=1)


class OfficerVerificationRequest(BaseModel):
    """Request body for PATCH /v1/payments/{id}"""

    decision: Literal["verified", "rejected"]
    verified_amount: Optional[Decimal] = Field(None, gt=0)
    remarks: Optional[str] = None


class HimKoshInitiateRequest(BaseModel):
    application_id: uuid.UUID


class PaymentResponse(ORMModel):
    id: uuid.UUID
    application_id: uuid.UUID
    gateway: str
    reference: str
    external_ref: Optional[str] = None
    amount: Decimal
    verified_amount: Optional[Decimal] = None
    status: str
    outcome: str
    redirect_url: Optional[str] = None
    form_fields: Dict[str, Any] = {}
    failure_reason: Optional[str] = None
    initiated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class PaymentListResponse(BaseModel):
    application_id: uuid.UUID
    payments: List[PaymentResponse]


# Fees


class FeeQuoteRequest(BaseModel):
    category: str
    total_rooms: int
    validity_years: int = 1
    is_female_owner: bool = False
    is_special_region: bool = False
    room_details: Optional[RoomDetails] = None


class FeeBreakdownResponse(BaseModel):
    category: str
    total_rooms: int
    validity_years: int
    base_fee: Decimal
    per_room_fee: Decimal
    subtotal_one_year: Decimal
    total_before_discounts: Decimal
    validity_discount: Decimal
    female_owner_discount: Decimal
    special_region_discount: Decimal
    total_discount: Decimal
    net_fee: Decimal
    gst_rate: Decimal
    gst_amount: Decimal
    total_fee: Decimal


class CategoryCheckResponse(BaseModel):
    is_valid: bool
    errors: List[str] = []
    warnings: List[str] = []
    suggested_category: Optional[str] = None
    average_rate: Decimal


class FeeQuoteResponse(BaseModel):
    breakdown: FeeBreakdownResponse
    category_check: Optional[CategoryCheckResponse] = None


# Notifications


class NotificationResponse(ORMModel):
    id: uuid.UUID
    application_id: Optional[uuid.UUID] = None
    type: str
    title: str
    message: str
    is_read: bool
    created_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]


# Accounts


class RegisterRequest(BaseModel):
    """Request body for POST /v1/auth/register; always creates a property owner"""

    mobile: str = Field(..., pattern=r"^[6-9][0-9]{9}$")
    full_name: str = Field(..., min_length=3, max_length=255)
    email: Optional[str] = Field(None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    district: Optional[str] = None
    aadhaar_number: Optional[str] = Field(None, pattern=r"^[0-9]{12}$")


class UserResponse(ORMModel):
    id: uuid.UUID
    mobile: str
    email: Optional[str] = None
    full_name: str
    role: str
    district: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class UserListResponse(BaseModel):
    users: List[UserResponse]
    count: int


class UserUpdate(BaseModel):
    """Request body for PATCH /v1/admin/users/{id}"""

    full_name: Optional[str] = Field(None, min_length=3, max_length=255)
    role: Optional[Literal["owner", "dealing_assistant", "dtdo", "district_officer", "state_officer", "admin"]] = None
    district: Optional[str] = None

    def values(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class UserStatusUpdate(BaseModel):
    is_active: bool


# Search and reporting


class ApplicationSearchRequest(BaseModel):
    """Request body for POST /v1/applications/search; at least one filter"""

    application_number: Optional[str] = None
    owner_mobile: Optional[str] = None
    owner_aadhaar: Optional[str] = None
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=2000, le=2100)
    from_date: Optional[date] = None
    to_date: Optional[date] = None


class PublicPropertyResponse(ORMModel):
    """What anyone may see about a registered homestay"""

    id: uuid.UUID
    property_name: str
    address: str
    district: str
    pincode: str
    category: str
    total_rooms: int
    certificate_number: Optional[str] = None
    certificate_expires_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None


class PublicPropertyListResponse(BaseModel):
    properties: List[PublicPropertyResponse]
    count: int


class ApplicationSummary(ORMModel):
    id: uuid.UUID
    application_number: Optional[str] = None
    property_name: str
    district: str
    category: str
    status: str
    owner_name: str
    created_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None


class DashboardOverview(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_category: Dict[str, int]
    avg_processing_days: float
    total_owners: int


class DashboardResponse(BaseModel):
    overview: DashboardOverview
    districts: Dict[str, int]
    recent_applications: List[ApplicationSummary]


# Admin


class ResetDbRequest(BaseModel):
    preserve_ddo_codes: bool = True
    preserve_property_owners: bool = False
    preserve_district_officers: bool = False
    preserve_state_officers: bool = False


class ResetRequest(BaseModel):
    confirmation_text: str
    reason: str


class SeedRequest(BaseModel):
    count: int = 1
    scenario: Optional[str] = None
    district: str = "Shimla"


class SettingUpdate(BaseModel):
    value: Any


class SettingResponse(BaseModel):
    key: str
    value: Any


class SqlRequest(BaseModel):
    query: str


class ExpireStaleResponse(BaseModel):
    expired: int


def application_response(app, actor, model=ApplicationResponse, **extra):
    """Serialise an application with the actions the actor may take next"""
    data = model.model_validate(app)
    actions = [action.value for action in allowed_actions(app.status, actor.role)]
    return data.model_copy(update={"allowed_actions": actions, **extra})


def payment_response(payment) -> PaymentResponse:
    return PaymentResponse.model_validate(
        {
            **{name: getattr(payment, name) for name in PaymentResponse.model_fields if hasattr(payment, name)},
            "outcome": payment_outcome(payment.status).value,
            "form_fields": (payment.gateway_data or {}).get("form_fields") or {},
        }
    )
