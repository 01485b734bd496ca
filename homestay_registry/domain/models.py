"""Domain models - pure Python dataclasses and enums representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
import uuid
from typing import Any, Dict, List, Optional


class Category(str, Enum):
    DIAMOND = "diamond"
    GOLD = "gold"
    SILVER = "silver"


class ApplicationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    DISTRICT_REVIEW = "district_review"
    UNDER_SCRUTINY = "under_scrutiny"
    SENT_BACK_FOR_CORRECTIONS = "sent_back_for_corrections"
    FORWARDED_TO_DTDO = "forwarded_to_dtdo"
    DTDO_REVIEW = "dtdo_review"
    INSPECTION_SCHEDULED = "inspection_scheduled"
    INSPECTION_COMPLETED = "inspection_completed"
    OBJECTION_RAISED = "objection_raised"
    STATE_REVIEW = "state_review"
    PAYMENT_PENDING = "payment_pending"
    VERIFIED_FOR_PAYMENT = "verified_for_payment"
    APPROVED = "approved"
    REJECTED = "rejected"


class Role(str, Enum):
    OWNER = "owner"
    DEALING_ASSISTANT = "dealing_assistant"
    DTDO = "dtdo"
    DISTRICT_OFFICER = "district_officer"
    STATE_OFFICER = "state_officer"
    ADMIN = "admin"
    SYSTEM = "system"


class Action(str, Enum):
    UPDATE = "update"
    SUBMIT = "submit"
    START_REVIEW = "start_review"
    ACCEPT = "accept"
    APPROVE = "approve"
    REJECT = "reject"
    SEND_BACK = "send_back"
    START_SCRUTINY = "start_scrutiny"
    SAVE_SCRUTINY = "save_scrutiny"
    FORWARD = "forward"
    BEGIN_REVIEW = "begin_review"
    REVERT = "revert"
    SCHEDULE_INSPECTION = "schedule_inspection"
    SUBMIT_INSPECTION_REPORT = "submit_inspection_report"
    RAISE_OBJECTIONS = "raise_objections"
    INITIATE_PAYMENT = "initiate_payment"
    PAYMENT_VERIFIED = "payment_verified"


class RemarksRequirement(str, Enum):
    NONE = "none"
    OPTIONAL = "optional"
    REQUIRED = "required"


class DocumentStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    NEEDS_CORRECTION = "needs_correction"


class PaymentStatus(str, Enum):
    INITIATED = "initiated"
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"
    FAILED = "failed"


class PaymentOutcome(str, Enum):
    """What the payer is told; a completed-but-unconfirmed payment is never a failure"""

    NOT_COMPLETED = "not_completed"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"


class Recommendation(str, Enum):
    APPROVE = "approve"
    APPROVE_WITH_CONDITIONS = "approve_with_conditions"
    RAISE_OBJECTIONS = "raise_objections"
    REJECT = "reject"


TERMINAL_STATUSES = frozenset({ApplicationStatus.APPROVED, ApplicationStatus.REJECTED})
OWNER_EDITABLE_STATUSES = frozenset(
    {ApplicationStatus.DRAFT, ApplicationStatus.SENT_BACK_FOR_CORRECTIONS}
)


@dataclass(frozen=True)
class Actor:
    """Who is acting: a signed-in user or the system itself"""

    id: Optional[uuid.UUID]
    role: Role
    district: Optional[str] = None
    name: str = ""


SYSTEM_ACTOR = Actor(id=None, role=Role.SYSTEM, name="system")


@dataclass(frozen=True)
class DiscountEligibility:
    """Owner-level facts that unlock fee discounts"""

    is_female_owner: bool = False
    is_special_region: bool = False


@dataclass(frozen=True)
class FeeBreakdown:
    """Output of the fee calculator; persisted as the application's fee snapshot"""

    category: Category
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


@dataclass(frozen=True)
class TransitionRule:
    """One edge of the workflow state machine"""

    action: Action
    sources: frozenset
    target: Optional[ApplicationStatus]  # None keeps the current status
    roles: frozenset
    remarks: RemarksRequirement = RemarksRequirement.NONE

    def resolve_target(self, current: ApplicationStatus) -> ApplicationStatus:
        return self.target or current


@dataclass(frozen=True)
class TransitionDecision:
    """Result of consulting the transition table"""

    allowed: bool
    next_status: Optional[ApplicationStatus] = None
    reason: Optional[str] = None
    rule: Optional[TransitionRule] = None
    denied_by_role: bool = False


@dataclass
class CategoryValidationResult:
    """Category suitability check for the declared rooms and rates"""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggested_category: Optional[Category] = None


@dataclass
class RoomRateSummary:
    """Aggregate nightly rates across room types"""

    total_rooms: int
    total_revenue: Decimal
    average_rate: Decimal
    highest_rate: Decimal
    lowest_rate: Decimal


@dataclass
class ComplianceSummary:
    """Derived checklist compliance for an inspection report"""

    mandatory_percentage: int
    desirable_percentage: int
    overall_percentage: int
    failed_mandatory: List[str] = field(default_factory=list)


@dataclass
class PaymentRequest:
    """What an adapter needs to start collecting money"""

    reference: str
    application_id: str
    application_number: str
    amount: Decimal
    payer_name: str
    payer_mobile: Optional[str] = None
    payer_email: Optional[str] = None
    district: Optional[str] = None
    ddo_code: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentInitiation:
    """Adapter response to an initiation request"""

    external_ref: str
    status: PaymentStatus = PaymentStatus.INITIATED
    amount: Optional[Decimal] = None  # what the provider will charge, when it differs from the request
    redirect_url: Optional[str] = None
    form_fields: Dict[str, Any] = field(default_factory=dict)
    gateway_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentAttemptRef:
    """Stored attempt handed to an adapter for reconciliation"""

    external_ref: str
    amount: Decimal
    gateway_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReconcileResult:
    """Adapter view of an attempt's status at the provider"""

    external_ref: str
    status: PaymentStatus
    verified_amount: Optional[Decimal] = None
    gateway_data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ApplicationSearch:
    """Officer search filters; an explicit date range wins over month and year"""

    application_number: Optional[str] = None
    owner_mobile: Optional[str] = None
    owner_aadhaar: Optional[str] = None
    month: Optional[int] = None
    year: Optional[int] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    def is_empty(self) -> bool:
        return not any(
            (
                (self.application_number or "").strip(),
                (self.owner_mobile or "").strip(),
                (self.owner_aadhaar or "").strip(),
                self.month,
                self.year,
                self.from_date,
                self.to_date,
            )
        )
