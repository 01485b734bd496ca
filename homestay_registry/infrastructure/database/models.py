"""SQLAlchemy ORM models for the homestay registration workflow"""

import uuid
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Date,
    Integer,
    BigInteger,
    ForeignKey,
    Numeric,
    Text,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

MONEY = Numeric(12, 2)


class User(Base):
    """Property owner, officer or administrator"""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    mobile = Column(String(15), nullable=False, unique=True)
    email = Column(String(255), nullable=True)
    full_name = Column(Text, nullable=False)
    role = Column(String(50), nullable=False, default="owner")
    aadhaar_number = Column(String(12), nullable=True, unique=True)
    district = Column(String(100), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    applications = relationship("HomestayApplication", back_populates="owner", foreign_keys="HomestayApplication.owner_id")


class HomestayApplication(Base):
    """One homestay registration attempt"""

    __tablename__ = "homestay_applications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_number = Column(String(50), nullable=True, unique=True)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    # Property
    property_name = Column(String(255), nullable=False)
    address = Column(Text, nullable=False)
    district = Column(String(100), nullable=False, index=True)
    pincode = Column(String(10), nullable=False)
    category = Column(String(20), nullable=False)
    total_rooms = Column(Integer, nullable=False)
    validity_years = Column(Integer, nullable=False, default=1)
    room_details = Column(JSON, nullable=True)
    gstin = Column(String(15), nullable=True)

    # Owner
    owner_name = Column(String(255), nullable=False)
    owner_mobile = Column(String(15), nullable=False)
    owner_email = Column(String(255), nullable=True)
    owner_gender = Column(String(10), nullable=False, default="male")
    is_special_region = Column(Boolean, nullable=False, default=False)

    # Fee snapshot, written at (re-)submission only
    base_fee = Column(MONEY, nullable=True)
    per_room_fee = Column(MONEY, nullable=True)
    total_before_discounts = Column(MONEY, nullable=True)
    validity_discount = Column(MONEY, nullable=True)
    female_owner_discount = Column(MONEY, nullable=True)
    special_region_discount = Column(MONEY, nullable=True)
    total_discount = Column(MONEY, nullable=True)
    net_fee = Column(MONEY, nullable=True)
    gst_amount = Column(MONEY, nullable=True)
    total_fee = Column(MONEY, nullable=True)
    fee_locked_at = Column(DateTime(timezone=True), nullable=True)

    # Workflow
    status = Column(String(50), nullable=False, default="draft", index=True)
    version = Column(Integer, nullable=False)
    review_cycle = Column(Integer, nullable=False, default=0)

    # Certificate
    certificate_number = Column(String(50), nullable=True, unique=True)
    certificate_issued_at = Column(DateTime(timezone=True), nullable=True)
    certificate_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    last_transition_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    owner = relationship("User", back_populates="applications", foreign_keys=[owner_id])
    documents = relationship("Document", back_populates="application", cascade="all, delete-orphan", order_by="Document.uploaded_at")
    timeline = relationship("TimelineEntry", back_populates="application", cascade="all, delete-orphan", order_by="TimelineEntry.sequence")
    inspection_orders = relationship("InspectionOrder", back_populates="application", cascade="all, delete-orphan", order_by="InspectionOrder.cycle")
    inspection_reports = relationship("InspectionReport", back_populates="application", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="application", cascade="all, delete-orphan", order_by="Payment.initiated_at")

    # Optimistic concurrency: a stale flush raises StaleDataError
    __mapper_args__ = {"version_id_col": version}


class Document(Base):
    """File metadata attached to an application"""

    __tablename__ = "documents"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("homestay_applications.id", ondelete="CASCADE"), nullable=False, index=True)
    document_type = Column(String(100), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_path = Column(Text, nullable=False)
    file_size = Column(BigInteger, nullable=False, default=0)
    mime_type = Column(String(100), nullable=False, default="application/octet-stream")
    verification_status = Column(String(30), nullable=False, default="pending")
    verification_notes = Column(Text, nullable=True)
    verified_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("HomestayApplication", back_populates="documents")


class TimelineEntry(Base):
    """Append-only audit trail of workflow actions and reviewer remarks"""

    __tablename__ = "application_timeline"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("homestay_applications.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    review_cycle = Column(Integer, nullable=False, default=0)
    actor_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    actor_role = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)
    from_status = Column(String(50), nullable=False)
    to_status = Column(String(50), nullable=False)
    remarks = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("HomestayApplication", back_populates="timeline")

    __table_args__ = (UniqueConstraint("application_id", "sequence", name="uq_timeline_sequence"),)


class InspectionOrder(Base):
    """Inspection scheduled by the DTDO, one per inspection cycle"""

    __tablename__ = "inspection_orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("homestay_applications.id", ondelete="CASCADE"), nullable=False, index=True)
    cycle = Column(Integer, nullable=False, default=1)
    scheduled_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    assigned_to = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    inspection_date = Column(Date, nullable=True)
    special_instructions = Column(Text, nullable=True)
    status = Column(String(30), nullable=False, default="scheduled")  # scheduled | report_submitted
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("HomestayApplication", back_populates="inspection_orders")
    report = relationship("InspectionReport", back_populates="order", uselist=False)


class InspectionReport(Base):
    """Checklist results from a site inspection; only the latest is active"""

    __tablename__ = "inspection_reports"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("inspection_orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    application_id = Column(UUID(as_uuid=True), ForeignKey("homestay_applications.id", ondelete="CASCADE"), nullable=False, index=True)
    submitted_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    actual_inspection_date = Column(Date, nullable=False)
    room_count_verified = Column(Boolean, nullable=False, default=False)
    actual_room_count = Column(Integer, nullable=True)
    category_meets_standards = Column(Boolean, nullable=False, default=False)
    mandatory_checklist = Column(JSON, nullable=False)
    mandatory_remarks = Column(Text, nullable=True)
    desirable_checklist = Column(JSON, nullable=False)
    desirable_remarks = Column(Text, nullable=True)
    overall_satisfactory = Column(Boolean, nullable=False, default=False)
    recommendation = Column(String(30), nullable=False)
    detailed_findings = Column(Text, nullable=False)
    da_remarks = Column(Text, nullable=True)
    mandatory_compliance = Column(Integer, nullable=False)
    desirable_compliance = Column(Integer, nullable=False)
    compliance_percentage = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("HomestayApplication", back_populates="inspection_reports")
    order = relationship("InspectionOrder", back_populates="report")


class Payment(Base):
    """One payment attempt for an application"""

    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("homestay_applications.id", ondelete="CASCADE"), nullable=False, index=True)
    gateway = Column(String(30), nullable=False)
    payment_type = Column(String(30), nullable=False, default="registration")
    reference = Column(String(40), nullable=False, unique=True)
    external_ref = Column(String(255), nullable=True, unique=True)
    amount = Column(MONEY, nullable=False)
    verified_amount = Column(MONEY, nullable=True)
    status = Column(String(30), nullable=False, default="initiated", index=True)
    redirect_url = Column(Text, nullable=True)
    gateway_data = Column(JSON, nullable=True)
    failure_reason = Column(Text, nullable=True)
    # superseded or expired: closed by us, so a late provider confirmation may still land
    closed_reason = Column(String(20), nullable=True)
    initiated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    application = relationship("HomestayApplication", back_populates="payments")


class Notification(Base):
    """Status-change notice for a user; the UI refetches on receipt"""

    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    application_id = Column(UUID(as_uuid=True), ForeignKey("homestay_applications.id", ondelete="CASCADE"), nullable=True)
    type = Column(String(50), nullable=False, default="status_change")
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SystemSetting(Base):
    """Runtime toggles editable from the admin console"""

    __tablename__ = "system_settings"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=False)
    updated_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class DdoCode(Base):
    """Treasury drawing and disbursing officer code per district"""

    __tablename__ = "ddo_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    district = Column(String(100), nullable=False, unique=True)
    ddo_code = Column(String(50), nullable=False)
    ddo_description = Column(Text, nullable=True)


class ReferenceCounter(Base):
    """Last issued sequence per series, e.g. application_number:2026"""

    __tablename__ = "reference_counters"

    name = Column(String(100), primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)
