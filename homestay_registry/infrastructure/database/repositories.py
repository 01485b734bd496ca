"""Data access layer for homestay registration entities"""

import uuid
from contextlib import ExitStack, contextmanager
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from homestay_registry.config import settings
from homestay_registry.domain.exceptions import ConflictError, FatalStoreError, NotFoundError
from homestay_registry.domain.identifiers import format_application_number, format_certificate_number
from homestay_registry.domain.models import ApplicationSearch, ApplicationStatus, PaymentStatus, Role
from homestay_registry.infrastructure.database.locks import KeyedLockRegistry, application_locks, sequence_locks
from homestay_registry.infrastructure.database.models import (
    DdoCode,
    Document,
    HomestayApplication,
    InspectionOrder,
    InspectionReport,
    Notification,
    Payment,
    ReferenceCounter,
    SystemSetting,
    TimelineEntry,
    User,
)
from homestay_registry.utils.date_utils import search_window

DISTRICT_ROLES = frozenset({Role.DEALING_ASSISTANT, Role.DTDO, Role.DISTRICT_OFFICER})

DEFAULT_SYSTEM_SETTINGS: Dict[str, Any] = {
    "payment_test_mode": False,
    "enforce_property_category": False,
    "super_console_override": False,
}


def as_uuid(value, entity: str = "Application") -> uuid.UUID:
    """Coerce an id from the outside; malformed ids are simply not found"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        raise NotFoundError(f"{entity} {value} not found")


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Commit on success, roll back on any error.

    Store-level failures are translated: a stale version or a uniqueness
    clash becomes ConflictError, a lost connection becomes FatalStoreError.
    """
    try:
        yield db
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConflictError("Application was modified concurrently; refresh and retry") from e
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("Record conflicts with an existing one; refresh and retry") from e
    except DBAPIError as e:
        db.rollback()
        raise FatalStoreError("Database unavailable; outcome unknown, re-read before retrying") from e
    except Exception:
        db.rollback()
        raise


class UserRepository:
    """Repository for users"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id) -> Optional[User]:
        try:
            return self.db.get(User, as_uuid(user_id, "User"))
        except NotFoundError:
            return None

    def get_by_mobile(self, mobile: str) -> Optional[User]:
        return self.db.query(User).filter(User.mobile == mobile).first()

    def get_by_aadhaar(self, aadhaar_number: str) -> Optional[User]:
        return self.db.query(User).filter(User.aadhaar_number == aadhaar_number).first()

    def create(
        self,
        mobile: str,
        full_name: str,
        role: str,
        district: Optional[str] = None,
        email: Optional[str] = None,
        aadhaar_number: Optional[str] = None,
    ) -> User:
        user = User(
            mobile=mobile,
            full_name=full_name,
            role=role,
            district=district,
            email=email,
            aadhaar_number=aadhaar_number,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def list_users(
        self,
        role: Optional[str] = None,
        district: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[User]:
        query = self.db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        if district is not None:
            query = query.filter(User.district == district)
        if is_active is not None:
            query = query.filter(User.is_active.is_(is_active))
        return query.order_by(User.created_at.desc(), User.full_name).offset(offset).limit(limit).all()

    def find_officer(self, role: str, district: Optional[str] = None) -> Optional[User]:
        query = self.db.query(User).filter(User.role == role, User.is_active.is_(True))
        if district is not None:
            query = query.filter(User.district == district)
        return query.order_by(User.created_at).first()


class ApplicationStore:
    """
    Owns application records.

    Every mutation goes through transaction(), which serialises writers per
    application id with an in-process lock, re-reads the row (FOR UPDATE on
    PostgreSQL) and commits or rolls back as one unit.
    """

    def __init__(self, db: Session, locks: KeyedLockRegistry = application_locks, lock_timeout: Optional[float] = None):
        self.db = db
        self.locks = locks
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.transition_lock_timeout_seconds
        self._held: Optional[ExitStack] = None

    @property
    def _row_locking(self) -> bool:
        return self.db.get_bind().dialect.name == "postgresql"

    def get(self, application_id) -> HomestayApplication:
        app = self.db.get(HomestayApplication, as_uuid(application_id))
        if app is None:
            raise NotFoundError(f"Application {application_id} not found")
        return app

    def add(self, app: HomestayApplication) -> HomestayApplication:
        self.db.add(app)
        self.db.flush()
        return app

    @contextmanager
    def transaction(self, application_id) -> Iterator[HomestayApplication]:
        """
        Lock the application, yield a fresh copy, then commit.

        Series locks taken by next_sequence() inside the block are released
        only after the commit, before the application lock.
        """
        key = as_uuid(application_id)
        outer = self._held
        with self.locks.hold(key, self.lock_timeout), ExitStack() as held:
            self._held = held
            try:
                with unit_of_work(self.db):
                    app = self.db.get(
                        HomestayApplication,
                        key,
                        populate_existing=True,
                        with_for_update=True if self._row_locking else None,
                    )
                    if app is None:
                        raise NotFoundError(f"Application {application_id} not found")
                    yield app
            finally:
                self._held = outer

    def next_sequence(self, series: str) -> int:
        """
        Reserve the next number in a series inside the current transaction.

        The in-process series lock and, on PostgreSQL, the counter row lock
        are held until commit, so concurrent writers never read the same
        value. A rolled back transaction rolls the counter back with it.
        """
        if self._held is None:
            raise RuntimeError("next_sequence() must run inside transaction()")
        self._held.enter_context(sequence_locks.hold(series, self.lock_timeout))
        counter = self.db.get(
            ReferenceCounter,
            series,
            populate_existing=True,
            with_for_update=True if self._row_locking else None,
        )
        if counter is None:
            counter = ReferenceCounter(name=series, value=0)
            self.db.add(counter)
        counter.value = (counter.value or 0) + 1
        return counter.value

    def visible_to(self, actor):
        """Query over the applications the actor may read"""
        query = self.db.query(HomestayApplication)
        role = Role(actor.role)

        if role == Role.OWNER:
            return query.filter(HomestayApplication.owner_id == actor.id)
        # Officers never see drafts
        query = query.filter(HomestayApplication.status != ApplicationStatus.DRAFT.value)
        if role in DISTRICT_ROLES:
            query = query.filter(HomestayApplication.district == actor.district)
        return query

    def list_for_actor(
        self,
        actor,
        statuses: Optional[Iterable[ApplicationStatus]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[HomestayApplication]:
        """Applications visible to the actor, newest first"""
        query = self.visible_to(actor)
        if statuses:
            query = query.filter(HomestayApplication.status.in_([ApplicationStatus(s).value for s in statuses]))

        return (
            query.order_by(HomestayApplication.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def search(self, actor, criteria: ApplicationSearch, today: date, limit: int = 200) -> List[HomestayApplication]:
        """Officer lookup by number, owner identity and creation date"""
        query = self.visible_to(actor)
        if criteria.application_number and criteria.application_number.strip():
            pattern = f"%{criteria.application_number.strip()}%"
            query = query.filter(HomestayApplication.application_number.ilike(pattern))
        if criteria.owner_mobile and criteria.owner_mobile.strip():
            query = query.filter(HomestayApplication.owner_mobile == criteria.owner_mobile.strip())
        if criteria.owner_aadhaar and criteria.owner_aadhaar.strip():
            query = query.join(User, User.id == HomestayApplication.owner_id).filter(
                User.aadhaar_number == criteria.owner_aadhaar.strip()
            )

        start, end = search_window(criteria.month, criteria.year, criteria.from_date, criteria.to_date, today)
        if start is not None:
            query = query.filter(HomestayApplication.created_at >= datetime.combine(start, time.min))
        if end is not None:
            query = query.filter(HomestayApplication.created_at < datetime.combine(end + timedelta(days=1), time.min))

        return query.order_by(HomestayApplication.created_at.desc()).limit(limit).all()

    def approved_properties(self, district: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[HomestayApplication]:
        query = self.db.query(HomestayApplication).filter(HomestayApplication.status == ApplicationStatus.APPROVED.value)
        if district:
            query = query.filter(func.lower(HomestayApplication.district) == district.strip().lower())
        return query.order_by(HomestayApplication.approved_at.desc()).offset(offset).limit(limit).all()

    def next_application_number(self, year: int) -> str:
        prefix = settings.application_number_prefix
        return format_application_number(prefix, year, self.next_sequence(f"application_number:{year}"))

    def next_certificate_number(self, year: int) -> str:
        prefix = settings.certificate_number_prefix
        return format_certificate_number(prefix, year, self.next_sequence(f"certificate_number:{year}"))

    def append_timeline(
        self,
        app: HomestayApplication,
        actor_id: Optional[uuid.UUID],
        actor_role: str,
        action: str,
        from_status: str,
        to_status: str,
        remarks: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> TimelineEntry:
        """Append an audit entry; entries are never updated"""
        last = (
            self.db.query(func.max(TimelineEntry.sequence))
            .filter(TimelineEntry.application_id == app.id)
            .scalar()
        )
        entry = TimelineEntry(
            application_id=app.id,
            sequence=(last or 0) + 1,
            review_cycle=app.review_cycle,
            actor_id=actor_id,
            actor_role=actor_role,
            action=action,
            from_status=from_status,
            to_status=to_status,
            remarks=remarks,
            details=details,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def timeline(self, application_id) -> List[TimelineEntry]:
        return (
            self.db.query(TimelineEntry)
            .filter(TimelineEntry.application_id == as_uuid(application_id))
            .order_by(TimelineEntry.sequence)
            .all()
        )

    def notify(self, user_id, application_id, title: str, message: str, type: str = "status_change") -> Notification:
        notification = Notification(
            user_id=user_id,
            application_id=application_id,
            type=type,
            title=title,
            message=message,
        )
        self.db.add(notification)
        return notification

    # Documents

    def add_document(self, app: HomestayApplication, **fields) -> Document:
        document = Document(application_id=app.id, **fields)
        self.db.add(document)
        self.db.flush()
        return document

    def documents(self, application_id) -> List[Document]:
        return (
            self.db.query(Document)
            .filter(Document.application_id == as_uuid(application_id))
            .order_by(Document.uploaded_at, Document.id)
            .all()
        )


class InspectionRepository:
    """Repository for inspection orders and reports"""

    def __init__(self, db: Session):
        self.db = db

    def get_order(self, order_id) -> InspectionOrder:
        order = self.db.get(InspectionOrder, as_uuid(order_id, "Inspection order"))
        if order is None:
            raise NotFoundError(f"Inspection order {order_id} not found")
        return order

    def latest_order(self, application_id) -> Optional[InspectionOrder]:
        return (
            self.db.query(InspectionOrder)
            .filter(InspectionOrder.application_id == as_uuid(application_id))
            .order_by(InspectionOrder.cycle.desc())
            .first()
        )

    def create_order(self, app: HomestayApplication, **fields) -> InspectionOrder:
        latest = self.latest_order(app.id)
        order = InspectionOrder(application_id=app.id, cycle=(latest.cycle + 1) if latest else 1, **fields)
        self.db.add(order)
        self.db.flush()
        return order

    def orders_for_assignee(self, user: User) -> List[InspectionOrder]:
        return (
            self.db.query(InspectionOrder)
            .join(HomestayApplication, InspectionOrder.application_id == HomestayApplication.id)
            .filter(
                HomestayApplication.district == user.district,
                (InspectionOrder.assigned_to == user.id) | (InspectionOrder.assigned_to.is_(None)),
            )
            .order_by(InspectionOrder.created_at.desc())
            .all()
        )

    def active_report(self, application_id) -> Optional[InspectionReport]:
        return (
            self.db.query(InspectionReport)
            .filter(
                InspectionReport.application_id == as_uuid(application_id),
                InspectionReport.is_active.is_(True),
            )
            .first()
        )

    def add_report(self, report: InspectionReport) -> InspectionReport:
        """Store a new report; earlier reports for the application stop being active"""
        (
            self.db.query(InspectionReport)
            .filter(
                InspectionReport.application_id == report.application_id,
                InspectionReport.is_active.is_(True),
            )
            .update({InspectionReport.is_active: False}, synchronize_session="fetch")
        )
        report.is_active = True
        self.db.add(report)
        self.db.flush()
        return report


class PaymentRepository:
    """Repository for payment attempts"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, payment_id) -> Payment:
        payment = self.db.get(Payment, as_uuid(payment_id, "Payment"))
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    def refresh(self, payment: Payment) -> Payment:
        self.db.refresh(payment)
        return payment

    def get_by_external_ref(self, external_ref: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.external_ref == external_ref).first()

    def get_by_reference(self, reference: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.reference == reference).first()

    def for_application(self, application_id) -> List[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.application_id == as_uuid(application_id))
            .order_by(Payment.initiated_at, Payment.id)
            .all()
        )

    def blocking_attempt(self, application_id) -> Optional[Payment]:
        """Attempt that is pending verification or verified, if any"""
        return (
            self.db.query(Payment)
            .filter(
                Payment.application_id == as_uuid(application_id),
                Payment.status.in_([PaymentStatus.PENDING_VERIFICATION.value, PaymentStatus.VERIFIED.value]),
            )
            .first()
        )

    def open_attempts(self, application_id) -> List[Payment]:
        return (
            self.db.query(Payment)
            .filter(
                Payment.application_id == as_uuid(application_id),
                Payment.status == PaymentStatus.INITIATED.value,
            )
            .all()
        )

    def stale_attempts(self, now: datetime, ttl_minutes: int, application_id=None) -> List[Payment]:
        cutoff = now - timedelta(minutes=ttl_minutes)
        query = self.db.query(Payment).filter(
            Payment.status == PaymentStatus.INITIATED.value,
            Payment.initiated_at < cutoff,
        )
        if application_id is not None:
            query = query.filter(Payment.application_id == as_uuid(application_id))
        return query.all()

    def create(self, **fields) -> Payment:
        payment = Payment(**fields)
        self.db.add(payment)
        self.db.flush()
        return payment


class NotificationRepository:
    """Repository for user notifications"""

    def __init__(self, db: Session):
        self.db = db

    def for_user(self, user_id, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == as_uuid(user_id, "User"))
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc()).limit(limit).all()


class SettingsRepository:
    """Runtime system settings with built-in defaults"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str) -> Any:
        row = self.db.get(SystemSetting, key)
        if row is not None:
            return row.value
        if key not in DEFAULT_SYSTEM_SETTINGS:
            raise NotFoundError(f"Setting {key} not found")
        return DEFAULT_SYSTEM_SETTINGS[key]

    def is_enabled(self, key: str) -> bool:
        return bool(self.get(key))

    def set(self, key: str, value: Any, updated_by=None) -> SystemSetting:
        row = self.db.get(SystemSetting, key)
        if row is None:
            row = SystemSetting(key=key, value=value, updated_by=updated_by)
            self.db.add(row)
        else:
            row.value = value
            row.updated_by = updated_by
        self.db.flush()
        return row


class DdoRepository:
    """Treasury DDO code lookup per district"""

    def __init__(self, db: Session):
        self.db = db

    def code_for_district(self, district: Optional[str]) -> str:
        if district:
            row = (
                self.db.query(DdoCode)
                .filter(func.lower(DdoCode.district) == district.strip().lower())
                .first()
            )
            if row is not None:
                return row.ddo_code
        return settings.himkosh_ddo
