"""Administrator console: statistics, resets, seeding and runtime settings"""

import logging
import zlib
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from homestay_registry.config import settings
from homestay_registry.domain.exceptions import AuthorizationError, NotFoundError, ValidationError
from homestay_registry.domain.inspection import DESIRABLE_CRITERIA, MANDATORY_CRITERIA
from homestay_registry.domain.models import (
    Action,
    Actor,
    PaymentStatus,
    Role,
    SYSTEM_ACTOR,
)
from homestay_registry.infrastructure.database.models import (
    DdoCode,
    Document,
    HomestayApplication,
    InspectionOrder,
    InspectionReport,
    Notification,
    Payment,
    TimelineEntry,
    User,
)
from homestay_registry.infrastructure.database.repositories import (
    DEFAULT_SYSTEM_SETTINGS,
    PaymentRepository,
    SettingsRepository,
    UserRepository,
    unit_of_work,
)
from homestay_registry.services.orchestrator import ReviewOrchestrator
from homestay_registry.utils.date_utils import utcnow

RESET_OPERATIONS = ("full", "applications", "users", "files", "timeline", "inspections", "payments")
SEED_TYPES = ("users", "applications", "scenario")
SCENARIOS = ("pending_da_review", "inspection_backlog", "payment_pending", "objections_raised", "complete_workflow")
CONSOLE_ENVIRONMENTS = ("development", "test")
MIN_REASON_LENGTH = 10
MAX_SEED_COUNT = 50

OFFICER_ROLES = (Role.DEALING_ASSISTANT, Role.DTDO, Role.DISTRICT_OFFICER)

# Child tables first so foreign keys never dangle
APPLICATION_TABLES = (Notification, TimelineEntry, InspectionReport, InspectionOrder, Payment, Document, HomestayApplication)

DEMO_PROPERTIES = (
    ("Pine View Homestay", "silver", 4),
    ("Apple Orchard Cottage", "gold", 3),
    ("Snow Peak Residency", "diamond", 6),
    ("River Bend Homestay", "silver", 2),
    ("Cedar Heights", "gold", 5),
)


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=Role(user.role), district=user.district, name=user.full_name)


class AdminService:
    def __init__(self, db: Session, request_id: Optional[str] = None):
        self.db = db
        self.request_id = request_id
        self.settings_repo = SettingsRepository(db)
        self.users = UserRepository(db)

    # Guards

    def _require_destructive_allowed(self) -> None:
        if settings.environment == "production" and not self.settings_repo.is_enabled("super_console_override"):
            raise AuthorizationError("Reset and seed operations are disabled in production")

    def _count(self, model) -> int:
        return self.db.query(func.count()).select_from(model).scalar()

    # Reads

    def stats(self) -> Dict[str, Any]:
        by_status = dict(
            self.db.query(HomestayApplication.status, func.count(HomestayApplication.id))
            .group_by(HomestayApplication.status)
            .all()
        )
        by_role = dict(self.db.query(User.role, func.count(User.id)).group_by(User.role).all())
        payments_by_status = dict(self.db.query(Payment.status, func.count(Payment.id)).group_by(Payment.status).all())
        override = self.settings_repo.is_enabled("super_console_override")
        return {
            "environment": settings.environment,
            "reset_enabled": settings.environment != "production" or override,
            "super_console_override": override,
            "applications": {"total": sum(by_status.values()), "by_status": by_status},
            "users": {"total": sum(by_role.values()), "by_role": by_role},
            "files": {
                "total": self._count(Document),
                "total_size": int(self.db.query(func.coalesce(func.sum(Document.file_size), 0)).scalar()),
            },
            "payments": {"total": sum(payments_by_status.values()), "by_status": payments_by_status},
        }

    def get_setting(self, key: str) -> Any:
        return self.settings_repo.get(key)

    def put_setting(self, actor: Actor, key: str, value: Any) -> Any:
        if key not in DEFAULT_SYSTEM_SETTINGS:
            raise NotFoundError(f"Setting {key} not found")
        with unit_of_work(self.db):
            row = self.settings_repo.set(key, value, updated_by=actor.id)
        logging.info("System setting changed", extra={"request_id": self.request_id, "setting": key, "value": value})
        return row.value

    # Resets

    def _delete_application_data(self) -> Dict[str, int]:
        counts = {}
        for model in APPLICATION_TABLES:
            counts[model.__tablename__] = self.db.query(model).delete(synchronize_session=False)
        return counts

    def _delete_users(self, keep_roles: List[str]) -> int:
        return (
            self.db.query(User)
            .filter(User.role.notin_(keep_roles))
            .delete(synchronize_session=False)
        )

    def reset_db(
        self,
        actor: Actor,
        preserve_ddo_codes: bool = True,
        preserve_property_owners: bool = False,
        preserve_district_officers: bool = False,
        preserve_state_officers: bool = False,
    ) -> Dict[str, Any]:
        """Clear all workflow data; administrators and the chosen user groups survive"""
        self._require_destructive_allowed()

        keep_roles = [Role.ADMIN.value]
        if preserve_property_owners:
            keep_roles.append(Role.OWNER.value)
        if preserve_district_officers:
            keep_roles.extend(role.value for role in OFFICER_ROLES)
        if preserve_state_officers:
            keep_roles.append(Role.STATE_OFFICER.value)

        with unit_of_work(self.db):
            deleted = self._delete_application_data()
            deleted["users"] = self._delete_users(keep_roles)
            if not preserve_ddo_codes:
                deleted["ddo_codes"] = self.db.query(DdoCode).delete(synchronize_session=False)
        self.db.expire_all()

        preserved_by_role = dict(self.db.query(User.role, func.count(User.id)).group_by(User.role).all())
        logging.warning(
            "Database reset",
            extra={"request_id": self.request_id, "actor_id": str(actor.id), "deleted": deleted},
        )
        return {
            "deleted": deleted,
            "preserved": {
                "total_users": sum(preserved_by_role.values()),
                "by_role": preserved_by_role,
                "ddo_codes": preserve_ddo_codes,
                "property_owners": preserve_property_owners,
                "district_officers": preserve_district_officers,
                "state_officers": preserve_state_officers,
            },
        }

    def reset(self, actor: Actor, operation: str, confirmation_text: str, reason: str) -> Dict[str, Any]:
        """Targeted reset; typing the confirmation word and a reason are mandatory"""
        if operation not in RESET_OPERATIONS:
            raise NotFoundError(f"Unknown reset operation '{operation}'")
        required = "RESET" if operation == "full" else "DELETE"
        if confirmation_text != required:
            raise ValidationError(f'Type "{required}" exactly to confirm', field="confirmation_text")
        if len((reason or "").strip()) < MIN_REASON_LENGTH:
            raise ValidationError(f"Reason must be at least {MIN_REASON_LENGTH} characters", field="reason")
        self._require_destructive_allowed()

        with unit_of_work(self.db):
            if operation == "full":
                deleted = self._delete_application_data()
                deleted["users"] = self._delete_users([Role.ADMIN.value])
            elif operation == "applications":
                deleted = self._delete_application_data()
            elif operation == "users":
                # Owners' applications cannot outlive them
                deleted = self._delete_application_data()
                deleted["users"] = self._delete_users([Role.ADMIN.value])
            elif operation == "files":
                deleted = {"documents": self.db.query(Document).delete(synchronize_session=False)}
            elif operation == "timeline":
                deleted = {"application_timeline": self.db.query(TimelineEntry).delete(synchronize_session=False)}
            elif operation == "inspections":
                deleted = {
                    "inspection_reports": self.db.query(InspectionReport).delete(synchronize_session=False),
                    "inspection_orders": self.db.query(InspectionOrder).delete(synchronize_session=False),
                }
            else:
                deleted = {"payments": self.db.query(Payment).delete(synchronize_session=False)}
        self.db.expire_all()

        logging.warning(
            "Admin reset",
            extra={
                "request_id": self.request_id,
                "actor_id": str(actor.id),
                "operation": operation,
                "reason": reason,
                "deleted": deleted,
            },
        )
        return {"operation": operation, "deleted": deleted, "message": f"Reset '{operation}' completed"}

    # Seeding

    def _ensure_officer(self, role: Role, district: Optional[str], mobile: str) -> User:
        user = self.users.find_officer(role.value, district)
        if user is None:
            label = role.value.replace("_", " ").title()
            name = f"{district} {label}" if district else label
            user = self.users.get_by_mobile(mobile) or self.users.create(
                mobile=mobile, full_name=name, role=role.value, district=district
            )
        return user

    def _ensure_owner(self, index: int, district: str) -> User:
        mobile = f"98{index:08d}"
        return self.users.get_by_mobile(mobile) or self.users.create(
            mobile=mobile, full_name=f"Demo Owner {index}", role=Role.OWNER.value, district=district
        )

    def seed_users(self, district: str = "Shimla", count: int = 1) -> Dict[str, List[User]]:
        """Demo officers for the district plus `count` owners"""
        with unit_of_work(self.db):
            # One officer set per district; mobiles derive from the district name
            code = zlib.crc32(district.encode()) % 10**8
            officers = [
                self._ensure_officer(role, district, f"{6 + i}0{code:08d}")
                for i, role in enumerate(OFFICER_ROLES, start=1)
            ]
            officers.append(self._ensure_officer(Role.STATE_OFFICER, None, "6000000099"))
            owners = [self._ensure_owner(i, district) for i in range(1, count + 1)]
        return {"officers": officers, "owners": owners}

    def _demo_application(self, owner: User, index: int, district: str) -> Dict[str, Any]:
        name, category, rooms = DEMO_PROPERTIES[index % len(DEMO_PROPERTIES)]
        rate = {"silver": 2000, "gold": 5000, "diamond": 12000}[category]
        return {
            "property_name": f"{name} {index + 1}",
            "address": f"Ward {index + 1}, Mall Road",
            "district": district,
            "pincode": "171001",
            "category": category,
            "total_rooms": rooms,
            "validity_years": 1 + index % 3,
            "room_details": {"double_bed_rooms": rooms, "double_bed_room_rate": rate},
            "gstin": "02ABCDE1234F1Z5" if category != "silver" else None,
            "owner_name": owner.full_name,
            "owner_mobile": owner.mobile,
            "owner_gender": "female" if index % 2 else "male",
        }

    def seed_applications(self, count: int = 3, district: str = "Shimla") -> List[HomestayApplication]:
        """Submitted applications created through the real workflow"""
        owners = self.seed_users(district, count)["owners"]
        workflow = ReviewOrchestrator(self.db, request_id=self.request_id)
        return [
            workflow.create_application(actor_for(owner), self._demo_application(owner, i, district), submit=True)
            for i, owner in enumerate(owners)
        ]

    def _inspection_report(self, satisfied: bool) -> Dict[str, Any]:
        return {
            "actual_inspection_date": date.today(),
            "room_count_verified": True,
            "category_meets_standards": satisfied,
            "mandatory_checklist": {name: True for name in MANDATORY_CRITERIA},
            "desirable_checklist": {name: satisfied for name in DESIRABLE_CRITERIA},
            "overall_satisfactory": satisfied,
            "recommendation": "approve" if satisfied else "raise_objections",
            "detailed_findings": "Property inspected on site; facilities match the declared details.",
        }

    def seed_scenario(self, scenario: str, count: int = 1, district: str = "Shimla") -> List[HomestayApplication]:
        """Drive seeded applications to the stage the scenario names"""
        if scenario not in SCENARIOS:
            raise ValidationError(f"Unknown scenario '{scenario}'. Must be one of: {', '.join(SCENARIOS)}", field="scenario")

        users = self.seed_users(district, count)
        da, dtdo, _district_officer, _state = (actor_for(u) for u in users["officers"])
        workflow = ReviewOrchestrator(self.db, request_id=self.request_id)
        apps = []

        for i, owner in enumerate(users["owners"]):
            app = workflow.create_application(actor_for(owner), self._demo_application(owner, i, district), submit=True)
            apps.append(app)
            if scenario == "pending_da_review":
                continue

            workflow.start_scrutiny(da, app.id)
            workflow.forward_to_dtdo(da, app.id, "Documents verified")
            workflow.dtdo_accept(dtdo, app.id, "Schedule site inspection", inspection_date=date.today(), assigned_to=da.id)
            if scenario == "inspection_backlog":
                continue

            order = workflow.inspections.latest_order(app.id)
            satisfied = scenario != "objections_raised"
            workflow.submit_inspection_report(da, order.id, self._inspection_report(satisfied))
            if scenario == "objections_raised":
                workflow.review_inspection_report(dtdo, app.id, Action.RAISE_OBJECTIONS, "Desirable facilities missing")
                continue

            workflow.review_inspection_report(dtdo, app.id, Action.APPROVE, "Inspection satisfactory")
            if scenario == "payment_pending":
                continue

            self._settle_payment(workflow, app.id)

        self.db.expire_all()
        return apps

    def _settle_payment(self, workflow: ReviewOrchestrator, application_id) -> None:
        now = utcnow()
        with workflow.store.transaction(application_id) as app:
            payment = PaymentRepository(self.db).create(
                application_id=app.id,
                gateway="manual_upi",
                reference=f"SEED{str(app.id.hex)[:16]}",
                external_ref=f"SEEDUPI{app.id.hex[:12]}",
                amount=Decimal(app.total_fee),
                verified_amount=Decimal(app.total_fee),
                status=PaymentStatus.VERIFIED.value,
                initiated_at=now,
                completed_at=now,
                gateway_data={"seeded": True},
            )
            workflow.apply_payment_verified(app, SYSTEM_ACTOR, payment)

    def seed(self, seed_type: str, count: int = 1, scenario: Optional[str] = None, district: str = "Shimla") -> Dict[str, Any]:
        if seed_type not in SEED_TYPES:
            raise NotFoundError(f"Unknown seed type '{seed_type}'")
        if not 1 <= count <= MAX_SEED_COUNT:
            raise ValidationError(f"count must be between 1 and {MAX_SEED_COUNT}", field="count")
        self._require_destructive_allowed()

        if seed_type == "users":
            created = self.seed_users(district, count)
            total = len(created["officers"]) + len(created["owners"])
            return {"message": f"{total} users available in {district}", "created": total}

        if seed_type == "applications":
            apps = self.seed_applications(count, district)
        else:
            if not scenario:
                raise ValidationError("scenario is required", field="scenario")
            apps = self.seed_scenario(scenario, count, district)

        return {
            "message": f"Seeded {len(apps)} application(s)",
            "created": len(apps),
            "application_ids": [str(app.id) for app in apps],
            "statuses": [self.db.get(HomestayApplication, app.id).status for app in apps],
        }

    # Developer console

    def execute_sql(self, actor: Actor, sql: str) -> Dict[str, Any]:
        """Raw SQL for local debugging; refused outside development and test"""
        if settings.environment not in CONSOLE_ENVIRONMENTS:
            raise AuthorizationError("Database console is only available in development and test environments")
        if not sql or not sql.strip():
            raise ValidationError("SQL query is required", field="sql")

        logging.warning("DB console query", extra={"request_id": self.request_id, "actor_id": str(actor.id), "sql": sql})
        try:
            result = self.db.execute(text(sql))
            if result.returns_rows:
                columns = list(result.keys())
                rows = [
                    {col: (str(value) if value is not None and not isinstance(value, (int, float, bool, str)) else value)
                     for col, value in zip(columns, row)}
                    for row in result.fetchall()
                ]
                self.db.commit()
                return {"columns": columns, "rows": rows, "row_count": len(rows)}
            row_count = result.rowcount
            self.db.commit()
            return {"columns": [], "rows": [], "row_count": row_count}
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ValidationError(f"Query failed: {e.__class__.__name__}: {getattr(e, 'orig', e)}", field="sql") from e
