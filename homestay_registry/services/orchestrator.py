"""
Review and inspection orchestration.

Each public step runs as one store transaction: authorise against the
transition table and the actor's data scope, validate the payload, mutate,
append the timeline entry and notify the owner. Any failure rolls the whole
step back, so a rejected step leaves no audit entry and no status change.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from homestay_registry.domain.categories import (
    CATEGORY_REQUIREMENTS,
    calculate_average_room_rate,
    validate_category_selection,
)
from homestay_registry.domain.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from homestay_registry.domain.fees import compute_fee, fee_snapshot, parse_category
from homestay_registry.domain.inspection import (
    DESIRABLE_CRITERIA,
    MANDATORY_CRITERIA,
    MIN_FINDINGS_LENGTH,
    compute_compliance,
    scrutiny_progress,
    unresolved_documents,
    validate_checklist,
)
from homestay_registry.domain.models import (
    Action,
    Actor,
    ApplicationStatus,
    DiscountEligibility,
    DocumentStatus,
    FeeBreakdown,
    Recommendation,
    Role,
    TransitionDecision,
)
from homestay_registry.domain.workflow import parse_status, require_transition, validate_remarks
from homestay_registry.infrastructure.database.models import (
    Document,
    HomestayApplication,
    InspectionOrder,
    InspectionReport,
    Payment,
    TimelineEntry,
)
from homestay_registry.infrastructure.database.repositories import (
    DISTRICT_ROLES,
    ApplicationStore,
    InspectionRepository,
    SettingsRepository,
    UserRepository,
    unit_of_work,
)
from homestay_registry.infrastructure.observability.logging import log_transition
from homestay_registry.infrastructure.observability.metrics import (
    applications_created_counter,
    record_transition,
)
from homestay_registry.utils.date_utils import add_years, utcnow

# Fields an owner may set while the application is editable
EDITABLE_FIELDS = (
    "property_name",
    "address",
    "district",
    "pincode",
    "category",
    "total_rooms",
    "validity_years",
    "room_details",
    "gstin",
    "owner_name",
    "owner_mobile",
    "owner_email",
    "owner_gender",
    "is_special_region",
)

REQUIRED_FIELDS = ("property_name", "address", "district", "pincode", "category", "total_rooms", "owner_name", "owner_mobile")

GENDERS = ("male", "female", "other")

# Sent as null these fall back to their defaults; other optional fields are cleared
NULL_DEFAULTS = {"validity_years": 1, "owner_gender": "male", "is_special_region": False}


def eligibility_for(app: HomestayApplication) -> DiscountEligibility:
    return DiscountEligibility(
        is_female_owner=app.owner_gender == "female",
        is_special_region=bool(app.is_special_region),
    )


def check_scope(app: HomestayApplication, actor: Actor) -> None:
    """Owners act on their own applications, district officers on their district"""
    role = Role(actor.role)
    if role == Role.OWNER and app.owner_id != actor.id:
        raise AuthorizationError("You can only access your own applications")
    if role in DISTRICT_ROLES and app.district != actor.district:
        raise AuthorizationError(f"Application belongs to district {app.district}, outside your jurisdiction")


class ReviewOrchestrator:
    """Sequences scrutiny, DTDO decision, inspection and approval steps"""

    def __init__(self, db: Session, store: Optional[ApplicationStore] = None, request_id: Optional[str] = None):
        self.db = db
        self.store = store or ApplicationStore(db)
        self.inspections = InspectionRepository(db)
        self.request_id = request_id

    # Transition plumbing

    @contextmanager
    def _step(self, application_id, actor: Actor, action: Action) -> Iterator[HomestayApplication]:
        """One transactional workflow step; metrics and logs only for committed steps"""
        outcome = "error"
        from_status = to_status = None
        try:
            with self.store.transaction(application_id) as app:
                from_status = app.status
                yield app
                to_status = app.status
            outcome = "applied"
        except AuthorizationError:
            outcome = "forbidden"
            raise
        except InvalidTransitionError:
            outcome = "invalid"
            raise
        except ConflictError:
            outcome = "conflict"
            raise
        except ValidationError:
            outcome = "validation"
            raise
        finally:
            record_transition(action.value, outcome)

        log_transition(
            self.request_id,
            str(application_id),
            str(actor.id) if actor.id else None,
            Role(actor.role).value,
            action.value,
            from_status,
            to_status,
        )

    def authorize(self, app: HomestayApplication, actor: Actor, action: Action) -> TransitionDecision:
        check_scope(app, actor)
        return require_transition(app.status, action, actor.role)

    def advance(
        self,
        app: HomestayApplication,
        actor: Actor,
        action: Action,
        remarks: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        decision: Optional[TransitionDecision] = None,
    ) -> Optional[str]:
        """
        Apply one edge of the transition table to a locked application.

        Returns the normalised remarks. Nothing is written before every
        check has passed.
        """
        decision = decision or self.authorize(app, actor, action)
        remarks = validate_remarks(decision.rule, remarks)

        from_status = app.status
        to_status = decision.next_status.value
        app.status = to_status
        app.last_transition_at = utcnow()

        self.store.append_timeline(
            app,
            actor.id,
            Role(actor.role).value,
            action.value,
            from_status,
            to_status,
            remarks=remarks,
            details=details,
        )
        if to_status != from_status:
            self._notify_owner(app, to_status, remarks)
        return remarks

    def _notify_owner(self, app: HomestayApplication, to_status: str, remarks: Optional[str]) -> None:
        label = to_status.replace("_", " ")
        message = f"Your application {app.application_number or app.property_name} is now {label}."
        if remarks:
            message = f"{message} Remarks: {remarks}"
        self.store.notify(app.owner_id, app.id, title="Application status updated", message=message)

    # Reads

    def get_application(self, actor: Actor, application_id) -> HomestayApplication:
        app = self.store.get(application_id)
        check_scope(app, actor)
        if app.status == ApplicationStatus.DRAFT.value and Role(actor.role) not in (Role.OWNER, Role.ADMIN):
            raise NotFoundError(f"Application {application_id} not found")
        return app

    def list_applications(self, actor: Actor, statuses: Optional[Sequence[str]] = None, limit: int = 50, offset: int = 0) -> List[HomestayApplication]:
        parsed = [parse_status(s) for s in statuses] if statuses else None
        return self.store.list_for_actor(actor, parsed, limit=limit, offset=offset)

    def timeline(self, actor: Actor, application_id) -> List[TimelineEntry]:
        self.get_application(actor, application_id)
        return self.store.timeline(application_id)

    def carried_over_documents(self, app: HomestayApplication) -> List[Document]:
        """Documents the scrutiny forwarded without verifying, for the current review cycle"""
        entry = (
            self.db.query(TimelineEntry)
            .filter(
                TimelineEntry.application_id == app.id,
                TimelineEntry.action == Action.FORWARD.value,
                TimelineEntry.review_cycle == app.review_cycle,
            )
            .order_by(TimelineEntry.sequence.desc())
            .first()
        )
        if entry is None or not entry.details:
            return []
        ids = set(entry.details.get("unresolved_documents", []))
        return [doc for doc in self.store.documents(app.id) if str(doc.id) in ids]

    # Owner steps

    def _fee_preview(self, values: Mapping[str, Any]) -> FeeBreakdown:
        return compute_fee(
            values["category"],
            values["total_rooms"],
            values.get("validity_years", 1),
            DiscountEligibility(
                is_female_owner=values.get("owner_gender") == "female",
                is_special_region=bool(values.get("is_special_region")),
            ),
        )

    def _validate_fields(self, values: Mapping[str, Any]) -> None:
        missing = [name for name in REQUIRED_FIELDS if values.get(name) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])
        if values.get("owner_gender", "male") not in GENDERS:
            raise ValidationError("owner_gender must be male, female or other", field="owner_gender")
        # Raises field-level errors for category, rooms and years
        self._fee_preview(values)

    def create_application(self, actor: Actor, data: Mapping[str, Any], submit: bool = False) -> HomestayApplication:
        """Create a draft owned by the actor, optionally submitting it straight away"""
        require_transition(ApplicationStatus.DRAFT, Action.UPDATE, actor.role)

        values = {name: data[name] for name in EDITABLE_FIELDS if name in data and data[name] is not None}
        values.setdefault("validity_years", 1)
        values.setdefault("owner_gender", "male")
        self._validate_fields(values)
        values["category"] = parse_category(values["category"]).value

        with unit_of_work(self.db):
            app = HomestayApplication(owner_id=actor.id, status=ApplicationStatus.DRAFT.value, **values)
            self.store.add(app)
            self.store.append_timeline(
                app,
                actor.id,
                Role(actor.role).value,
                "create",
                ApplicationStatus.DRAFT.value,
                ApplicationStatus.DRAFT.value,
            )
        applications_created_counter.inc()
        logging.info(
            "Application created",
            extra={"request_id": self.request_id, "application_id": str(app.id), "step": "create"},
        )

        if submit:
            return self.submit_application(actor, app.id)
        return app

    def update_application(self, actor: Actor, application_id, changes: Mapping[str, Any]) -> HomestayApplication:
        """
        Owner edit while in draft or sent back for corrections.

        Only fields present in `changes` are touched. An explicit None clears
        an optional field (gstin, room_details, owner_email) and fails
        validation for a required one.
        """
        updates = {name: changes[name] for name in EDITABLE_FIELDS if name in changes}
        for name, default in NULL_DEFAULTS.items():
            if name in updates and updates[name] is None:
                updates[name] = default

        with self._step(application_id, actor, Action.UPDATE) as app:
            decision = self.authorize(app, actor, Action.UPDATE)
            merged = {name: getattr(app, name) for name in EDITABLE_FIELDS}
            merged.update(updates)
            self._validate_fields(merged)
            if updates.get("category") is not None:
                updates["category"] = parse_category(updates["category"]).value

            for name, value in updates.items():
                setattr(app, name, value)
            self.advance(app, actor, Action.UPDATE, details={"fields": sorted(updates)}, decision=decision)
        return app

    def add_document(self, actor: Actor, application_id, document: Mapping[str, Any]) -> Document:
        with self._step(application_id, actor, Action.UPDATE) as app:
            decision = self.authorize(app, actor, Action.UPDATE)
            doc = self.store.add_document(app, **document)
            self.advance(
                app,
                actor,
                Action.UPDATE,
                details={"document_added": str(doc.id), "document_type": doc.document_type},
                decision=decision,
            )
        return doc

    def documents(self, actor: Actor, application_id) -> List[Document]:
        self.get_application(actor, application_id)
        return self.store.documents(application_id)

    def _check_category(self, app: HomestayApplication) -> List[str]:
        """Category suitability; blocking only when the enforcement setting is on"""
        if not app.room_details:
            return []
        summary = calculate_average_room_rate(app.room_details)
        result = validate_category_selection(app.category, app.total_rooms, summary.average_rate)
        problems = list(result.errors)
        if CATEGORY_REQUIREMENTS[parse_category(app.category)].gstin_required and not app.gstin:
            problems.append(f"GSTIN is mandatory for {app.category} category")

        if problems and SettingsRepository(self.db).is_enabled("enforce_property_category"):
            raise ValidationError(" ".join(problems), field="category")
        return problems + list(result.warnings)

    def submit_application(self, actor: Actor, application_id) -> HomestayApplication:
        """
        Submit or re-submit. The fee snapshot is (re)computed here and only
        here; a re-submission opens a new review cycle.
        """
        with self._step(application_id, actor, Action.SUBMIT) as app:
            decision = self.authorize(app, actor, Action.SUBMIT)
            breakdown = compute_fee(app.category, app.total_rooms, app.validity_years, eligibility_for(app))
            warnings = self._check_category(app)

            now = utcnow()
            for name, value in fee_snapshot(breakdown).items():
                setattr(app, name, value)
            app.fee_locked_at = now
            if not app.application_number:
                app.application_number = self.store.next_application_number(now.year)
            app.review_cycle = (app.review_cycle or 0) + 1
            app.submitted_at = now

            details = {"total_fee": str(breakdown.total_fee), "review_cycle": app.review_cycle}
            if warnings:
                details["category_warnings"] = warnings
            self.advance(app, actor, Action.SUBMIT, details=details, decision=decision)
        return app

    # Officer steps

    def review(self, actor: Actor, application_id, action: Action, remarks: Optional[str] = None) -> HomestayApplication:
        """Generic officer decision; the transition table decides what it leads to"""
        action = Action(action)
        with self._step(application_id, actor, action) as app:
            self.advance(app, actor, action, remarks=remarks)
        return app

    def start_scrutiny(self, actor: Actor, application_id) -> HomestayApplication:
        return self.review(actor, application_id, Action.START_SCRUTINY)

    def save_scrutiny(
        self,
        actor: Actor,
        application_id,
        verifications: Sequence[Mapping[str, Any]],
        remarks: Optional[str] = None,
    ) -> HomestayApplication:
        """Record per-document verification decisions during DA scrutiny"""
        with self._step(application_id, actor, Action.SAVE_SCRUTINY) as app:
            decision = self.authorize(app, actor, Action.SAVE_SCRUTINY)
            documents = {str(doc.id): doc for doc in self.store.documents(app.id)}

            parsed = []
            for item in verifications:
                doc_id = str(item.get("document_id"))
                if doc_id not in documents:
                    raise ValidationError(f"Document {doc_id} does not belong to this application", field="documents")
                try:
                    status = DocumentStatus(item.get("status"))
                except ValueError:
                    raise ValidationError(f"Invalid verification status '{item.get('status')}'", field="documents")
                parsed.append((documents[doc_id], status, item.get("notes")))

            now = utcnow()
            for doc, status, notes in parsed:
                doc.verification_status = status.value
                doc.verification_notes = notes
                doc.verified_by = actor.id
                doc.verified_at = now

            progress = scrutiny_progress([doc.verification_status for doc in documents.values()])
            self.advance(
                app,
                actor,
                Action.SAVE_SCRUTINY,
                remarks=remarks,
                details={"updated_documents": len(parsed), "progress": progress},
                decision=decision,
            )
        return app

    def forward_to_dtdo(self, actor: Actor, application_id, remarks: Optional[str] = None) -> HomestayApplication:
        """Forward even with unresolved documents; they are recorded as carried-over risk"""
        with self._step(application_id, actor, Action.FORWARD) as app:
            decision = self.authorize(app, actor, Action.FORWARD)
            statuses = {str(doc.id): doc.verification_status for doc in self.store.documents(app.id)}
            self.advance(
                app,
                actor,
                Action.FORWARD,
                remarks=remarks,
                details={
                    "unresolved_documents": unresolved_documents(statuses),
                    "progress": scrutiny_progress(list(statuses.values())),
                },
                decision=decision,
            )
        return app

    def send_back(self, actor: Actor, application_id, remarks: Optional[str]) -> HomestayApplication:
        return self.review(actor, application_id, Action.SEND_BACK, remarks)

    def begin_dtdo_review(self, actor: Actor, application_id) -> HomestayApplication:
        return self.review(actor, application_id, Action.BEGIN_REVIEW)

    def _assignee(self, app: HomestayApplication, assigned_to) -> Optional[uuid.UUID]:
        if assigned_to is None:
            return None
        user = UserRepository(self.db).get(assigned_to)
        if user is None or user.role != Role.DEALING_ASSISTANT.value or user.district != app.district:
            raise ValidationError("Inspection must be assigned to a dealing assistant of the same district", field="assigned_to")
        return user.id

    def dtdo_accept(
        self,
        actor: Actor,
        application_id,
        remarks: Optional[str],
        inspection_date: Optional[date] = None,
        assigned_to=None,
        special_instructions: Optional[str] = None,
    ) -> HomestayApplication:
        """Accept for inspection and open inspection cycle N"""
        with self._step(application_id, actor, Action.ACCEPT) as app:
            decision = self.authorize(app, actor, Action.ACCEPT)
            remarks = validate_remarks(decision.rule, remarks)
            order = self.inspections.create_order(
                app,
                scheduled_by=actor.id,
                assigned_to=self._assignee(app, assigned_to),
                inspection_date=inspection_date,
                special_instructions=special_instructions,
            )
            self.advance(
                app,
                actor,
                Action.ACCEPT,
                remarks=remarks,
                details={"inspection_order_id": str(order.id), "cycle": order.cycle},
                decision=decision,
            )
        return app

    def dtdo_reject(self, actor: Actor, application_id, remarks: Optional[str]) -> HomestayApplication:
        return self.review(actor, application_id, Action.REJECT, remarks)

    def dtdo_revert(self, actor: Actor, application_id, remarks: Optional[str]) -> HomestayApplication:
        return self.review(actor, application_id, Action.REVERT, remarks)

    def schedule_inspection(
        self,
        actor: Actor,
        application_id,
        inspection_date: Optional[date] = None,
        assigned_to=None,
        special_instructions: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> InspectionOrder:
        """Reschedule the open inspection, or open a new cycle after objections"""
        with self._step(application_id, actor, Action.SCHEDULE_INSPECTION) as app:
            decision = self.authorize(app, actor, Action.SCHEDULE_INSPECTION)
            remarks = validate_remarks(decision.rule, remarks)
            assignee = self._assignee(app, assigned_to)
            order = self.inspections.latest_order(app.id)

            if app.status == ApplicationStatus.OBJECTION_RAISED.value or order is None or order.status != "scheduled":
                order = self.inspections.create_order(
                    app,
                    scheduled_by=actor.id,
                    assigned_to=assignee,
                    inspection_date=inspection_date,
                    special_instructions=special_instructions,
                )
            else:
                order.scheduled_by = actor.id
                if assignee is not None:
                    order.assigned_to = assignee
                if inspection_date is not None:
                    order.inspection_date = inspection_date
                if special_instructions is not None:
                    order.special_instructions = special_instructions

            self.advance(
                app,
                actor,
                Action.SCHEDULE_INSPECTION,
                remarks=remarks,
                details={
                    "inspection_order_id": str(order.id),
                    "cycle": order.cycle,
                    "inspection_date": inspection_date.isoformat() if inspection_date else None,
                },
                decision=decision,
            )
        return order

    def inspections_for(self, actor: Actor) -> List[InspectionOrder]:
        if Role(actor.role) != Role.DEALING_ASSISTANT:
            raise AuthorizationError("Only dealing assistants have an inspection queue")
        return self.inspections.orders_for_assignee(actor)

    def submit_inspection_report(self, actor: Actor, order_id, report: Mapping[str, Any]) -> InspectionReport:
        """Checklist results from the site visit; replaces any earlier active report"""
        order = self.inspections.get_order(order_id)
        with self._step(order.application_id, actor, Action.SUBMIT_INSPECTION_REPORT) as app:
            decision = self.authorize(app, actor, Action.SUBMIT_INSPECTION_REPORT)
            self.db.refresh(order)
            latest = self.inspections.latest_order(app.id)
            if latest is None or latest.id != order.id or order.status != "scheduled":
                raise ConflictError("Inspection order is no longer open; refresh and retry")
            if order.assigned_to is not None and order.assigned_to != actor.id:
                raise AuthorizationError("Inspection is assigned to another dealing assistant")

            mandatory = validate_checklist(report.get("mandatory_checklist") or {}, MANDATORY_CRITERIA, "mandatory_checklist")
            desirable = validate_checklist(report.get("desirable_checklist") or {}, DESIRABLE_CRITERIA, "desirable_checklist")

            findings = (report.get("detailed_findings") or "").strip()
            if len(findings) < MIN_FINDINGS_LENGTH:
                raise ValidationError(
                    f"Detailed findings must be at least {MIN_FINDINGS_LENGTH} characters",
                    field="detailed_findings",
                )
            try:
                recommendation = Recommendation(report.get("recommendation"))
            except ValueError:
                raise ValidationError("Invalid recommendation", field="recommendation")
            if not report.get("actual_inspection_date"):
                raise ValidationError("Actual inspection date is required", field="actual_inspection_date")

            compliance = compute_compliance(mandatory, desirable)
            saved = self.inspections.add_report(
                InspectionReport(
                    order_id=order.id,
                    application_id=app.id,
                    submitted_by=actor.id,
                    actual_inspection_date=report["actual_inspection_date"],
                    room_count_verified=bool(report.get("room_count_verified")),
                    actual_room_count=report.get("actual_room_count"),
                    category_meets_standards=bool(report.get("category_meets_standards")),
                    mandatory_checklist=mandatory,
                    mandatory_remarks=report.get("mandatory_remarks"),
                    desirable_checklist=desirable,
                    desirable_remarks=report.get("desirable_remarks"),
                    overall_satisfactory=bool(report.get("overall_satisfactory")),
                    recommendation=recommendation.value,
                    detailed_findings=findings,
                    da_remarks=report.get("da_remarks"),
                    mandatory_compliance=compliance.mandatory_percentage,
                    desirable_compliance=compliance.desirable_percentage,
                    compliance_percentage=compliance.overall_percentage,
                )
            )
            order.status = "report_submitted"
            self.advance(
                app,
                actor,
                Action.SUBMIT_INSPECTION_REPORT,
                remarks=report.get("da_remarks"),
                details={
                    "report_id": str(saved.id),
                    "recommendation": recommendation.value,
                    "compliance_percentage": compliance.overall_percentage,
                    "failed_mandatory": compliance.failed_mandatory,
                },
                decision=decision,
            )
        return saved

    def inspection_report(self, actor: Actor, application_id) -> InspectionReport:
        app = self.get_application(actor, application_id)
        report = self.inspections.active_report(app.id)
        if report is None:
            raise NotFoundError(f"No inspection report for application {application_id}")
        return report

    def review_inspection_report(self, actor: Actor, application_id, action: Action, remarks: Optional[str] = None) -> HomestayApplication:
        """Decide on the inspection outcome: approve, reject or raise objections"""
        action = Action(action)
        with self._step(application_id, actor, action) as app:
            decision = self.authorize(app, actor, action)
            report = self.inspections.active_report(app.id)
            if report is None:
                raise ConflictError("No active inspection report to review")
            self.advance(app, actor, action, remarks=remarks, details={"report_id": str(report.id)}, decision=decision)
        return app

    # Payment completion

    def apply_payment_verified(self, app: HomestayApplication, actor: Actor, payment: Payment, remarks: Optional[str] = None) -> None:
        """Advance a locked application to approved and issue its certificate"""
        self.advance(
            app,
            actor,
            Action.PAYMENT_VERIFIED,
            remarks=remarks,
            details={"payment_id": str(payment.id), "gateway": payment.gateway, "amount": str(payment.verified_amount)},
        )
        now = utcnow()
        app.certificate_number = self.store.next_certificate_number(now.year)
        app.certificate_issued_at = now
        app.certificate_expires_at = add_years(now, app.validity_years)
        app.approved_at = now
        self.store.notify(
            app.owner_id,
            app.id,
            title="Registration certificate issued",
            message=f"Certificate {app.certificate_number} is valid until {app.certificate_expires_at.date().isoformat()}.",
            type="certificate",
        )
