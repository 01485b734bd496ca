"""Payment attempts: initiation, reconciliation and officer verification"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from homestay_registry.config import settings
from homestay_registry.domain.exceptions import (
    AuthorizationError,
    ConflictError,
    DomainException,
    ValidationError,
)
from homestay_registry.domain.identifiers import generate_payment_reference
from homestay_registry.domain.models import (
    Action,
    Actor,
    PaymentAttemptRef,
    PaymentInitiation,
    PaymentOutcome,
    PaymentRequest,
    PaymentStatus,
    ReconcileResult,
    Role,
    SYSTEM_ACTOR,
)
from homestay_registry.domain.workflow import can_transition
from homestay_registry.infrastructure.clients.base import reconcile_with_retries
from homestay_registry.infrastructure.clients.manual_upi import ManualUpiGateway
from homestay_registry.infrastructure.clients.registry import GatewayRegistry
from homestay_registry.infrastructure.database.models import HomestayApplication, Payment
from homestay_registry.infrastructure.database.repositories import (
    ApplicationStore,
    DdoRepository,
    PaymentRepository,
    SettingsRepository,
)
from homestay_registry.infrastructure.observability.logging import log_payment_event
from homestay_registry.infrastructure.observability.metrics import record_payment_attempt
from homestay_registry.services.orchestrator import ReviewOrchestrator, check_scope
from homestay_registry.utils.date_utils import utcnow

TERMINAL_PAYMENT_STATUSES = frozenset({PaymentStatus.VERIFIED.value, PaymentStatus.FAILED.value})

# Closed by us rather than by the provider; a late confirmation still counts
CLOSED_SUPERSEDED = "superseded"
CLOSED_EXPIRED = "expired"
REOPENABLE_REASONS = frozenset({CLOSED_SUPERSEDED, CLOSED_EXPIRED})

# Officers who may turn down a held payment
PAYMENT_REVIEW_ROLES = frozenset({Role.DTDO, Role.DISTRICT_OFFICER, Role.STATE_OFFICER})

TEST_MODE_AMOUNT = Decimal("1.00")


def payment_outcome(status: str) -> PaymentOutcome:
    """What the payer is told about an attempt"""
    if status == PaymentStatus.VERIFIED.value:
        return PaymentOutcome.CONFIRMED
    if status == PaymentStatus.PENDING_VERIFICATION.value:
        return PaymentOutcome.AWAITING_CONFIRMATION
    return PaymentOutcome.NOT_COMPLETED


def is_reopenable(payment: Payment) -> bool:
    """Failed because we superseded or expired it, and the provider knows it"""
    return (
        payment.status == PaymentStatus.FAILED.value
        and payment.closed_reason in REOPENABLE_REASONS
        and bool(payment.external_ref)
    )


class PaymentService:
    """
    Drives payment attempts through the gateway adapters.

    Gateway calls happen outside the application lock. Attempt rows are
    written under the lock, so the one-pending-or-verified invariant holds
    across concurrent initiations and callbacks. Async entry points wait for
    the lock on a worker thread, never on the event loop.
    """

    def __init__(
        self,
        db: Session,
        gateways: GatewayRegistry,
        store: Optional[ApplicationStore] = None,
        request_id: Optional[str] = None,
    ):
        self.db = db
        self.gateways = gateways
        self.store = store or ApplicationStore(db)
        self.payments = PaymentRepository(db)
        self.workflow = ReviewOrchestrator(db, store=self.store, request_id=request_id)
        self.request_id = request_id

    def _log(self, payment: Payment, event: str) -> None:
        record_payment_attempt(payment.gateway, payment.status)
        log_payment_event(
            self.request_id,
            str(payment.application_id),
            str(payment.id),
            payment.gateway,
            event,
            payment.status,
            str(payment.amount),
        )

    def _fail(self, payment: Payment, reason: str, now: datetime, closed: Optional[str] = None) -> None:
        payment.status = PaymentStatus.FAILED.value
        payment.failure_reason = reason
        payment.closed_reason = closed
        payment.completed_at = now

    def _hold(self, payment: Payment, reason: str) -> None:
        payment.status = PaymentStatus.PENDING_VERIFICATION.value
        payment.failure_reason = reason
        payment.completed_at = None

    def _sweep(self, application_id, now: datetime) -> int:
        stale = self.payments.stale_attempts(now, settings.payment_attempt_ttl_minutes, application_id)
        for payment in stale:
            self._fail(payment, "Expired without completion", now, closed=CLOSED_EXPIRED)
        return len(stale)

    async def initiate(
        self,
        actor: Actor,
        application_id,
        gateway_name: str,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> Payment:
        """
        Start a new attempt for an application awaiting payment.

        Raises:
            ConflictError: Another attempt is awaiting confirmation or verified
            ExternalGatewayError: Provider refused or was unreachable; the
                attempt is recorded as failed and the application keeps
                waiting for payment
        """
        gateway = self.gateways.get(gateway_name)
        payment, request = await run_in_threadpool(self._open_attempt, actor, application_id, gateway.name, extra)

        try:
            initiation = await gateway.initiate_payment(request)
        except DomainException as e:
            await run_in_threadpool(self._record_initiation_failure, application_id, payment, str(e))
            self._log(payment, "initiation_failed")
            logging.error(f"Payment initiation failed: {e}", extra={"request_id": self.request_id})
            raise

        await run_in_threadpool(self._record_initiation, application_id, payment, initiation)
        self._log(payment, "initiated")
        return payment

    def _open_attempt(
        self,
        actor: Actor,
        application_id,
        gateway_name: str,
        extra: Optional[Mapping[str, Any]],
    ) -> Tuple[Payment, PaymentRequest]:
        now = utcnow()
        with self.store.transaction(application_id) as app:
            self.workflow.advance(app, actor, Action.INITIATE_PAYMENT, details={"gateway": gateway_name})
            self._sweep(app.id, now)
            if self.payments.blocking_attempt(app.id) is not None:
                raise ConflictError("A payment for this application is already awaiting confirmation or verified")
            if app.total_fee is None:
                raise ValidationError("Fee has not been calculated for this application", field="total_fee")

            for previous in self.payments.open_attempts(app.id):
                self._fail(previous, "Superseded by a newer attempt", now, closed=CLOSED_SUPERSEDED)

            test_mode = SettingsRepository(self.db).is_enabled("payment_test_mode")
            amount = TEST_MODE_AMOUNT if test_mode else Decimal(app.total_fee)
            payment = self.payments.create(
                application_id=app.id,
                gateway=gateway_name,
                reference=generate_payment_reference(),
                amount=amount,
                status=PaymentStatus.INITIATED.value,
                initiated_at=now,
                gateway_data={"test_mode": test_mode, "fee_amount": str(app.total_fee)},
            )
            request = PaymentRequest(
                reference=payment.reference,
                application_id=str(app.id),
                application_number=app.application_number,
                amount=amount,
                payer_name=app.owner_name,
                payer_mobile=app.owner_mobile,
                payer_email=app.owner_email,
                district=app.district,
                ddo_code=DdoRepository(self.db).code_for_district(app.district),
                extra=dict(extra or {}),
            )
        return payment, request

    def _record_initiation_failure(self, application_id, payment: Payment, reason: str) -> None:
        with self.store.transaction(application_id):
            self.payments.refresh(payment)
            self._fail(payment, reason, utcnow())

    def _record_initiation(self, application_id, payment: Payment, initiation: PaymentInitiation) -> None:
        with self.store.transaction(application_id):
            self.payments.refresh(payment)
            if payment.status != PaymentStatus.INITIATED.value:
                raise ConflictError("Payment attempt was superseded by a newer one; refresh and retry")
            if initiation.status == PaymentStatus.PENDING_VERIFICATION and self.payments.blocking_attempt(application_id):
                raise ConflictError("A payment for this application is already awaiting confirmation")

            payment.external_ref = initiation.external_ref
            payment.status = initiation.status.value
            if initiation.amount is not None:
                payment.amount = initiation.amount
            payment.redirect_url = initiation.redirect_url
            payment.gateway_data = {
                **(payment.gateway_data or {}),
                **initiation.gateway_data,
                "form_fields": initiation.form_fields,
            }

    def _check_access(self, actor: Actor, payment: Payment) -> HomestayApplication:
        app = self.store.get(payment.application_id)
        check_scope(app, actor)
        return app

    def get(self, actor: Actor, payment_id) -> Payment:
        payment = self.payments.get(payment_id)
        self._check_access(actor, payment)
        return payment

    def for_application(self, actor: Actor, application_id):
        self.workflow.get_application(actor, application_id)
        return self.payments.for_application(application_id)

    async def reconcile(self, actor: Actor, payment_id) -> Payment:
        """
        Ask the provider for the attempt's status and apply it.

        Idempotent: settled attempts are returned as stored, and a verified
        result advances the application exactly once. Attempts we closed
        ourselves (superseded or expired) are still asked, since the payer
        may have completed them at the provider afterwards.
        """
        payment = self.payments.get(payment_id)
        self._check_access(actor, payment)
        if not payment.external_ref:
            return payment
        if payment.status in TERMINAL_PAYMENT_STATUSES and not is_reopenable(payment):
            return payment

        gateway = self.gateways.get(payment.gateway)
        result = await reconcile_with_retries(
            gateway,
            PaymentAttemptRef(
                external_ref=payment.external_ref,
                amount=Decimal(payment.amount),
                gateway_data=dict(payment.gateway_data or {}),
            ),
        )
        reconciling_actor = actor if Role(actor.role) != Role.OWNER else SYSTEM_ACTOR
        return await run_in_threadpool(self.apply_result, payment, result, reconciling_actor)

    def handle_callback(self, gateway_name: str, payload: Mapping[str, Any]) -> Payment:
        """Provider-pushed result, e.g. the treasury redirect after payment"""
        gateway = self.gateways.get(gateway_name)
        result = gateway.parse_callback(payload)
        payment = self.payments.get_by_external_ref(result.external_ref)
        if payment is None or payment.gateway != gateway.name:
            raise ValidationError(f"Unknown transaction {result.external_ref}", field="encdata")
        return self.apply_result(payment, result, SYSTEM_ACTOR)

    def apply_result(self, payment: Payment, result: ReconcileResult, actor: Actor, remarks: Optional[str] = None) -> Payment:
        """
        Record a provider result on the attempt under the application lock.

        A verified result on a superseded or expired attempt settles the
        application when it is still awaiting payment and no other attempt
        is pending or verified. Otherwise the money is held for an officer.
        """
        now = utcnow()
        event = "reconciled"
        with self.store.transaction(payment.application_id) as app:
            self.payments.refresh(payment)
            late = is_reopenable(payment)
            if payment.status in TERMINAL_PAYMENT_STATUSES and not late:
                return payment
            if late and result.status != PaymentStatus.VERIFIED:
                return payment

            payment.gateway_data = {**(payment.gateway_data or {}), **result.gateway_data}

            if result.status == PaymentStatus.VERIFIED:
                reported = result.verified_amount if result.verified_amount is not None else Decimal(payment.amount)
                if Decimal(reported) != Decimal(payment.amount):
                    # Money may have moved; hold for an officer instead of failing
                    self._hold(payment, f"Amount mismatch: expected {payment.amount}, provider reported {reported}")
                    event = "amount_mismatch"
                elif late and not self._can_settle(app, payment):
                    self._hold(payment, "Payment received on a closed attempt; officer review required")
                    event = "late_payment_held"
                else:
                    payment.status = PaymentStatus.VERIFIED.value
                    payment.verified_amount = reported
                    payment.failure_reason = None
                    payment.completed_at = now
                    for other in self.payments.open_attempts(app.id):
                        self._fail(other, "Application already paid", now)
                    self.workflow.apply_payment_verified(app, actor, payment, remarks=remarks)
                    event = "late_payment_verified" if late else "verified"
            elif result.status == PaymentStatus.FAILED:
                reason = result.gateway_data.get("failure_reason") or payment.gateway_data.get("status")
                self._fail(payment, reason or "Declined by payment provider", now)
                event = "failed"
            elif result.status == PaymentStatus.PENDING_VERIFICATION:
                payment.status = PaymentStatus.PENDING_VERIFICATION.value

        self._log(payment, event)
        return payment

    def _can_settle(self, app: HomestayApplication, payment: Payment) -> bool:
        if not can_transition(app.status, Action.PAYMENT_VERIFIED, Role.SYSTEM).allowed:
            return False
        blocking = self.payments.blocking_attempt(app.id)
        return blocking is None or blocking.id == payment.id

    async def officer_verify(
        self,
        actor: Actor,
        payment_id,
        decision: str,
        verified_amount: Optional[Decimal] = None,
        remarks: Optional[str] = None,
    ) -> Payment:
        """
        Officer confirms or rejects an attempt awaiting verification.

        Manual UPI transfers always land here. Provider attempts land here
        when held, e.g. on an amount mismatch or a late payment; rejecting
        one frees the application for a new attempt.
        """
        if decision not in ("verified", "rejected"):
            raise ValidationError("Decision must be verified or rejected", field="decision")

        payment = self.payments.get(payment_id)
        recorded = await run_in_threadpool(
            self._record_officer_decision, actor, payment, decision, verified_amount, remarks
        )
        if not recorded:
            return payment

        if payment.gateway == ManualUpiGateway.name:
            gateway = self.gateways.get(payment.gateway)
            result = await gateway.reconcile_payment(
                PaymentAttemptRef(
                    external_ref=payment.external_ref,
                    amount=Decimal(payment.amount),
                    gateway_data=dict(payment.gateway_data),
                )
            )
        elif decision == "verified":
            result = ReconcileResult(
                external_ref=payment.external_ref,
                status=PaymentStatus.VERIFIED,
                verified_amount=verified_amount if verified_amount is not None else Decimal(payment.amount),
            )
        else:
            result = ReconcileResult(
                external_ref=payment.external_ref,
                status=PaymentStatus.FAILED,
                gateway_data={"failure_reason": "Rejected by officer"},
            )
        return await run_in_threadpool(self.apply_result, payment, result, actor, remarks)

    def _record_officer_decision(
        self,
        actor: Actor,
        payment: Payment,
        decision: str,
        verified_amount: Optional[Decimal],
        remarks: Optional[str],
    ) -> bool:
        """Store who decided what on the attempt; False when already settled"""
        with self.store.transaction(payment.application_id) as app:
            role = Role(actor.role)
            if role == Role.SYSTEM:
                raise AuthorizationError("Manual verification needs an officer")
            if decision == "verified":
                self.workflow.authorize(app, actor, Action.PAYMENT_VERIFIED)
            else:
                check_scope(app, actor)
                if role not in PAYMENT_REVIEW_ROLES:
                    raise AuthorizationError(f"Role '{role.value}' may not reject payments")

            self.payments.refresh(payment)
            if payment.status in TERMINAL_PAYMENT_STATUSES:
                return False
            if payment.gateway != ManualUpiGateway.name and payment.status != PaymentStatus.PENDING_VERIFICATION.value:
                raise ConflictError("Only attempts held for verification can be decided by an officer")

            data: Dict[str, Any] = dict(payment.gateway_data or {})
            data.update(
                {
                    "officer_decision": decision,
                    "officer_id": str(actor.id),
                    "officer_remarks": remarks,
                    "decided_at": utcnow().isoformat(),
                }
            )
            if verified_amount is not None:
                data["verified_amount"] = str(verified_amount)
            payment.gateway_data = data
        return True

    def expire_stale(self, now: Optional[datetime] = None) -> int:
        """Fail initiated attempts older than the TTL; the application keeps waiting for payment"""
        now = now or utcnow()
        expired = 0
        application_ids = {p.application_id for p in self.payments.stale_attempts(now, settings.payment_attempt_ttl_minutes)}
        for application_id in application_ids:
            with self.store.transaction(application_id):
                expired += self._sweep(application_id, now)
        logging.info("Expired stale payment attempts", extra={"request_id": self.request_id, "expired": expired})
        return expired
