"""Manual UPI transfer verified by an officer"""

from decimal import Decimal

from homestay_registry.config import settings
from homestay_registry.domain.exceptions import ValidationError
from homestay_registry.domain.models import (
    PaymentAttemptRef,
    PaymentInitiation,
    PaymentRequest,
    PaymentStatus,
    ReconcileResult,
)
from homestay_registry.infrastructure.clients.base import PaymentGateway

MIN_TRANSACTION_ID_LENGTH = 10

OFFICER_DECISIONS = {
    "verified": PaymentStatus.VERIFIED,
    "rejected": PaymentStatus.FAILED,
}


class ManualUpiGateway(PaymentGateway):
    """
    The owner pays the department UPI id out of band and reports the
    transaction id. Nothing is called over the network: reconciliation
    reports whatever decision an officer has recorded on the attempt.
    """

    name = "manual_upi"

    async def initiate_payment(self, request: PaymentRequest) -> PaymentInitiation:
        transaction_id = str(request.extra.get("transaction_id") or "").strip()
        if len(transaction_id) < MIN_TRANSACTION_ID_LENGTH:
            raise ValidationError(
                f"UPI transaction id must be at least {MIN_TRANSACTION_ID_LENGTH} characters",
                field="transaction_id",
            )

        return PaymentInitiation(
            external_ref=transaction_id,
            status=PaymentStatus.PENDING_VERIFICATION,
            form_fields={"upi_id": settings.manual_upi_id},
            gateway_data={
                "upi_id": settings.manual_upi_id,
                "upi_transaction_id": transaction_id,
                "payer_name": request.payer_name,
            },
        )

    async def reconcile_payment(self, attempt: PaymentAttemptRef) -> ReconcileResult:
        decision = attempt.gateway_data.get("officer_decision")
        status = OFFICER_DECISIONS.get(decision, PaymentStatus.PENDING_VERIFICATION)

        verified_amount = None
        if status == PaymentStatus.VERIFIED:
            recorded = attempt.gateway_data.get("verified_amount")
            verified_amount = Decimal(str(recorded)) if recorded is not None else attempt.amount

        return ReconcileResult(
            external_ref=attempt.external_ref,
            status=status,
            verified_amount=verified_amount,
        )
