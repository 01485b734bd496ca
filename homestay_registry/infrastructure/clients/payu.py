"""PayU hosted checkout adapter"""

import hashlib
from decimal import Decimal, InvalidOperation

import httpx

from homestay_registry.config import settings
from homestay_registry.domain.exceptions import ExternalGatewayError
from homestay_registry.domain.models import (
    PaymentAttemptRef,
    PaymentInitiation,
    PaymentRequest,
    PaymentStatus,
    ReconcileResult,
)
from homestay_registry.infrastructure.clients.base import PaymentGateway

TRANSACTION_STATUS_MAP = {
    "success": PaymentStatus.VERIFIED,
    "failure": PaymentStatus.FAILED,
    "failed": PaymentStatus.FAILED,
    "pending": PaymentStatus.PENDING_VERIFICATION,
}


def sha512(value: str) -> str:
    return hashlib.sha512(value.encode("utf-8")).hexdigest()


def payment_hash(key: str, fields: dict, salt: str) -> str:
    """key|txnid|amount|productinfo|firstname|email|udf1..udf5||||||salt"""
    sequence = [
        key,
        fields["txnid"],
        fields["amount"],
        fields["productinfo"],
        fields["firstname"],
        fields["email"],
        fields.get("udf1", ""),
        fields.get("udf2", ""),
        fields.get("udf3", ""),
        fields.get("udf4", ""),
        fields.get("udf5", ""),
        "",
        "",
        "",
        "",
        "",
        salt,
    ]
    return sha512("|".join(sequence))


class PayUGateway(PaymentGateway):
    """Card/netbanking aggregator posting a signed form to PayU"""

    name = "payu"

    def __init__(
        self,
        merchant_key: str | None = None,
        salt: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.merchant_key = merchant_key if merchant_key is not None else settings.payu_merchant_key
        self.salt = salt if salt is not None else settings.payu_salt

    async def initiate_payment(self, request: PaymentRequest) -> PaymentInitiation:
        fields = {
            "key": self.merchant_key,
            "txnid": request.reference,
            "amount": f"{Decimal(request.amount):.2f}",
            "productinfo": f"Homestay registration {request.application_number}",
            "firstname": request.payer_name,
            "email": request.payer_email or "",
            "phone": request.payer_mobile or "",
            "surl": settings.payu_success_url,
            "furl": settings.payu_failure_url,
            "udf1": request.application_id,
        }
        fields["hash"] = payment_hash(self.merchant_key, fields, self.salt)

        return PaymentInitiation(
            external_ref=request.reference,
            status=PaymentStatus.INITIATED,
            redirect_url=settings.payu_payment_url,
            form_fields=fields,
        )

    async def reconcile_payment(self, attempt: PaymentAttemptRef) -> ReconcileResult:
        command = "verify_payment"
        response = await self._send(
            "verify_payment",
            "POST",
            settings.payu_verify_url,
            data={
                "key": self.merchant_key,
                "command": command,
                "var1": attempt.external_ref,
                "hash": sha512(f"{self.merchant_key}|{command}|{attempt.external_ref}|{self.salt}"),
            },
        )
        try:
            body = response.json()
            details = body.get("transaction_details", {}).get(attempt.external_ref) or {}
        except (ValueError, AttributeError) as e:
            raise ExternalGatewayError(f"Invalid verify response from payu: {e}", gateway=self.name) from e

        txn_status = str(details.get("status", "")).lower()
        status = TRANSACTION_STATUS_MAP.get(txn_status, PaymentStatus.INITIATED)

        verified_amount = None
        if status == PaymentStatus.VERIFIED:
            try:
                verified_amount = Decimal(str(details.get("amt") or details.get("transaction_amount")))
            except InvalidOperation:
                verified_amount = None

        return ReconcileResult(
            external_ref=attempt.external_ref,
            status=status,
            verified_amount=verified_amount,
            gateway_data={"payu_status": txn_status, "mihpayid": details.get("mihpayid")},
        )
