"""Razorpay orders API adapter"""

from decimal import Decimal, ROUND_HALF_UP

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

# Razorpay order status -> attempt status
ORDER_STATUS_MAP = {
    "created": PaymentStatus.INITIATED,
    "attempted": PaymentStatus.PENDING_VERIFICATION,
    "paid": PaymentStatus.VERIFIED,
}


def to_paise(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RazorpayGateway(PaymentGateway):
    """Card/UPI aggregator; the browser completes checkout against the created order"""

    name = "razorpay"

    def __init__(
        self,
        base_url: str | None = None,
        key_id: str | None = None,
        key_secret: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.base_url = (base_url or settings.razorpay_base_url).rstrip("/")
        self.key_id = key_id if key_id is not None else settings.razorpay_key_id
        self.key_secret = key_secret if key_secret is not None else settings.razorpay_key_secret

    @property
    def _auth(self):
        return (self.key_id, self.key_secret)

    async def initiate_payment(self, request: PaymentRequest) -> PaymentInitiation:
        amount_paise = to_paise(request.amount)
        response = await self._send(
            "create_order",
            "POST",
            f"{self.base_url}/v1/orders",
            auth=self._auth,
            json={
                "amount": amount_paise,
                "currency": "INR",
                "receipt": request.reference,
                "notes": {
                    "application_id": request.application_id,
                    "application_number": request.application_number,
                },
            },
        )
        try:
            order = response.json()
            order_id = order["id"]
        except (KeyError, ValueError, TypeError) as e:
            raise ExternalGatewayError(f"Invalid order response from razorpay: {e}", gateway=self.name) from e

        return PaymentInitiation(
            external_ref=order_id,
            status=PaymentStatus.INITIATED,
            form_fields={
                "key": self.key_id,
                "order_id": order_id,
                "amount": amount_paise,
                "currency": "INR",
                "name": "Homestay Registration",
                "description": f"Registration fee for {request.application_number}",
                "prefill": {
                    "name": request.payer_name,
                    "email": request.payer_email or "",
                    "contact": request.payer_mobile or "",
                },
            },
            gateway_data={"receipt": request.reference, "order_status": order.get("status")},
        )

    async def reconcile_payment(self, attempt: PaymentAttemptRef) -> ReconcileResult:
        response = await self._send(
            "fetch_order",
            "GET",
            f"{self.base_url}/v1/orders/{attempt.external_ref}",
            auth=self._auth,
        )
        try:
            order = response.json()
            order_status = order["status"]
        except (KeyError, ValueError, TypeError) as e:
            raise ExternalGatewayError(f"Invalid order response from razorpay: {e}", gateway=self.name) from e

        status = ORDER_STATUS_MAP.get(order_status, PaymentStatus.INITIATED)
        verified_amount = None
        if status == PaymentStatus.VERIFIED:
            verified_amount = (Decimal(order.get("amount_paid", 0)) / 100).quantize(Decimal("0.01"))

        return ReconcileResult(
            external_ref=attempt.external_ref,
            status=status,
            verified_amount=verified_amount,
            gateway_data={"order_status": order_status},
        )
