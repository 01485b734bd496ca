"""HimKosh (Himachal treasury e-challan) payment adapter"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Mapping, Optional

import httpx

from homestay_registry.config import settings
from homestay_registry.domain.exceptions import ExternalGatewayError, ValidationError
from homestay_registry.domain.models import (
    PaymentAttemptRef,
    PaymentInitiation,
    PaymentRequest,
    PaymentStatus,
    ReconcileResult,
)
from homestay_registry.infrastructure.clients.base import PaymentGateway
from homestay_registry.infrastructure.clients.himkosh_crypto import (
    RESPONSE_CHECKSUM_MARKER,
    HimKoshCrypto,
    build_request_string,
    build_verification_string,
    parse_pipe_string,
    parse_signed_response,
)
from homestay_registry.utils.date_utils import format_challan_date, month_period

SUCCESS_CODE = "1"


def whole_rupees(amount: Decimal) -> int:
    """The treasury rejects fractional amounts"""
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class HimKoshGateway(PaymentGateway):
    """
    Treasury e-challan gateway.

    Initiation is offline: the encrypted challan is handed to the payer's
    browser, which posts it to the treasury. The treasury posts the result
    back to the callback, and double verification asks it again
    server-to-server.
    """

    name = "himkosh"

    def __init__(
        self,
        crypto: Optional[HimKoshCrypto] = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.crypto = crypto or HimKoshCrypto(key_file_path=settings.himkosh_key_file_path)

    def _extra_heads(self):
        if settings.himkosh_secondary_head and settings.himkosh_secondary_head_amount:
            return [(settings.himkosh_secondary_head, settings.himkosh_secondary_head_amount)]
        return []

    async def initiate_payment(self, request: PaymentRequest, today: date | None = None) -> PaymentInitiation:
        amount = whole_rupees(request.amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", field="amount")

        period_from, period_to = month_period(today or date.today())
        ddo = request.ddo_code or settings.himkosh_ddo

        pipe_string = build_request_string(
            dept_id=settings.himkosh_dept_id,
            dept_ref_no=request.application_number,
            total_amount=amount,
            tender_by=request.payer_name,
            app_ref_no=request.reference,
            head1=settings.himkosh_head,
            amount1=amount,
            ddo=ddo,
            period_from=format_challan_date(period_from),
            period_to=format_challan_date(period_to),
            extra_heads=self._extra_heads(),
            service_code=settings.himkosh_service_code,
            return_url=settings.himkosh_return_url,
        )
        encdata = self.crypto.encrypt(pipe_string)

        return PaymentInitiation(
            external_ref=request.reference,
            status=PaymentStatus.INITIATED,
            amount=Decimal(amount),
            redirect_url=settings.himkosh_payment_url,
            # Exactly two fields are posted; the checksum travels inside encdata
            form_fields={"encdata": encdata, "merchant_code": settings.himkosh_merchant_code},
            gateway_data={
                "dept_ref_no": request.application_number,
                "ddo": ddo,
                "head1": settings.himkosh_head,
                "total_amount": amount,
                "period_from": format_challan_date(period_from),
                "period_to": format_challan_date(period_to),
            },
        )

    def parse_callback(self, payload: Mapping[str, Any]) -> ReconcileResult:
        encdata = payload.get("encdata")
        if not encdata:
            raise ValidationError("Missing payment response data", field="encdata")

        fields = parse_signed_response(self.crypto.decrypt(encdata))
        app_ref_no = fields.get("AppRefNo")
        if not app_ref_no:
            raise ValidationError("HimKosh response carries no AppRefNo", field="encdata")

        succeeded = fields.get("StatusCd") == SUCCESS_CODE
        gateway_data = {
            "ech_txn_id": fields.get("EchTxnId", ""),
            "bank_cin": fields.get("BankCIN", ""),
            "bank_name": fields.get("BankName") or fields.get("Bank", ""),
            "status": fields.get("Status", ""),
            "status_cd": fields.get("StatusCd", ""),
            "payment_date": fields.get("Payment_date", ""),
            "dept_ref_no": fields.get("DeptRefNo", ""),
        }
        if succeeded:
            gateway_data["challan_print_url"] = (
                f"{settings.himkosh_challan_print_url}?reportName=PaidChallan&TransId={gateway_data['ech_txn_id']}"
            )

        return ReconcileResult(
            external_ref=app_ref_no,
            status=PaymentStatus.VERIFIED if succeeded else PaymentStatus.FAILED,
            verified_amount=_amount(fields.get("Amount")) if succeeded else None,
            gateway_data=gateway_data,
        )

    def _verification_fields(self, text: str) -> Dict[str, str]:
        """Pipe-delimited verification answer; a signed one must match its checksum"""
        text = text.strip()
        if RESPONSE_CHECKSUM_MARKER not in text.lower():
            return parse_pipe_string(text)
        try:
            return parse_signed_response(text)
        except ValidationError as e:
            raise ExternalGatewayError(f"{self.name} verification response failed its checksum", gateway=self.name) from e

    async def reconcile_payment(self, attempt: PaymentAttemptRef) -> ReconcileResult:
        """Double verification against the treasury"""
        encdata = self.crypto.encrypt(
            build_verification_string(
                attempt.external_ref,
                settings.himkosh_service_code,
                settings.himkosh_merchant_code,
            )
        )
        response = await self._send(
            "verify",
            "POST",
            settings.himkosh_verification_url,
            data={"encdata": encdata},
        )
        fields = self._verification_fields(response.text)

        if fields.get("TXN_STAT") == SUCCESS_CODE:
            verified = _amount(fields.get("Amount")) or attempt.amount
            return ReconcileResult(
                external_ref=attempt.external_ref,
                status=PaymentStatus.VERIFIED,
                verified_amount=verified,
                gateway_data={"double_verification": fields},
            )

        # Unknown to the treasury or not yet settled: nothing has been confirmed
        return ReconcileResult(
            external_ref=attempt.external_ref,
            status=PaymentStatus.INITIATED,
            gateway_data={"double_verification": fields},
        )


def _amount(value: Optional[str]) -> Optional[Decimal]:
    if not value:
        return None
    try:
        return Decimal(value.strip())
    except InvalidOperation:
        return None
