"""Unit tests for the card and UPI payment adapters"""

import json
import pytest
import httpx
from decimal import Decimal
from unittest.mock import AsyncMock
from homestay_registry.domain.exceptions import ExternalGatewayError, ValidationError
from homestay_registry.domain.models import PaymentAttemptRef, PaymentRequest, PaymentStatus, ReconcileResult
from homestay_registry.infrastructure.clients.base import reconcile_with_retries
from homestay_registry.infrastructure.clients.manual_upi import ManualUpiGateway
from homestay_registry.infrastructure.clients.payu import PayUGateway, payment_hash, sha512
from homestay_registry.infrastructure.clients.razorpay import RazorpayGateway, to_paise
from homestay_registry.infrastructure.clients.registry import GatewayRegistry


@pytest.fixture
def payment_request() -> PaymentRequest:
    return PaymentRequest(
        reference="HPT1700000000000WXYZ",
        application_id="4b6f1c7e-0000-0000-0000-000000000002",
        application_number="HP-HS-2026-000002",
        amount=Decimal("3304.00"),
        payer_name="Asha Thakur",
        payer_mobile="9816000001",
    )


def test_to_paise():
    """Test rupee amounts convert to integer paise"""
    assert to_paise(Decimal("3304.00")) == 330400
    assert to_paise(Decimal("0.015")) == 2


async def test_razorpay_creates_order(payment_request: PaymentRequest):
    """Test initiation creates an order in paise keyed by the attempt reference"""
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        captured["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"id": "order_ABC", "status": "created"})

    gateway = RazorpayGateway(
        base_url="https://api.razorpay.com",
        key_id="rzp_test_key",
        key_secret="secret",
        transport=httpx.MockTransport(handler),
    )

    initiation = await gateway.initiate_payment(payment_request)

    assert initiation.external_ref == "order_ABC"
    assert initiation.form_fields["amount"] == 330400
    assert initiation.form_fields["key"] == "rzp_test_key"
    assert captured["body"]["receipt"] == payment_request.reference
    assert captured["auth"].startswith("Basic ")


@pytest.mark.parametrize(
    "order_status,expected",
    [
        ("created", PaymentStatus.INITIATED),
        ("attempted", PaymentStatus.PENDING_VERIFICATION),
        ("paid", PaymentStatus.VERIFIED),
    ],
)
async def test_razorpay_reconcile_maps_order_status(order_status: str, expected: PaymentStatus):
    """Test order statuses map onto attempt statuses"""
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, json={"id": "order_ABC", "status": order_status, "amount_paid": 330400})
    )
    gateway = RazorpayGateway(key_id="k", key_secret="s", transport=transport)

    result = await gateway.reconcile_payment(PaymentAttemptRef(external_ref="order_ABC", amount=Decimal("3304.00")))

    assert result.status == expected
    if expected == PaymentStatus.VERIFIED:
        assert result.verified_amount == Decimal("3304.00")


async def test_razorpay_server_error_is_gateway_error():
    """Test 5xx from the provider raises ExternalGatewayError"""
    gateway = RazorpayGateway(key_id="k", key_secret="s", transport=httpx.MockTransport(lambda r: httpx.Response(503)))

    with pytest.raises(ExternalGatewayError) as exc_info:
        await gateway.reconcile_payment(PaymentAttemptRef(external_ref="order_ABC", amount=Decimal("1")))
    assert exc_info.value.gateway == "razorpay"


async def test_razorpay_malformed_response():
    """Test an order response without an id is a gateway error"""
    gateway = RazorpayGateway(key_id="k", key_secret="s", transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))

    with pytest.raises(ExternalGatewayError):
        await gateway.reconcile_payment(PaymentAttemptRef(external_ref="order_ABC", amount=Decimal("1")))


async def test_payu_initiate_signs_form(payment_request: PaymentRequest):
    """Test the form hash covers the posted fields"""
    gateway = PayUGateway(merchant_key="PAYUKEY", salt="PAYUSALT")

    initiation = await gateway.initiate_payment(payment_request)

    fields = initiation.form_fields
    assert initiation.external_ref == payment_request.reference
    assert fields["amount"] == "3304.00"
    assert fields["hash"] == payment_hash("PAYUKEY", fields, "PAYUSALT")
    assert len(fields["hash"]) == 128


async def test_payu_reconcile_success():
    """Test a successful verify_payment response"""
    ref = "HPT1700000000000WXYZ"

    def handler(request: httpx.Request) -> httpx.Response:
        body = dict(httpx.QueryParams(request.content.decode()))
        assert body["hash"] == sha512(f"PAYUKEY|verify_payment|{ref}|PAYUSALT")
        return httpx.Response(
            200,
            json={"status": 1, "transaction_details": {ref: {"status": "success", "amt": "3304.00", "mihpayid": "403993715"}}},
        )

    gateway = PayUGateway(merchant_key="PAYUKEY", salt="PAYUSALT", transport=httpx.MockTransport(handler))

    result = await gateway.reconcile_payment(PaymentAttemptRef(external_ref=ref, amount=Decimal("3304.00")))

    assert result.status == PaymentStatus.VERIFIED
    assert result.verified_amount == Decimal("3304.00")
    assert result.gateway_data["mihpayid"] == "403993715"


async def test_payu_reconcile_failure():
    """Test a failed transaction maps to failed"""
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, json={"transaction_details": {"T1": {"status": "failure"}}})
    )
    gateway = PayUGateway(merchant_key="K", salt="S", transport=transport)

    result = await gateway.reconcile_payment(PaymentAttemptRef(external_ref="T1", amount=Decimal("10")))

    assert result.status == PaymentStatus.FAILED
    assert result.verified_amount is None


async def test_manual_upi_requires_transaction_id(payment_request: PaymentRequest):
    """Test short or missing UPI transaction ids are rejected"""
    gateway = ManualUpiGateway()
    payment_request.extra = {"transaction_id": "12345"}

    with pytest.raises(ValidationError) as exc_info:
        await gateway.initiate_payment(payment_request)
    assert exc_info.value.field == "transaction_id"


async def test_manual_upi_awaits_officer(payment_request: PaymentRequest):
    """Test a reported transfer waits for officer verification"""
    gateway = ManualUpiGateway()
    payment_request.extra = {"transaction_id": " 412345678901 "}

    initiation = await gateway.initiate_payment(payment_request)
    pending = await gateway.reconcile_payment(PaymentAttemptRef(external_ref="412345678901", amount=Decimal("3304.00")))
    verified = await gateway.reconcile_payment(
        PaymentAttemptRef(
            external_ref="412345678901",
            amount=Decimal("3304.00"),
            gateway_data={"officer_decision": "verified", "verified_amount": "3300.00"},
        )
    )

    assert initiation.external_ref == "412345678901"
    assert initiation.status == PaymentStatus.PENDING_VERIFICATION
    assert pending.status == PaymentStatus.PENDING_VERIFICATION
    assert verified.status == PaymentStatus.VERIFIED
    assert verified.verified_amount == Decimal("3300.00")


def test_registry_unknown_gateway():
    """Test unknown gateway names fail on the gateway field"""
    registry = GatewayRegistry([ManualUpiGateway()])

    with pytest.raises(ValidationError) as exc_info:
        registry.get("ccavenue")
    assert exc_info.value.field == "gateway"
    assert registry.names() == ["manual_upi"]


async def test_reconcile_with_retries_recovers():
    """Test transient failures are retried until the provider answers"""
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] < 3:
            return httpx.Response(502)
        return httpx.Response(200, json={"id": "order_ABC", "status": "paid", "amount_paid": 100})

    gateway = RazorpayGateway(key_id="k", key_secret="s", transport=httpx.MockTransport(handler))

    result = await reconcile_with_retries(
        gateway, PaymentAttemptRef(external_ref="order_ABC", amount=Decimal("1")), max_retries=3, backoff_base=0
    )

    assert result.status == PaymentStatus.VERIFIED
    assert calls["count"] == 3


async def test_reconcile_with_retries_gives_up():
    """Test the final failure propagates after max_retries attempts"""
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(500)

    gateway = RazorpayGateway(key_id="k", key_secret="s", transport=httpx.MockTransport(handler))

    with pytest.raises(ExternalGatewayError):
        await reconcile_with_retries(
            gateway, PaymentAttemptRef(external_ref="order_ABC", amount=Decimal("1")), max_retries=2, backoff_base=0
        )
    assert calls["count"] == 2


async def test_reconcile_with_retries_does_not_retry_validation_errors():
    """Test only gateway failures are retried"""
    gateway = AsyncMock()
    gateway.reconcile_payment.side_effect = ValidationError("Unknown external reference", field="external_ref")

    with pytest.raises(ValidationError):
        await reconcile_with_retries(gateway, PaymentAttemptRef(external_ref="x", amount=Decimal("1")), backoff_base=0)
    assert gateway.reconcile_payment.await_count == 1


async def test_reconcile_with_retries_returns_first_answer():
    """Test a provider answer is returned without further polling"""
    gateway = AsyncMock()
    gateway.reconcile_payment.side_effect = [
        ExternalGatewayError("timeout", gateway="payu"),
        ReconcileResult(external_ref="x", status=PaymentStatus.INITIATED),
    ]

    result = await reconcile_with_retries(
        gateway, PaymentAttemptRef(external_ref="x", amount=Decimal("1")), max_retries=5, backoff_base=0
    )

    assert result.status == PaymentStatus.INITIATED
    assert gateway.reconcile_payment.await_count == 2
