"""Payment gateway interface and shared HTTP plumbing"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

import httpx

from homestay_registry.config import settings
from homestay_registry.domain.exceptions import ExternalGatewayError, ValidationError
from homestay_registry.domain.models import (
    PaymentAttemptRef,
    PaymentInitiation,
    PaymentRequest,
    ReconcileResult,
)
from homestay_registry.infrastructure.observability.metrics import (
    gateway_failure_counter,
    gateway_latency_histogram,
)


class PaymentGateway(ABC):
    """
    One payment provider.

    The payment service only ever talks to this interface; which adapter is
    used is decided by the gateway name the payer picked.
    """

    name: str = ""

    def __init__(self, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout or settings.gateway_timeout_seconds
        self.transport = transport

    @abstractmethod
    async def initiate_payment(self, request: PaymentRequest) -> PaymentInitiation:
        """Start collecting money; returns a redirect URL or form fields for the payer"""

    @abstractmethod
    async def reconcile_payment(self, attempt: PaymentAttemptRef) -> ReconcileResult:
        """Ask the provider for the status of an attempt. Must be safe to repeat."""

    def parse_callback(self, payload: Mapping[str, Any]) -> ReconcileResult:
        raise ValidationError(f"Gateway {self.name} does not accept callbacks", field="gateway")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _send(self, operation: str, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Perform one HTTP call against the provider.

        Raises:
            ExternalGatewayError: On timeout, transport failure or non-2xx status
        """
        async with self._client() as client:
            try:
                with gateway_latency_histogram.labels(gateway=self.name, operation=operation).time():
                    response = await client.request(method, url, **kwargs)
                    response.raise_for_status()
                    return response

            except httpx.TimeoutException as e:
                gateway_failure_counter.labels(gateway=self.name, operation=operation).inc()
                raise ExternalGatewayError(f"{self.name} {operation} timeout after {self.timeout}s", gateway=self.name) from e
            except httpx.HTTPStatusError as e:
                gateway_failure_counter.labels(gateway=self.name, operation=operation).inc()
                raise ExternalGatewayError(f"{self.name} {operation} error: {e.response.status_code}", gateway=self.name) from e
            except httpx.RequestError as e:
                gateway_failure_counter.labels(gateway=self.name, operation=operation).inc()
                raise ExternalGatewayError(f"{self.name} {operation} unreachable: {e}", gateway=self.name) from e


async def reconcile_with_retries(
    gateway: PaymentGateway,
    attempt: PaymentAttemptRef,
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
) -> ReconcileResult:
    """
    Poll a gateway for an attempt's status with retry logic.

    Only reconciliation is retried: it is idempotent by external reference.
    Initiation and workflow transitions are never retried automatically.

    Retry strategy:
    - Exponential backoff: base, 2x base, 4x base ...
    - Retries on ExternalGatewayError (timeouts, 5xx, network failures)
    """
    max_retries = max_retries if max_retries is not None else settings.reconcile_max_retries
    backoff_base = backoff_base if backoff_base is not None else settings.reconcile_backoff_base

    attempt_no = 0
    while True:
        try:
            return await gateway.reconcile_payment(attempt)
        except ExternalGatewayError as e:
            attempt_no += 1
            if attempt_no >= max_retries:
                # Final failure after all retries
                raise

            backoff = backoff_base * (2 ** (attempt_no - 1))
            logging.warning(
                f"Reconcile attempt {attempt_no} failed, retrying in {backoff}s: {e}",
                extra={"gateway": gateway.name, "external_ref": attempt.external_ref},
            )
            await asyncio.sleep(backoff)
