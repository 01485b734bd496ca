"""Prometheus metrics for monitoring workflow throughput and payment gateway health"""

from prometheus_client import Counter, Histogram

# Workflow metrics
transition_counter = Counter(
    "homestay_transition_total",
    "Workflow actions attempted on applications",
    ["action", "outcome"],  # outcome: applied | invalid | forbidden | validation | conflict
)

applications_created_counter = Counter(
    "homestay_applications_created_total",
    "Applications created",
)

# Payment metrics
payment_attempt_counter = Counter(
    "homestay_payment_attempts_total",
    "Payment attempts by gateway and resulting status",
    ["gateway", "status"],
)

gateway_latency_histogram = Histogram(
    "homestay_gateway_latency_seconds",
    "Payment gateway call latency",
    ["gateway", "operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

gateway_failure_counter = Counter(
    "homestay_gateway_failures_total",
    "Failed payment gateway calls",
    ["gateway", "operation"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(action: str, outcome: str) -> None:
    transition_counter.labels(action=action, outcome=outcome).inc()


def record_payment_attempt(gateway: str, status: str) -> None:
    payment_attempt_counter.labels(gateway=gateway, status=status).inc()
