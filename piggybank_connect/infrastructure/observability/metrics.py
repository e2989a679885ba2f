"""Prometheus metrics for account operations, money movement and processor health"""

from prometheus_client import Counter, Histogram

# Operation metrics
operation_counter = Counter(
    "piggybank_operation_total",
    "Connected-account operations handled",
    ["operation", "outcome"],  # outcome: ok | <error kind>
)

domain_error_counter = Counter(
    "piggybank_domain_errors_total",
    "Errors returned to callers by kind",
    ["kind"],
)

# Money movement
topup_amount_counter = Counter(
    "piggybank_topup_cents_total",
    "Cents moved from payable to issuing balance",
)

payout_amount_counter = Counter(
    "piggybank_payout_cents_total",
    "Cents requested for payout to external bank accounts",
)

# Processor API metrics
processor_latency_histogram = Histogram(
    "processor_request_seconds",
    "Payment processor response time",
    ["endpoint"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

processor_failure_counter = Counter(
    "processor_failures_total",
    "Failed payment processor calls",
    ["endpoint"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_operation(operation: str, outcome: str) -> None:
    """Count an operation outcome; failures also feed the per-kind error counter"""
    operation_counter.labels(operation=operation, outcome=outcome).inc()
    if outcome != "ok":
        domain_error_counter.labels(kind=outcome).inc()
