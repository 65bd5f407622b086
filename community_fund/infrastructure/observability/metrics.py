"""Prometheus metrics for loan activity, repayments, contributions and write conflicts"""

from decimal import Decimal

from prometheus_client import Counter, Histogram

# Loan lifecycle metrics
loan_transition_counter = Counter(
    "community_loan_transitions_total",
    "Loan status transitions",
    ["to_status"],  # approved | rejected | disbursed | completed
)

# Repayment metrics
repayment_counter = Counter(
    "community_repayments_total",
    "Repayments recorded",
    ["payment_type"],  # principal | interest | combined
)

repayment_amount_histogram = Histogram(
    "community_repayment_amount",
    "Repayment amounts",
    buckets=[100, 500, 1_000, 2_500, 5_000, 10_000, 25_000, 50_000, 100_000],
)

# Contribution metrics
contribution_event_counter = Counter(
    "community_contribution_events_total",
    "Contribution ledger events",
    ["event"],  # created | self_reported | confirmed
)

# Concurrency metrics
concurrency_conflict_counter = Counter(
    "community_concurrency_conflicts_total",
    "Optimistic-lock conflicts on entity writes",
    ["operation"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_loan_transition(to_status: str) -> None:
    loan_transition_counter.labels(to_status=to_status).inc()


def observe_repayment(payment_type: str, amount: Decimal) -> None:
    """Count the repayment and track the amount distribution"""
    repayment_counter.labels(payment_type=payment_type).inc()
    repayment_amount_histogram.observe(float(amount))


def record_contribution_event(event: str) -> None:
    contribution_event_counter.labels(event=event).inc()


def record_conflict(operation: str) -> None:
    concurrency_conflict_counter.labels(operation=operation).inc()
