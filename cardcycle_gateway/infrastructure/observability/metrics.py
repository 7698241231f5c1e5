"""Prometheus metrics for monitoring cycle recomputation and aggregator health"""

from prometheus_client import Counter, Histogram

# Recompute metrics
recompute_counter = Counter(
    "cardcycle_recompute_total",
    "Billing cycle recomputations",
    ["trigger", "outcome"],  # outcome: ok | validation | upstream_fetch | data_integrity
)

cycle_writes_counter = Counter(
    "cardcycle_cycle_writes_total",
    "Billing cycle rows written by repair",
    ["action"],  # inserted | updated | deleted
)

repair_duration_histogram = Histogram(
    "cardcycle_repair_duration_seconds",
    "Time spent repairing one account's cycles",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

# Aggregator metrics
aggregator_latency_histogram = Histogram(
    "aggregator_request_latency_seconds",
    "Aggregator API response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

aggregator_fetch_failures_counter = Counter(
    "aggregator_fetch_failures_total",
    "Failed aggregator API calls",
    ["institution"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_repair(inserted: int, updated: int, deleted: int) -> None:
    """Count cycle rows touched by one repair"""
    for action, count in (("inserted", inserted), ("updated", updated), ("deleted", deleted)):
        if count:
            cycle_writes_counter.labels(action=action).inc(count)


def record_recompute(trigger: str, outcome: str) -> None:
    recompute_counter.labels(trigger=trigger, outcome=outcome).inc()
