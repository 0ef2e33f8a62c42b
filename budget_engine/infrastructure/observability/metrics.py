"""Prometheus metrics for conversions, cache efficiency and mutation outcomes"""

from prometheus_client import Counter, Histogram

# Conversion service metrics
conversion_requests_counter = Counter(
    "budget_conversion_requests_total",
    "Bulk conversion calls",
    ["outcome"],  # ok | failed | malformed
)

conversion_items_counter = Counter(
    "budget_conversion_items_total",
    "Amounts sent for conversion",
)

conversion_latency_histogram = Histogram(
    "budget_conversion_latency_seconds",
    "Conversion service response time",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

missing_conversion_counter = Counter(
    "budget_missing_conversion_total",
    "Records left out of a total because their converted amount is missing",
    ["entity_type"],
)

# Query cache metrics
cache_lookup_counter = Counter(
    "budget_cache_lookups_total",
    "Query cache lookups",
    ["result"],  # hit | miss
)

# Mutation metrics
mutation_counter = Counter(
    "budget_mutations_total",
    "Optimistic create/update outcomes",
    ["entity_type", "operation", "outcome"],  # confirmed | rolled_back
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_conversion(outcome: str, item_count: int) -> None:
    """Record one bulk conversion call and the number of amounts it carried"""
    conversion_requests_counter.labels(outcome=outcome).inc()
    conversion_items_counter.inc(item_count)


def record_mutation(entity_type: str, operation: str, confirmed: bool) -> None:
    """Record the settled outcome of an optimistic mutation"""
    outcome = "confirmed" if confirmed else "rolled_back"
    mutation_counter.labels(entity_type=entity_type, operation=operation, outcome=outcome).inc()
