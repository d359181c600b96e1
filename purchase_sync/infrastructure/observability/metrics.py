"""Prometheus metrics for monitoring sync cycles, upstream crawling and persistence"""

from prometheus_client import Counter, Histogram

# Sync metrics
sync_run_counter = Counter(
    "purchase_sync_runs_total",
    "Sync cycles finished",
    ["outcome"],  # done | failed | cancelled
)

customers_persisted_counter = Counter(
    "purchase_sync_customers_persisted_total",
    "Categorized order documents written",
)

persistence_failure_counter = Counter(
    "purchase_sync_persistence_failures_total",
    "Categorized order documents that failed to save",
)

# Upstream API metrics
shop_page_latency_histogram = Histogram(
    "shop_page_latency_seconds",
    "Upstream page fetch latency",
    ["resource"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

shop_api_failure_counter = Counter(
    "shop_api_failures_total",
    "Failed upstream API calls",
    ["resource"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_sync(outcome: str, persisted: int = 0, failed: int = 0) -> None:
    """Record the outcome of a sync cycle"""
    sync_run_counter.labels(outcome=outcome).inc()
    if persisted:
        customers_persisted_counter.inc(persisted)
    if failed:
        persistence_failure_counter.inc(failed)
