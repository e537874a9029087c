"""
Prometheus collectors for compression passes.
Registered in the global REGISTRY on import; expose with start_http_server().
"""

from prometheus_client import Counter, Gauge, Histogram

ITEMS_TOTAL = Counter(
    "tiny_batch_items_total",
    "Items that reached a terminal outcome",
    ["mode", "outcome"],
)

ATTEMPTS_TOTAL = Counter(
    "tiny_batch_attempts_total",
    "Individual transform attempts (including retries)",
    ["outcome"],
)

TRANSFORM_LATENCY_MS = Histogram(
    "tiny_batch_transform_latency_ms",
    "Adapter call latency in milliseconds",
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000],
)

WORKERS = Gauge(
    "tiny_batch_workers",
    "Workers spawned for the current pass",
    ["mode"],
)

QUARANTINE_ITEMS = Gauge(
    "tiny_batch_quarantine_items",
    "Files currently held in the quarantine directory",
)
