"""Prometheus metrics for the HTTP layer and event distribution.

Exposed by the application at ``GET /metrics``.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator

from prometheus_client import Counter, Gauge, Histogram


# HTTP metrics
HTTP_REQUESTS_TOTAL = Counter(
    "product_service_http_requests_total",
    "Total number of HTTP requests",
    ["method", "path", "status"],
)
HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "product_service_http_request_duration_seconds",
    "Duration of HTTP requests",
    ["method", "path", "status"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)

# Catalog operation metrics
PRODUCT_OPERATIONS_TOTAL = Counter(
    "product_service_product_operations_total",
    "Total number of product operations",
    ["operation", "status"],
)
CATEGORY_OPERATIONS_TOTAL = Counter(
    "product_service_category_operations_total",
    "Total number of category operations",
    ["operation", "status"],
)

# Publisher metrics
EVENTS_PUBLISHED_TOTAL = Counter(
    "product_service_events_published_total",
    "Total publish attempts by event kind",
    ["kind", "result"],  # ok | error | disabled
)

# Consumer metrics
EVENTS_CONSUMED_TOTAL = Counter(
    "product_service_events_consumed_total",
    "Total messages handled by the consumer",
    ["kind", "status"],  # handled | unknown | poison | requeued | dropped
)
CONSUMER_PROCESS_LATENCY_SECONDS = Histogram(
    "product_service_consumer_process_latency_seconds",
    "Time to process a single message",
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1, 2),
)
QUEUE_DEPTH = Gauge(
    "product_service_queue_depth", "Messages ready in the product event queue", ["queue"]
)


def _status_label(success: bool) -> str:
    return "success" if success else "error"


def record_product_operation(operation: str, success: bool) -> None:
    PRODUCT_OPERATIONS_TOTAL.labels(operation=operation, status=_status_label(success)).inc()


def record_category_operation(operation: str, success: bool) -> None:
    CATEGORY_OPERATIONS_TOTAL.labels(operation=operation, status=_status_label(success)).inc()


@contextmanager
def track_operation(recorder: Callable[[str, bool], None], operation: str) -> Iterator[None]:
    """Record ``operation`` as success or error depending on whether the block raised."""
    try:
        yield
    except Exception:
        recorder(operation, False)
        raise
    recorder(operation, True)
