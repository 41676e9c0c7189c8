from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

subscription_operations_total = Counter(
    "subscription_operations_total",
    "Subscription service operations by outcome",
    ["operation", "outcome"],
)

subscription_total_cost_duration_seconds = Histogram(
    "subscription_total_cost_duration_seconds",
    "Total cost aggregation duration in seconds",
)


_INT_RE = re.compile(r"/\d+\b")


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return path_format
    return _INT_RE.sub("/{id}", request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_subscription_operation(operation: str, outcome: str) -> None:
    subscription_operations_total.labels(operation=operation, outcome=outcome).inc()


def observe_total_cost_duration(duration: float) -> None:
    subscription_total_cost_duration_seconds.observe(duration)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
