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

crud_adapter_operations_total = Counter(
    "crud_adapter_operations_total",
    "Total adapter operations by outcome",
    ["entity_type", "operation", "status"],
)

crud_adapter_operation_duration_seconds = Histogram(
    "crud_adapter_operation_duration_seconds",
    "Adapter operation duration in seconds",
    ["entity_type", "operation"],
)

crud_reference_fallbacks_total = Counter(
    "crud_reference_fallbacks_total",
    "Reference data loads that fell back to static defaults",
    ["entity_type"],
)

crud_bulk_failures_total = Counter(
    "crud_bulk_failures_total",
    "Total failed items in bulk operations",
    ["entity_type"],
)

crud_realtime_events_total = Counter(
    "crud_realtime_events_total",
    "Real-time change notifications received",
    ["entity_type", "kind"],
)

crud_realtime_refresh_total = Counter(
    "crud_realtime_refresh_total",
    "Debounced refreshes fired by the real-time channel",
    ["entity_type"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    if path == "/api/crud/{entity_type}/bulk-delete":
        return path
    return _PATH_PARAM_RE.sub("{id}", path).replace("/api/crud/{id}", "/api/crud/{entity_type}", 1)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_adapter_operation(entity_type: str, operation: str, success: bool, duration: float) -> None:
    status = "success" if success else "failure"
    crud_adapter_operations_total.labels(entity_type=entity_type, operation=operation, status=status).inc()
    crud_adapter_operation_duration_seconds.labels(entity_type=entity_type, operation=operation).observe(duration)


def observe_reference_fallback(entity_type: str) -> None:
    crud_reference_fallbacks_total.labels(entity_type=entity_type).inc()


def observe_bulk_failures(entity_type: str, count: int) -> None:
    if count > 0:
        crud_bulk_failures_total.labels(entity_type=entity_type).inc(count)


def observe_realtime_event(entity_type: str, kind: str) -> None:
    crud_realtime_events_total.labels(entity_type=entity_type, kind=kind).inc()


def observe_realtime_refresh(entity_type: str) -> None:
    crud_realtime_refresh_total.labels(entity_type=entity_type).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
