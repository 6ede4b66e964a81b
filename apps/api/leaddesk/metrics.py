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

fls_denied_fields_count = Counter(
    "fls_denied_fields_count",
    "Total FLS-denied fields",
    ["resource", "operation"],
)

rls_denied_reads_count = Counter(
    "rls_denied_reads_count",
    "Total denied reads by RLS",
    ["resource", "scope_type"],
)

rls_denied_writes_count = Counter(
    "rls_denied_writes_count",
    "Total denied writes by RLS",
    ["resource", "scope_type"],
)

authz_denied_total = Counter(
    "authz_denied_total",
    "Total role-gate denials by resource and reason",
    ["resource", "reason"],
)

lead_mutations_total = Counter(
    "lead_mutations_total",
    "Total accepted lead mutations by operation",
    ["operation"],
)

dashboard_aggregation_duration_seconds = Histogram(
    "dashboard_aggregation_duration_seconds",
    "Dashboard aggregation duration in seconds",
    ["report"],
)

dashboard_cache_hits_total = Counter(
    "dashboard_cache_hits_total",
    "Dashboard aggregate cache hits",
    ["report"],
)

dashboard_cache_misses_total = Counter(
    "dashboard_cache_misses_total",
    "Dashboard aggregate cache misses",
    ["report"],
)

dashboard_cache_invalidations_total = Counter(
    "dashboard_cache_invalidations_total",
    "Dashboard aggregate cache invalidations by collection",
    ["collection"],
)


_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    return _INT_RE.sub("/{id}", path)


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


def observe_fls_field_counts(resource: str, operation: str, denied_count: int) -> None:
    if denied_count > 0:
        fls_denied_fields_count.labels(resource=resource, operation=operation).inc(denied_count)


def observe_rls_denied_read(resource: str, scope_type: str) -> None:
    rls_denied_reads_count.labels(resource=resource, scope_type=scope_type).inc()


def observe_rls_denied_write(resource: str, scope_type: str) -> None:
    rls_denied_writes_count.labels(resource=resource, scope_type=scope_type).inc()


def observe_authz_denied(resource: str, reason: str) -> None:
    authz_denied_total.labels(resource=resource, reason=reason).inc()


def observe_lead_mutation(operation: str) -> None:
    lead_mutations_total.labels(operation=operation).inc()


def observe_dashboard_aggregation(report: str, duration: float) -> None:
    dashboard_aggregation_duration_seconds.labels(report=report).observe(duration)


def observe_dashboard_cache(report: str, hit: bool) -> None:
    if hit:
        dashboard_cache_hits_total.labels(report=report).inc()
    else:
        dashboard_cache_misses_total.labels(report=report).inc()


def observe_dashboard_cache_invalidation(collection: str) -> None:
    dashboard_cache_invalidations_total.labels(collection=collection).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
