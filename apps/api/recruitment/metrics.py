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

authz_decisions_total = Counter(
    "authz_decisions_total",
    "Authorization decisions by outcome and evaluation mode",
    ["outcome", "mode"],
)

authz_permission_cache_hit_total = Counter(
    "authz_permission_cache_hit_total",
    "Role-permission cache hits",
)

authz_permission_cache_miss_total = Counter(
    "authz_permission_cache_miss_total",
    "Role-permission cache misses (absent or expired)",
)

authz_permission_cache_eviction_total = Counter(
    "authz_permission_cache_eviction_total",
    "Role-permission cache evictions by reason",
    ["reason"],
)

authz_permission_cache_invalidation_total = Counter(
    "authz_permission_cache_invalidation_total",
    "Role-permission cache invalidations by scope",
    ["scope"],
)

authz_db_queries_total = Counter(
    "authz_db_queries_total",
    "Authorization role store query count",
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return path_format
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return route_path
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_authz_decision(outcome: str, mode: str) -> None:
    authz_decisions_total.labels(outcome=outcome, mode=mode).inc()


def observe_permission_cache_hit() -> None:
    authz_permission_cache_hit_total.inc()


def observe_permission_cache_miss() -> None:
    authz_permission_cache_miss_total.inc()


def observe_permission_cache_eviction(reason: str) -> None:
    authz_permission_cache_eviction_total.labels(reason=reason).inc()


def observe_permission_cache_invalidation(scope: str) -> None:
    authz_permission_cache_invalidation_total.labels(scope=scope).inc()


def observe_authz_db_queries_count(count: int = 1) -> None:
    if count > 0:
        authz_db_queries_total.inc(count)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
