"""
===============================================================================
TARJETA CRC — crosscutting/metrics.py (Prometheus)
===============================================================================

Responsabilidades:
    - Contadores e histogramas de la capa de acceso en un registry propio
      (no se mezclan con los default collectors del proceso).
    - Un helper record_*() por evento; los labels son de baja cardinalidad:
      nunca user_id, email, IP ni keys de rate limit.
    - Serializar el registry para GET /metrics.

Colaboradores:
    - crosscutting.middleware (HTTP), application.rate_limiting (decisiones),
      identity.resolver (cache), identity.guards (denegaciones),
      audit / crosscutting.tasks (escrituras y tareas no críticas).
===============================================================================
"""

from __future__ import annotations

import re

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_registry = CollectorRegistry()

# ------------------------
# HTTP
# ------------------------
_requests_total = Counter(
    "eccb_requests_total",
    "Total de requests HTTP",
    ["endpoint", "method", "status"],
    registry=_registry,
)

_request_latency = Histogram(
    "eccb_request_latency_seconds",
    "Latencia de requests HTTP (segundos)",
    ["endpoint", "method"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=_registry,
)

# ------------------------
# Acceso
# ------------------------
_rate_limit_decisions_total = Counter(
    "eccb_rate_limit_decisions_total",
    "Decisiones del rate limiter",
    ["outcome"],
    registry=_registry,
)

_permission_cache_total = Counter(
    "eccb_permission_cache_total",
    "Lookups en la cache de permisos/roles",
    ["kind", "result"],
    registry=_registry,
)

_access_denied_total = Counter(
    "eccb_access_denied_total",
    "Requests denegados por la capa de guards",
    ["reason"],
    registry=_registry,
)

# ------------------------
# Auditoría / tareas no críticas
# ------------------------
_audit_entries_total = Counter(
    "eccb_audit_entries_total",
    "Entradas de auditoría procesadas",
    ["status"],
    registry=_registry,
)

_noncritical_task_failures_total = Counter(
    "eccb_noncritical_task_failures_total",
    "Tareas no críticas que terminaron con error",
    ["task"],
    registry=_registry,
)


_ID_SEGMENTS = (
    re.compile(
        r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
    ),
    re.compile(r"(?<=/)c[a-z0-9]{20,}"),
    re.compile(r"(?<=/)\d+(?=/|$)"),
)


def _endpoint_label(path: str) -> str:
    """/admin/audit/logs/<uuid> -> /admin/audit/logs/{id} (también cuids y enteros)."""
    for pattern in _ID_SEGMENTS:
        path = pattern.sub("{id}", path)
    return path


def _status_class(code: int) -> str:
    return f"{code // 100}xx" if 200 <= code < 600 else "other"


def record_request_metrics(
    endpoint: str,
    method: str,
    status_code: int,
    latency_seconds: float,
) -> None:
    label = _endpoint_label(endpoint)
    _requests_total.labels(
        endpoint=label, method=method, status=_status_class(status_code)
    ).inc()
    _request_latency.labels(endpoint=label, method=method).observe(latency_seconds)


def record_rate_limit_decision(outcome: str) -> None:
    """outcome: allowed | denied | fail_open"""
    _rate_limit_decisions_total.labels(outcome=outcome).inc()


def record_permission_cache(kind: str, result: str) -> None:
    """kind: permissions | roles; result: hit | miss | error"""
    _permission_cache_total.labels(kind=kind, result=result).inc()


def record_access_denied(reason: str) -> None:
    """reason: unauthorized | forbidden | rate_limited"""
    _access_denied_total.labels(reason=reason).inc()


def record_audit_entry(status: str) -> None:
    _audit_entries_total.labels(status=status).inc()


def record_noncritical_task_failure(task: str) -> None:
    _noncritical_task_failures_total.labels(task=task).inc()


def get_metrics_response() -> tuple[bytes, str]:
    """(body, content_type) listos para la respuesta de /metrics."""
    return generate_latest(_registry), CONTENT_TYPE_LATEST
