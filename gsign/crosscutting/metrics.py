"""
===============================================================================
ARCHIVO: crosscutting/metrics.py
===============================================================================

CRC CARD (Módulo)
-------------------------------------------------------------------------------
Nombre:
    Métricas (Prometheus) del portal

Responsabilidades:
    - Definir métricas Prometheus sobre un registry propio.
    - Proveer funciones pequeñas y estables para registrar eventos/duraciones.
    - Cuidar cardinalidad (NO credenciales, NO user_id, NO IDs dinámicos).
    - Exponer helpers para generar la respuesta /metrics.

Colaboradores:
    - crosscutting.middleware: latencia y conteo HTTP.
    - api.proxy: latencia y status del upstream.
    - identity.session_resolver: resultado de cada fetch de perfil.
    - realtime.channel_manager: transiciones de estado y eventos descartados.
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
# HTTP (BFF)
# ------------------------
_requests_total = Counter(
    "gsign_requests_total",
    "Total de requests HTTP",
    ["endpoint", "method", "status"],
    registry=_registry,
)

_request_latency = Histogram(
    "gsign_request_latency_seconds",
    "Latencia de requests HTTP (segundos)",
    ["endpoint", "method"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=_registry,
)

# ------------------------
# Proxy upstream
# ------------------------
_proxy_upstream_total = Counter(
    "gsign_proxy_upstream_total",
    "Respuestas del upstream por status agrupado",
    ["status"],
    registry=_registry,
)

_proxy_upstream_latency = Histogram(
    "gsign_proxy_upstream_latency_seconds",
    "Latencia hasta headers del upstream (segundos)",
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=_registry,
)

# ------------------------
# Sesión
# ------------------------
_session_fetch_total = Counter(
    "gsign_session_fetch_total",
    "Resultados del fetch de perfil",
    ["outcome"],
    registry=_registry,
)

# ------------------------
# Canal realtime
# ------------------------
_realtime_transitions_total = Counter(
    "gsign_realtime_transitions_total",
    "Transiciones de estado del canal realtime",
    ["state"],
    registry=_registry,
)

_realtime_stale_events_total = Counter(
    "gsign_realtime_stale_events_total",
    "Eventos descartados por pertenecer a una credencial vieja",
    registry=_registry,
)


# -----------------------------------------------------------------------------
# API pública (helpers de registro)
# -----------------------------------------------------------------------------


def record_request_metrics(
    endpoint: str,
    method: str,
    status_code: int,
    latency_seconds: float,
) -> None:
    """Registra métricas HTTP.

    - endpoint se normaliza para no explotar cardinalidad.
    - status se agrupa por 2xx/3xx/4xx/5xx.
    """
    normalized = _normalize_endpoint(endpoint)
    _requests_total.labels(
        endpoint=normalized,
        method=method,
        status=_status_bucket(status_code),
    ).inc()
    _request_latency.labels(endpoint=normalized, method=method).observe(
        latency_seconds
    )


def record_proxy_upstream(status_code: int, latency_seconds: float) -> None:
    _proxy_upstream_total.labels(status=_status_bucket(status_code)).inc()
    _proxy_upstream_latency.observe(latency_seconds)


def record_proxy_failure() -> None:
    """Cuenta upstreams inalcanzables (se responde 502)."""
    _proxy_upstream_total.labels(status="unreachable").inc()


def record_session_fetch(outcome: str) -> None:
    """outcome: resolved | error | discarded."""
    _session_fetch_total.labels(outcome=outcome).inc()


def record_realtime_transition(state: str) -> None:
    _realtime_transitions_total.labels(state=state).inc()


def record_realtime_stale_event(count: int = 1) -> None:
    _realtime_stale_events_total.inc(count)


# -----------------------------------------------------------------------------
# Helpers internos
# -----------------------------------------------------------------------------


def _normalize_endpoint(path: str) -> str:
    """Normaliza paths para evitar cardinalidad alta.

    Reemplaza UUIDs e IDs numéricos por `{id}`.
    """
    path = re.sub(
        r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
        "{id}",
        path,
        flags=re.IGNORECASE,
    )
    path = re.sub(r"/\d+(?=/|$)", "/{id}", path)
    return path


def _status_bucket(code: int) -> str:
    """Agrupa status code para baja cardinalidad."""
    if 200 <= code < 300:
        return "2xx"
    if 300 <= code < 400:
        return "3xx"
    if 400 <= code < 500:
        return "4xx"
    if 500 <= code < 600:
        return "5xx"
    return "other"


# -----------------------------------------------------------------------------
# Exposición del endpoint /metrics
# -----------------------------------------------------------------------------


def get_metrics_response() -> tuple[bytes, str]:
    """Genera el body y content-type para /metrics."""
    return generate_latest(_registry), CONTENT_TYPE_LATEST
