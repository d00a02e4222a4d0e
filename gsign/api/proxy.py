"""
===============================================================================
TARJETA CRC — gsign/api/proxy.py (Reverse proxy genérico hacia el backend)
===============================================================================

Responsabilidades:
  - Reenviar método, headers y body del caller al upstream configurado.
  - Quitar `host`, `content-length` y headers hop-by-hop; body omitido en
    GET/HEAD.
  - Devolver status, headers (incluidos múltiples set-cookie) y body del
    upstream sin modificar, en streaming.
  - NO seguir redirects: se exponen al caller.
  - Variante con credencial derivada de la cookie HTTP-only.

Colaboradores:
  - httpx.AsyncClient (compartido, creado en el lifespan de la app)
  - identity.credentials (fingerprint para logs)
  - crosscutting.metrics (latencia/status upstream)
  - crosscutting.exceptions.ProxyError (-> 502)
===============================================================================
"""

from __future__ import annotations

import time

import httpx
from fastapi import Request
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

from ..crosscutting.exceptions import ProxyError
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_proxy_failure, record_proxy_upstream

BODYLESS_METHODS = frozenset({"GET", "HEAD"})

# Hop-by-hop (RFC 9110 §7.6.1): describen la conexión, no el mensaje.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)
_DROPPED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}


def build_upstream_headers(
    raw_headers: list[tuple[bytes, bytes]], credential: str | None = None
) -> list[tuple[bytes, bytes]]:
    """Headers del caller listos para el upstream (duplicados preservados)."""
    headers = [
        (name, value)
        for name, value in raw_headers
        if name.decode("latin-1").lower() not in _DROPPED_REQUEST_HEADERS
    ]
    if credential:
        headers = [(n, v) for n, v in headers if n.lower() != b"authorization"]
        headers.append((b"authorization", f"Bearer {credential}".encode("latin-1")))
    return headers


def build_downstream_headers(
    raw_headers: list[tuple[bytes, bytes]],
) -> list[tuple[bytes, bytes]]:
    return [
        (name.lower(), value)
        for name, value in raw_headers
        if name.decode("latin-1").lower() not in HOP_BY_HOP_HEADERS
    ]


async def forward(
    request: Request,
    client: httpx.AsyncClient,
    upstream_path: str,
    *,
    credential: str | None = None,
) -> StreamingResponse:
    """
    Reenvía `request` a `upstream_path` (relativo al base_url del client).

    Raises:
        ProxyError: si el upstream no responde (conexión/timeout).
    """
    method = request.method.upper()
    url = upstream_path
    if request.url.query:
        url = f"{upstream_path}?{request.url.query}"

    body = None if method in BODYLESS_METHODS else await request.body()
    upstream_request = client.build_request(
        method,
        url,
        headers=build_upstream_headers(request.headers.raw, credential),
        content=body,
    )

    start = time.perf_counter()
    try:
        upstream = await client.send(
            upstream_request, stream=True, follow_redirects=False
        )
    except httpx.HTTPError as exc:
        record_proxy_failure()
        logger.warning(
            "proxy: upstream inalcanzable",
            extra={"upstream_path": upstream_path, "error": type(exc).__name__},
        )
        raise ProxyError("El backend no respondió", original_error=exc) from exc

    latency = time.perf_counter() - start
    record_proxy_upstream(upstream.status_code, latency)
    logger.debug(
        "proxy: respuesta upstream",
        extra={
            "upstream_path": upstream_path,
            "upstream_status": upstream.status_code,
            "latency_ms": round(latency * 1000, 2),
        },
    )

    response = StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    response.raw_headers = build_downstream_headers(upstream.headers.raw)
    return response
