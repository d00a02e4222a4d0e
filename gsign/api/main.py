"""
Name: FastAPI Application Entry Point (BFF)

Responsibilities:
  - Build the FastAPI application that fronts the upstream REST backend
  - Own the shared httpx.AsyncClient (created/closed in the lifespan)
  - Configure middleware (CORS, request context)
  - Mount the proxy router under the configured prefix
  - Expose health check and metrics endpoints

Collaborators:
  - FastAPI: ASGI web framework
  - CORSMiddleware: Cross-Origin Resource Sharing handler
  - RequestContextMiddleware: Request ID and logging context
  - routes.build_router: proxy endpoints (cookie variants, role pages, catch-all)

Notes:
  - Middleware order matters: RequestContext → CORS → routes
  - /healthz and /metrics are registered before the catch-all so they win
  - CORS allows credentials: the access token travels in an HTTP-only cookie
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from ..crosscutting.config import Settings, get_settings
from ..crosscutting.logger import logger
from ..crosscutting.metrics import get_metrics_response
from ..crosscutting.middleware import REQUEST_ID_HEADER, RequestContextMiddleware
from .exception_handlers import register_exception_handlers
from .routes import PROXY_METHODS, build_router


def create_app(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Construye la app.

    Args:
        settings: Settings explícitos (default: get_settings()).
        transport: transporte httpx alternativo (tests: httpx.MockTransport).
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown lifecycle. Opens and closes the upstream client."""
        app.state.http_client = httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=settings.http_timeout_seconds,
            follow_redirects=False,
            transport=transport,
        )
        logger.info(
            "GSign portal starting up",
            extra={
                "api_base_url": settings.api_base_url,
                "proxy_prefix": settings.proxy_prefix or "/",
                "app_env": settings.app_env,
            },
        )
        try:
            yield
        finally:
            await app.state.http_client.aclose()
            logger.info("GSign portal shutting down")

    app = FastAPI(title="GSign Portal", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=PROXY_METHODS + ["OPTIONS"],
        allow_headers=["Content-Type", "Authorization", REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestContextMiddleware)

    register_exception_handlers(app)

    @app.get("/healthz", include_in_schema=False)
    def healthz(request: Request):
        return {
            "ok": True,
            "request_id": getattr(request.state, "request_id", None),
        }

    @app.get("/metrics", include_in_schema=False)
    def metrics():
        content, content_type = get_metrics_response()
        return Response(content=content, media_type=content_type)

    app.include_router(build_router(settings))
    return app


app = create_app()
