"""
===============================================================================
TARJETA CRC — gsign/api/exception_handlers.py (Manejo Centralizado de Excepciones)
===============================================================================

Responsabilidades:
  - Traducir excepciones del portal a respuestas HTTP RFC7807.
  - Centralizar logging de errores con request_id + error_id.
  - Evitar filtrar detalles internos en errores no controlados.

Colaboradores:
  - crosscutting.error_responses: AppHTTPException, ErrorCode, app_exception_handler
  - crosscutting.exceptions: GSignError y derivadas (ProxyError)
  - Settings de la app (app.state.settings; get_settings si la app no los tiene)
===============================================================================
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from ..crosscutting.config import get_settings
from ..crosscutting.error_responses import (
    AppHTTPException,
    ErrorCode,
    app_exception_handler,
)
from ..crosscutting.exceptions import GSignError, ProxyError
from ..crosscutting.logger import logger


def _request_id_from(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


async def _handle_portal_error(
    request: Request,
    *,
    exc: GSignError,
    code: ErrorCode,
    status_code: int,
) -> JSONResponse:
    request_id = _request_id_from(request)

    logger.error(
        "Error del portal",
        extra={
            "code": code.value,
            "error_code": exc.error_code,
            "error_id": exc.error_id,
            "request_id": request_id,
        },
    )

    app_exc = AppHTTPException(
        status_code=status_code,
        code=code,
        detail=exc.message,
        errors=[{"error_id": exc.error_id}],
    )
    return await app_exception_handler(request, app_exc)


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    return await _handle_portal_error(
        request, exc=exc, code=ErrorCode.BAD_GATEWAY, status_code=502
    )


async def portal_error_handler(request: Request, exc: GSignError) -> JSONResponse:
    return await _handle_portal_error(
        request, exc=exc, code=ErrorCode.INTERNAL_ERROR, status_code=500
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler para excepciones no tipadas.

    - Log completo (stacktrace).
    - Respuesta genérica en producción.
    """
    request_id = _request_id_from(request)

    logger.error(
        "Excepción no controlada",
        exc_info=True,
        extra={"request_id": request_id},
    )

    settings = getattr(request.app.state, "settings", None) or get_settings()
    detail = "Error interno." if settings.is_production() else str(exc)
    app_exc = AppHTTPException(
        status_code=500, code=ErrorCode.INTERNAL_ERROR, detail=detail
    )
    return await app_exception_handler(request, app_exc)


def register_exception_handlers(app) -> None:
    """
    Registra handlers en la app FastAPI.

    Importante:
      - AppHTTPException debe registrarse para respetar RFC7807.
      - Exception genérica se registra al final como fallback.
    """
    app.add_exception_handler(ProxyError, proxy_error_handler)
    app.add_exception_handler(GSignError, portal_error_handler)
    app.add_exception_handler(AppHTTPException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = ["register_exception_handlers"]
