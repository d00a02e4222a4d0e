# gsign/crosscutting/exceptions.py
"""
===============================================================================
MÓDULO: Excepciones tipadas del portal (errores internos)
===============================================================================

Objetivo
--------
Tener excepciones internas coherentes, con:
- error_code estable
- error_id para correlación con logs
- message “humana” (sin filtrar credenciales)

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  GSignError + subclases

Responsabilidades:
  - Estandarizar errores internos que luego se mapean a HTTP o a estados
  - Generar error_id para rastreo

Colaboradores:
  - api/exception_handlers.py (mapea a AppHTTPException)
  - identity/session_resolver.py (SessionResolutionError -> status "error")
===============================================================================
"""

from __future__ import annotations

from uuid import uuid4


class GSignError(Exception):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      GSignError

    Responsabilidades:
      - Base para errores internos del portal
      - Proveer error_code + error_id + message

    Colaboradores:
      - api/exception_handlers.py
    ----------------------------------------------------------------------------
    """

    error_code: str = "GSIGN_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)


class SessionResolutionError(GSignError):
    """Falla al obtener el perfil (/users/me): red, 4xx o 5xx."""

    error_code: str = "SESSION_RESOLUTION_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, error_id=error_id, original_error=original_error)
        self.status_code = status_code


class RealtimeChannelError(GSignError):
    """Envío sobre un canal que no está conectado con la credencial vigente."""

    error_code: str = "REALTIME_CHANNEL_ERROR"


class ProxyError(GSignError):
    """El upstream del proxy no respondió (conexión, timeout)."""

    error_code: str = "PROXY_ERROR"


class ApiEnvelopeError(GSignError):
    """Sobre {status, data} del backend con status de negocio >= 400."""

    error_code: str = "API_ENVELOPE_ERROR"

    def __init__(self, message: str, status: int, payload: object = None):
        super().__init__(message)
        self.status = status
        self.payload = payload
