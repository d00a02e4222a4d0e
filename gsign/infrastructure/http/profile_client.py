"""
============================================================
TARJETA CRC — infrastructure/http/profile_client.py
============================================================
Class: HttpProfileClient

Responsibilities:
  - Implementar ProfileProvider: GET /users/me con Authorization: Bearer.
  - Traducir red/timeout, non-2xx y payload inválido a
    SessionResolutionError (nunca propagar httpx crudo).
  - Aceptar el perfil directo o dentro de un sobre {status, data}.

Collaborators:
  - domain.services.ProfileProvider (contrato)
  - domain.entities.Session.from_payload
  - infrastructure.http.envelope.normalize_one
  - httpx.AsyncClient (compartido, inyectado)
============================================================
"""

from __future__ import annotations

import httpx

from ...crosscutting.exceptions import ApiEnvelopeError, SessionResolutionError
from ...crosscutting.logger import logger
from ...domain.entities import Session
from ...identity.credentials import credential_fingerprint
from .envelope import normalize_one


class HttpProfileClient:
    """
    Cliente del perfil del usuario autenticado.

    El AsyncClient se inyecta ya configurado con `base_url` y timeout; el
    ciclo de vida del client es de quien lo crea.
    """

    def __init__(self, client: httpx.AsyncClient, profile_path: str = "/users/me"):
        self._client = client
        self._path = profile_path

    async def fetch_session(self, credential: str) -> Session:
        headers = {"Accept": "application/json"}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"
        fp = credential_fingerprint(credential)

        try:
            response = await self._client.get(self._path, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning(
                "perfil: upstream inalcanzable",
                extra={"credential_fp": fp, "error": type(exc).__name__},
            )
            raise SessionResolutionError(
                "No se pudo contactar al backend", original_error=exc
            ) from exc

        if not response.is_success:
            logger.info(
                "perfil: respuesta no exitosa",
                extra={"credential_fp": fp, "status_code": response.status_code},
            )
            raise SessionResolutionError(
                f"El backend respondió {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = normalize_one(response.json())
            return Session.from_payload(payload)
        except ApiEnvelopeError as exc:
            raise SessionResolutionError(
                exc.message, status_code=exc.status, original_error=exc
            ) from exc
        except ValueError as exc:
            # JSON inválido o perfil sin id
            raise SessionResolutionError(
                "Perfil inválido", status_code=response.status_code, original_error=exc
            ) from exc
