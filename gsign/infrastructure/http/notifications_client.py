"""
============================================================
TARJETA CRC — infrastructure/http/notifications_client.py
============================================================
Class: HttpNotificationsClient

Responsibilities:
  - Implementar NotificationsGateway sobre el backend REST.
  - GET  /documents/cuadro-firmas/notificaciones/{userId}
  - PATCH /documents/cuadro-firmas/notificaciones/leer {userId, notificationId}
  - Adaptar registros con nombres variables a Notification.

Collaborators:
  - domain.services.NotificationsGateway (contrato)
  - domain.entities.notifications_from_payload
  - infrastructure.http.envelope.normalize_list
  - httpx.AsyncClient
============================================================
"""

from __future__ import annotations

from typing import Callable

import httpx

from ...crosscutting.exceptions import GSignError
from ...crosscutting.logger import logger
from ...domain.entities import Notification, notifications_from_payload
from .envelope import normalize_list

_BASE_PATH = "/documents/cuadro-firmas/notificaciones"


class NotificationsClientError(GSignError):
    error_code: str = "NOTIFICATIONS_ERROR"


class HttpNotificationsClient:
    """
    `credential` es un callable para leer SIEMPRE el valor vigente del
    CredentialStore (no una copia capturada al construir).
    """

    def __init__(self, client: httpx.AsyncClient, credential: Callable[[], str]):
        self._client = client
        self._credential = credential

    def _headers(self) -> dict[str, str]:
        token = self._credential()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(
                method, url, headers=self._headers(), **kwargs
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.info(
                "notificaciones: respuesta no exitosa",
                extra={"status_code": status, "method": method},
            )
            raise NotificationsClientError(
                f"El backend respondió {status}", original_error=exc
            ) from exc
        except httpx.HTTPError as exc:
            raise NotificationsClientError(
                "No se pudo contactar al backend", original_error=exc
            ) from exc
        return response

    async def list_for_user(self, user_id: int) -> list[Notification]:
        response = await self._request("GET", f"{_BASE_PATH}/{user_id}")
        try:
            raw = normalize_list(response.json())
        except ValueError as exc:
            raise NotificationsClientError(
                "Respuesta de notificaciones inválida", original_error=exc
            ) from exc
        return notifications_from_payload(raw)

    async def mark_read(self, user_id: int, notification_id: int) -> None:
        await self._request(
            "PATCH",
            f"{_BASE_PATH}/leer",
            json={"userId": user_id, "notificationId": notification_id},
        )
