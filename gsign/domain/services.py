"""
===============================================================================
TARJETA CRC — domain/services.py
===============================================================================

Módulo:
    Puertos de Servicios Externos (Protocols)

Responsabilidades:
    - Definir contratos para el backend REST (perfil, notificaciones).
    - Definir contratos del transporte realtime (sesión duplex por credencial).
    - Mantener identity/ y realtime/ independientes de httpx/websockets.

Colaboradores:
    - infrastructure/http/*: implementaciones HTTP.
    - infrastructure/realtime/*: implementación websockets.
    - tests/: fakes deterministas.

Reglas:
    - SOLO interfaces: nada de implementación.
===============================================================================
"""

from __future__ import annotations

from typing import Any, Protocol

from .entities import Notification, Session


class ProfileProvider(Protocol):
    """Contrato del fetch de perfil (GET /users/me)."""

    async def fetch_session(self, credential: str) -> Session:
        """Raises SessionResolutionError ante red/4xx/5xx/payload inválido."""
        ...


class NotificationsGateway(Protocol):
    """Contrato del recurso de notificaciones del backend."""

    async def list_for_user(self, user_id: int) -> list[Notification]: ...

    async def mark_read(self, user_id: int, notification_id: int) -> None: ...


class TransportListener(Protocol):
    """Callbacks que el transporte invoca sobre UNA sesión concreta."""

    def on_open(self) -> None: ...

    def on_event(self, event: str, payload: Any) -> None: ...

    def on_reconnecting(self, error: BaseException | None) -> None:
        """Se perdió la conexión; el transporte reintenta con su backoff."""
        ...

    def on_close(self, error: BaseException | None) -> None:
        """Cierre terminal: el transporte ya no reintentará esta sesión."""
        ...


class TransportSession(Protocol):
    """Una conexión lógica autenticada con una única credencial."""

    async def send(self, event: str, payload: Any) -> None: ...

    async def close(self) -> None: ...


class RealtimeTransport(Protocol):
    """
    Fábrica de sesiones realtime.

    `open` devuelve de inmediato; el handshake corre en segundo plano y
    el resultado llega por el listener. El backoff ante fallas de conexión
    es responsabilidad del transporte.
    """

    def open(self, credential: str, listener: TransportListener) -> TransportSession: ...
