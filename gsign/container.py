"""
===============================================================================
TARJETA CRC — container.py (Composition Root del cliente del portal)
===============================================================================

Clase:
    PortalClient

Responsabilidades:
    - Construir y cablear UN store, UN resolver, UN channel manager y UNA
      notification surface por proceso/pestaña (sin singletons de módulo).
    - start() / aclose(): ciclo de vida explícito (construir al arrancar,
      desmontar al cerrar).
    - login(token) / logout() -> store.set / store.clear.
    - Adjuntar el canal realtime cuando la credencial pasa a no vacía.
    - Resetear notificaciones al limpiar la credencial y traerlas al
      resolverse la sesión.

Colaboradores:
    - identity.{credential_store, session_resolver, guard}
    - realtime.{channel_manager, notifications}
    - infrastructure.http.{profile_client, notifications_client}
    - infrastructure.realtime.websocket_transport
    - crosscutting.config.Settings
===============================================================================
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import httpx

from .crosscutting.config import Settings, get_settings
from .crosscutting.logger import logger
from .domain.services import NotificationsGateway, ProfileProvider, RealtimeTransport
from .identity.credential_store import CredentialStore
from .identity.guard import GuardPolicy, Requirement, RouteGuard
from .identity.session_resolver import SessionResolver, SessionState, SessionStatus
from .infrastructure.http.notifications_client import HttpNotificationsClient
from .infrastructure.http.profile_client import HttpProfileClient
from .infrastructure.realtime.websocket_transport import WebSocketTransport
from .realtime.channel_manager import RealtimeChannelManager
from .realtime.notifications import NotificationSurface


class PortalClient:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[RealtimeTransport] = None,
        profiles: Optional[ProfileProvider] = None,
        notifications_gateway: Optional[NotificationsGateway] = None,
    ):
        self.settings = settings or get_settings()
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            base_url=self.settings.api_base_url,
            timeout=self.settings.http_timeout_seconds,
            follow_redirects=False,
        )

        self.store = CredentialStore()
        self.resolver = SessionResolver(
            self.store,
            profiles
            or HttpProfileClient(self._http_client, self.settings.profile_path),
        )
        self.channel = RealtimeChannelManager(
            transport or WebSocketTransport.from_settings(self.settings)
        )
        self.notifications = NotificationSurface(
            notifications_gateway
            or HttpNotificationsClient(self._http_client, self.store.get),
            max_items=self.settings.notifications_max_items,
            error_toast_window_seconds=(
                self.settings.notifications_error_toast_window_seconds
            ),
        )

        self._unsubscribes: list[Callable[[], None]] = []
        self._tasks: set[asyncio.Task] = set()
        self._credential = ""
        self._fetched_for: Optional[int] = None
        self._started = False

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Cablea los componentes. Requiere un event loop corriendo."""
        if self._started:
            return
        self._started = True
        self._unsubscribes.append(self.channel.on_event(self.notifications.handle_event))
        self._unsubscribes.append(self.resolver.subscribe(self._on_session_state))
        self.resolver.start()
        self._unsubscribes.append(self.store.subscribe(self._on_credential))
        self.channel.attach(self.store)
        logger.info("portal client iniciado")

    async def aclose(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        await self.channel.aclose()
        await self.resolver.aclose()
        self.store.close()
        if self._owns_http_client:
            await self._http_client.aclose()
        self._started = False
        logger.info("portal client cerrado")

    async def __aenter__(self) -> "PortalClient":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Operaciones
    # ------------------------------------------------------------------
    def login(self, token: str) -> None:
        self.store.set(token)

    def logout(self) -> None:
        self.store.clear()

    def guard(
        self, requirement: Requirement, navigate: Callable[[str], None]
    ) -> RouteGuard:
        route_guard = RouteGuard(
            requirement,
            navigate,
            forbidden_path=self.settings.forbidden_path,
            policy=GuardPolicy.from_settings(self.settings),
        )
        self._unsubscribes.append(route_guard.watch(self.resolver))
        return route_guard

    # ------------------------------------------------------------------
    # Cableado interno
    # ------------------------------------------------------------------
    def _on_credential(self, credential: str) -> None:
        if credential == self._credential:
            return
        self._credential = credential
        # Un fetch en vuelo pertenece a la credencial anterior.
        for task in list(self._tasks):
            task.cancel()
        self._fetched_for = None
        if not credential:
            self.notifications.reset()
            return
        if not self.channel.attached:
            self.channel.attach(self.store)

    def _on_session_state(self, state: SessionState) -> None:
        if state.status is not SessionStatus.RESOLVED or state.session is None:
            return
        user_id = state.session.user_id
        if self._fetched_for == user_id:
            return
        if self.notifications.user_id not in (None, user_id):
            # Otro usuario con la misma pestaña: no mezclar bandejas.
            self.notifications.reset()
        self._fetched_for = user_id
        task = asyncio.get_running_loop().create_task(
            self.notifications.fetch(user_id)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
