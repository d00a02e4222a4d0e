"""
===============================================================================
TARJETA CRC — realtime/channel_manager.py
===============================================================================

Clase:
    RealtimeChannelManager

Responsabilidades:
    - Mantener UN canal realtime lógico por sesión activa.
    - Atar la autenticación del canal al valor vigente del CredentialStore.
    - Re-autenticar en cada cambio de credencial: declarar stale ANTES del
      teardown, cerrar sin esperar y abrir una sesión nueva.
    - Entregar eventos solo desde la sesión vigente y conectada.

Estados:
    disconnected -> connecting(c) -> connected(c)
    connected|connecting(c) --cambio a c'--> reconnecting(c') -> connected(c')
    cualquiera --credencial vacía--> disconnected (se desuscribe del store)

Colaboradores:
    - identity.credential_store.CredentialStore (observado directamente,
      independiente del SessionResolver).
    - domain.services.RealtimeTransport / TransportSession / TransportListener.
    - realtime.notifications.NotificationSurface (consume eventos).
    - crosscutting.metrics: transiciones y eventos descartados.

Reglas:
    - Cada sesión de transporte tiene su generación. Callbacks de una
      generación vieja se descartan: nada de la credencial anterior se
      atribuye a la nueva.
    - Sin loop de reintento propio: el backoff es del transporte.
    - Ráfagas c1..cN convergen a cN.
===============================================================================
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable, Optional

from ..crosscutting.exceptions import RealtimeChannelError
from ..crosscutting.logger import logger
from ..crosscutting.metrics import (
    record_realtime_stale_event,
    record_realtime_transition,
)
from ..domain.services import RealtimeTransport, TransportSession
from ..identity.credential_store import CredentialStore
from ..identity.credentials import credential_fingerprint

EventListener = Callable[[str, Any], None]


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class _Binding:
    """Listener de transporte ligado a una generación concreta."""

    __slots__ = ("_manager", "generation")

    def __init__(self, manager: "RealtimeChannelManager", generation: int):
        self._manager = manager
        self.generation = generation

    def on_open(self) -> None:
        self._manager._handle_open(self.generation)

    def on_event(self, event: str, payload: Any) -> None:
        self._manager._handle_event(self.generation, event, payload)

    def on_reconnecting(self, error: BaseException | None) -> None:
        self._manager._handle_reconnecting(self.generation, error)

    def on_close(self, error: BaseException | None) -> None:
        self._manager._handle_close(self.generation, error)


class RealtimeChannelManager:
    def __init__(self, transport: RealtimeTransport):
        self._transport = transport
        self._state = ChannelState.DISCONNECTED
        self._credential = ""
        self._generation = 0
        self._session: Optional[TransportSession] = None
        self._unsubscribe_store: Optional[Callable[[], None]] = None
        self._listeners: list[EventListener] = []
        self._closing: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------
    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def credential(self) -> str:
        """Parámetro de autenticación del canal (== valor del store)."""
        return self._credential

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def attached(self) -> bool:
        return self._unsubscribe_store is not None

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------
    def attach(self, store: CredentialStore) -> bool:
        """
        Se suscribe al store y abre el canal con su valor actual.

        Con credencial vacía no se suscribe ni conecta: devuelve False.
        """
        if self.attached:
            return True
        initial = store.get()
        if not initial:
            return False
        self._unsubscribe_store = store.subscribe(self._on_credential)
        self._on_credential(initial)
        return True

    async def aclose(self) -> None:
        self._detach()
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)
        self._listeners.clear()

    def on_event(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def emit(self, event: str, payload: Any = None) -> None:
        """
        Envía por la sesión vigente.

        Raises:
            RealtimeChannelError: si el canal no está conectado.
        """
        session = self._session
        if self._state is not ChannelState.CONNECTED or session is None:
            raise RealtimeChannelError(
                f"canal realtime no conectado (estado={self._state.value})"
            )
        await session.send(event, payload)

    # ------------------------------------------------------------------
    # Eventos del store
    # ------------------------------------------------------------------
    def _on_credential(self, credential: str) -> None:
        if not credential:
            self._detach()
            return

        if (
            credential == self._credential
            and self._state is not ChannelState.DISCONNECTED
        ):
            return

        # 1) stale inmediato  2) nuevo parámetro  3) cerrar sin esperar y reabrir
        previous_state = self._state
        self._generation += 1
        self._credential = credential
        self._drop_session()

        if previous_state is ChannelState.DISCONNECTED:
            self._set_state(ChannelState.CONNECTING)
        else:
            self._set_state(ChannelState.RECONNECTING)
        self._open_session()

    def _detach(self) -> None:
        self._generation += 1
        self._credential = ""
        self._drop_session()
        if self._unsubscribe_store is not None:
            self._unsubscribe_store()
            self._unsubscribe_store = None
        self._set_state(ChannelState.DISCONNECTED)

    def _open_session(self) -> None:
        binding = _Binding(self, self._generation)
        logger.info(
            "abriendo canal realtime",
            extra={
                "credential_fp": credential_fingerprint(self._credential),
                "generation": binding.generation,
            },
        )
        self._session = self._transport.open(self._credential, binding)

    def _drop_session(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        task = asyncio.get_running_loop().create_task(self._close_quietly(session))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    @staticmethod
    async def _close_quietly(session: TransportSession) -> None:
        try:
            await session.close()
        except Exception:
            logger.warning("cierre de sesión realtime vieja falló", exc_info=True)

    # ------------------------------------------------------------------
    # Eventos del transporte (vía _Binding)
    # ------------------------------------------------------------------
    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _handle_open(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        self._set_state(ChannelState.CONNECTED)

    def _handle_event(self, generation: int, event: str, payload: Any) -> None:
        if (
            not self._is_current(generation)
            or self._state is not ChannelState.CONNECTED
        ):
            record_realtime_stale_event()
            logger.debug(
                "evento realtime descartado",
                extra={"event": event, "generation": generation},
            )
            return
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("listener realtime falló", extra={"event": event})

    def _handle_reconnecting(
        self, generation: int, error: BaseException | None
    ) -> None:
        if not self._is_current(generation):
            return
        logger.info(
            "canal realtime perdido, el transporte reintenta",
            extra={"error": repr(error) if error else None},
        )
        self._set_state(ChannelState.RECONNECTING)

    def _handle_close(self, generation: int, error: BaseException | None) -> None:
        if not self._is_current(generation):
            return
        # Falla terminal: sigue suscripto; un nuevo valor de credencial reconecta.
        self._generation += 1
        self._session = None
        logger.warning(
            "canal realtime cerrado por el transporte",
            extra={"error": repr(error) if error else None},
        )
        self._set_state(ChannelState.DISCONNECTED)

    def _set_state(self, state: ChannelState) -> None:
        if state is self._state:
            return
        self._state = state
        record_realtime_transition(state.value)
