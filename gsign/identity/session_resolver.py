"""
===============================================================================
TARJETA CRC — identity/session_resolver.py
===============================================================================

Clase:
    SessionResolver

Responsabilidades:
    - Resolver la Session (GET /users/me) para la credencial vigente.
    - Exponer {session, status, error} con status idle|loading|resolved|error.
    - Garantizar a lo sumo UN fetch en vuelo por valor de credencial.
    - Descartar resultados viejos: gana la última credencial, no el último
      fetch en completar.

Colaboradores:
    - identity.credential_store.CredentialStore: fuente de la credencial.
    - domain.services.ProfileProvider: fetch HTTP del perfil.
    - identity.guard.RouteGuard: reacciona a cada cambio de estado.
    - crosscutting.metrics: resultado de cada fetch.

Reglas:
    - clear => idle sin session, sincrónico, sin esperar el fetch en vuelo.
    - Un error NO limpia la credencial: lo decide quien consume el error.
    - Nunca escribe en el store (sin refresh implícito de token).
    - Debe usarse dentro de un event loop (los fetch son tasks asyncio).
===============================================================================
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from ..crosscutting.exceptions import GSignError, SessionResolutionError
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_session_fetch
from ..domain.entities import Session
from ..domain.services import ProfileProvider
from .credential_store import CredentialStore
from .credentials import credential_fingerprint


class SessionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    RESOLVED = "resolved"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class SessionState:
    """
    Snapshot inmutable del resolver.

    `generation` cambia con cada cambio de credencial: identifica la
    "instancia de sesión" (el guard redirige a lo sumo una vez por instancia).
    """

    session: Optional[Session] = None
    status: SessionStatus = SessionStatus.IDLE
    error: Optional[GSignError] = None
    generation: int = 0

    @property
    def is_settled(self) -> bool:
        return self.status in (SessionStatus.RESOLVED, SessionStatus.ERROR)


StateListener = Callable[[SessionState], None]


class SessionResolver:
    def __init__(self, store: CredentialStore, profiles: ProfileProvider):
        self._store = store
        self._profiles = profiles
        self._state = SessionState()
        self._credential = ""
        self._fetch_seq = 0
        self._current_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[StateListener] = []
        self._unsubscribe_store: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Se suscribe al store y, si ya hay credencial, lanza el fetch."""
        if self._unsubscribe_store is not None:
            return
        self._unsubscribe_store = self._store.subscribe(self._on_credential)
        initial = self._store.get()
        if initial:
            self._on_credential(initial)

    async def aclose(self) -> None:
        if self._unsubscribe_store is not None:
            self._unsubscribe_store()
            self._unsubscribe_store = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._state.session

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def error(self) -> Optional[GSignError]:
        return self._state.error

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_settled(self) -> SessionState:
        """Espera el fetch vigente (si hay) y devuelve el estado resultante."""
        while self._current_task is not None and not self._current_task.done():
            await asyncio.wait({self._current_task})
        return self._state

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------
    def refresh(self) -> None:
        """
        Reintento explícito (ej: re-navegación tras un error).

        Mantiene la session previa visible mientras carga; no duplica un
        fetch ya en vuelo.
        """
        if not self._credential or self._state.status is SessionStatus.LOADING:
            return
        self._set_state(
            replace(self._state, status=SessionStatus.LOADING, error=None)
        )
        self._spawn_fetch(self._credential)

    def _on_credential(self, credential: str) -> None:
        if not credential:
            self._credential = ""
            self._fetch_seq += 1
            self._current_task = None
            self._set_state(SessionState(generation=self._state.generation + 1))
            return

        if credential == self._credential and self._state.status in (
            SessionStatus.LOADING,
            SessionStatus.RESOLVED,
        ):
            return

        self._credential = credential
        self._set_state(
            SessionState(
                status=SessionStatus.LOADING,
                generation=self._state.generation + 1,
            )
        )
        self._spawn_fetch(credential)

    def _spawn_fetch(self, credential: str) -> None:
        self._fetch_seq += 1
        task = asyncio.get_running_loop().create_task(
            self._fetch(credential, self._fetch_seq)
        )
        self._current_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fetch(self, credential: str, seq: int) -> None:
        fp = credential_fingerprint(credential)
        session: Optional[Session] = None
        error: Optional[GSignError] = None
        try:
            session = await self._profiles.fetch_session(credential)
        except SessionResolutionError as exc:
            error = exc
        except Exception as exc:
            logger.exception(
                "fetch de perfil falló inesperadamente", extra={"credential_fp": fp}
            )
            error = SessionResolutionError(
                "No se pudo resolver la sesión", original_error=exc
            )

        if credential != self._credential or seq != self._fetch_seq:
            record_session_fetch("discarded")
            logger.debug("resultado de perfil descartado", extra={"credential_fp": fp})
            return

        if error is not None:
            record_session_fetch("error")
            logger.warning(
                "resolución de sesión falló",
                extra={
                    "credential_fp": fp,
                    "error_code": error.error_code,
                    "error_id": error.error_id,
                },
            )
            self._set_state(
                SessionState(
                    status=SessionStatus.ERROR,
                    error=error,
                    generation=self._state.generation,
                )
            )
            return

        record_session_fetch("resolved")
        self._set_state(
            SessionState(
                session=session,
                status=SessionStatus.RESOLVED,
                generation=self._state.generation,
            )
        )

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("listener de sesión falló")
