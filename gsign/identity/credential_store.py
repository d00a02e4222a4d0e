"""
===============================================================================
TARJETA CRC — identity/credential_store.py
===============================================================================

Clase:
    CredentialStore

Responsabilidades:
    - Mantener la credencial bearer vigente en memoria de proceso.
    - Exponer get / set / clear y notificar cambios a suscriptores.
    - Entregar unsubscribe idempotentes, inocuos incluso tras close().

Colaboradores:
    - identity.session_resolver: re-fetch de perfil por cada cambio.
    - realtime.channel_manager: re-autentica el canal por cada cambio.
    - container.PortalClient: construye y cierra el store.

Reglas:
    - El valor se actualiza ANTES de notificar: un suscriptor nunca ve un
      valor viejo.
    - Notificación sincrónica, en orden de suscripción, antes de retornar.
    - Un set/clear hecho DESDE un listener se encola y se entrega cuando
      termina la ronda actual, así todos ven la misma secuencia de valores.
    - Sin I/O ni persistencia.
===============================================================================
"""

from __future__ import annotations

from collections import deque
from typing import Callable

from ..crosscutting.logger import logger
from .credentials import credential_fingerprint

CredentialListener = Callable[[str], None]
Unsubscribe = Callable[[], None]

EMPTY_CREDENTIAL = ""


class _Subscription:
    """Token propio por suscripción: se remueve por identidad, no por igualdad."""

    __slots__ = ("listener",)

    def __init__(self, listener: CredentialListener):
        self.listener = listener


class CredentialStore:
    def __init__(self, initial: str | None = None):
        self._value: str = (initial or "").strip()
        self._subscriptions: list[_Subscription] = []
        self._pending: deque[str] = deque()
        self._notifying = False
        self._closed = False

    def get(self) -> str:
        """Credencial vigente o "" si no hay sesión."""
        return self._value

    def set(self, credential: str) -> None:
        self._ensure_open()
        self._value = (credential or "").strip()
        logger.debug(
            "credencial actualizada",
            extra={"credential_fp": credential_fingerprint(self._value)},
        )
        self._notify(self._value)

    def clear(self) -> None:
        self._ensure_open()
        self._value = EMPTY_CREDENTIAL
        logger.debug("credencial eliminada")
        self._notify(EMPTY_CREDENTIAL)

    def subscribe(self, listener: CredentialListener) -> Unsubscribe:
        """
        Registra un listener. Cada llamada es independiente: el mismo
        callable suscrito dos veces recibe dos notificaciones.
        """
        if self._closed:
            return lambda: None

        sub = _Subscription(listener)
        self._subscriptions.append(sub)

        def unsubscribe() -> None:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        return unsubscribe

    def close(self) -> None:
        """Teardown: suelta todos los listeners y bloquea nuevas escrituras."""
        self._closed = True
        self._subscriptions.clear()
        self._pending.clear()
        self._value = EMPTY_CREDENTIAL

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("credential store is closed")

    def _notify(self, value: str) -> None:
        self._pending.append(value)
        if self._notifying:
            return

        self._notifying = True
        try:
            while self._pending:
                current = self._pending.popleft()
                # Snapshot: un listener puede (des)suscribir durante la ronda.
                for sub in list(self._subscriptions):
                    if sub not in self._subscriptions:
                        continue
                    try:
                        sub.listener(current)
                    except Exception:
                        logger.exception("listener de credencial falló")
        finally:
            self._notifying = False
