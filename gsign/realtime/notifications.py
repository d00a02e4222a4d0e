"""
===============================================================================
TARJETA CRC — realtime/notifications.py
===============================================================================

Clase:
    NotificationSurface

Responsabilidades:
    - Consumir eventos del canal realtime (snapshot `user-notifications-server`
      y upserts `notification`) y exponerlos a la capa de presentación.
    - Mergear por id, ordenar más nuevas primero y recortar a `max_items`.
    - fetch() inicial/periódico vía NotificationsGateway.
    - mark_read / mark_all_read optimistas con rollback ante falla.
    - Debounce de toasts de error repetidos.

Colaboradores:
    - realtime.channel_manager.RealtimeChannelManager (on_event).
    - domain.services.NotificationsGateway (HTTP).
    - container.PortalClient: reset() al limpiar la credencial.

Reglas:
    - Solo recibe eventos ya filtrados por generación: nada de una
      credencial vieja llega acá.
===============================================================================
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

from ..crosscutting.exceptions import GSignError
from ..crosscutting.logger import logger
from ..domain.entities import Notification, notifications_from_payload
from ..domain.services import NotificationsGateway

SNAPSHOT_EVENT = "user-notifications-server"
UPSERT_EVENT = "notification"

FETCH_ERROR = "No se pudieron cargar las notificaciones"
MARK_READ_ERROR = "No se pudo marcar la notificación como leída"
MARK_ALL_ERROR = "No se pudieron marcar todas las notificaciones"

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(item: Notification) -> datetime:
    raw = item.updated_at or item.created_at
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return _OLDEST
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class NotificationSurface:
    def __init__(
        self,
        gateway: NotificationsGateway,
        *,
        max_items: int = 50,
        error_toast_window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._gateway = gateway
        self._max_items = max_items
        self._toast_window = error_toast_window_seconds
        self._clock = clock
        self._listeners: list[Callable[[], None]] = []
        # Cada reset() invalida lo que siga en vuelo contra el gateway.
        self._generation = 0
        self._reset_state()

    def _reset_state(self) -> None:
        self.items: tuple[Notification, ...] = ()
        self.loading = False
        self.loading_action = False
        self.error: Optional[str] = None
        self.user_id: Optional[int] = None
        self.server_total: Optional[int] = None
        self._last_error_at: Optional[float] = None
        self._last_error_message: Optional[str] = None

    # ------------------------------------------------------------------
    # Lectura / suscripción
    # ------------------------------------------------------------------
    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.items if not n.is_read)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("listener de notificaciones falló")

    # ------------------------------------------------------------------
    # Canal realtime
    # ------------------------------------------------------------------
    def handle_event(self, event: str, payload: Any) -> None:
        if event == SNAPSHOT_EVENT:
            data = payload if isinstance(payload, Mapping) else {}
            total = data.get("totalNotificaciones")
            if isinstance(total, int) and not isinstance(total, bool):
                self.server_total = total
            raw_items = data.get("userNotifications") or []
            self.upsert(notifications_from_payload(raw_items))
        elif event == UPSERT_EVENT:
            raw = payload if isinstance(payload, list) else [payload]
            self.upsert(notifications_from_payload(raw))

    def upsert(self, incoming: Iterable[Notification]) -> None:
        incoming = list(incoming)
        if not incoming:
            return
        merged = self._merge(self.items, incoming)
        if merged != self.items:
            self.items = merged
            self._changed()

    def _merge(
        self, current: Iterable[Notification], incoming: Iterable[Notification]
    ) -> tuple[Notification, ...]:
        by_id = {n.id: n for n in current}
        for item in incoming:
            by_id[item.id] = item
        ordered = sorted(by_id.values(), key=_sort_key, reverse=True)
        return tuple(ordered[: self._max_items])

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------
    async def fetch(
        self, user_id: Optional[int] = None, *, silent: bool = False
    ) -> None:
        uid = user_id or self.user_id
        if not uid:
            return
        self.user_id = uid
        if not silent:
            self.loading = True
            self.error = None
        self._changed()

        generation = self._generation
        try:
            fetched = await self._gateway.list_for_user(uid)
        except asyncio.CancelledError:
            if not self._is_stale(generation):
                self.loading = False
                self._changed()
            raise
        except GSignError as exc:
            if self._is_stale(generation):
                return
            logger.warning(
                "fetch de notificaciones falló",
                extra={"error_code": exc.error_code, "error_id": exc.error_id},
            )
            self.loading = False
            self.error = FETCH_ERROR
            self._changed()
            return

        if self._is_stale(generation):
            return
        self.items = self._merge(self.items, fetched)
        self.loading = False
        self.error = None
        self._last_error_at = None
        self._last_error_message = None
        self._changed()

    async def mark_read(self, notification_id: int) -> bool:
        uid = self.user_id
        if not uid:
            return False

        previous = self.items
        self.items = tuple(
            replace(n, is_read=True) if n.id == notification_id else n
            for n in previous
        )
        self._changed()
        generation = self._generation
        try:
            await self._gateway.mark_read(uid, notification_id)
        except GSignError:
            if self._is_stale(generation):
                return False
            logger.warning("marcar notificación falló; rollback")
            self.items = previous
            self.error = MARK_READ_ERROR
            self._changed()
            return False
        return True

    async def mark_all_read(self) -> bool:
        uid = self.user_id
        if not uid:
            return False

        previous = self.items
        pending = [n for n in previous if not n.is_read]
        if not pending:
            return True

        self.items = tuple(replace(n, is_read=True) for n in previous)
        self.loading_action = True
        self._changed()
        generation = self._generation
        try:
            await asyncio.gather(
                *(self._gateway.mark_read(uid, n.id) for n in pending)
            )
        except GSignError:
            if self._is_stale(generation):
                return False
            logger.warning("marcar todas falló; rollback y re-sync")
            self.items = previous
            self.loading_action = False
            self._changed()
            await self.fetch(silent=True)
            self.error = MARK_ALL_ERROR
            self._changed()
            return False

        if self._is_stale(generation):
            return False
        self.loading_action = False
        self._changed()
        return True

    # ------------------------------------------------------------------
    # UI helpers
    # ------------------------------------------------------------------
    def should_toast_error(self, message: Optional[str] = None) -> bool:
        """True si hay que mostrar el toast (mismo mensaje => 1 por ventana)."""
        message = message if message is not None else self.error
        if not message:
            return False
        now = self._clock()
        if (
            self._last_error_message == message
            and self._last_error_at is not None
            and now - self._last_error_at < self._toast_window
        ):
            return False
        self._last_error_at = now
        self._last_error_message = message
        return True

    def reset(self) -> None:
        """Vacía todo (credencial limpiada: no mostrar datos del usuario previo)."""
        self._generation += 1
        self._reset_state()
        self._changed()

    def _is_stale(self, generation: int) -> bool:
        if generation == self._generation:
            return False
        logger.debug("resultado de notificaciones descartado tras reset")
        return True
