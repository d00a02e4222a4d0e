"""
============================================================
TARJETA CRC — infrastructure/realtime/websocket_transport.py
============================================================
Classes: WebSocketTransport, WebSocketSession

Responsibilities:
  - Implementar RealtimeTransport sobre la librería `websockets`.
  - Autenticar el handshake con `Authorization: Bearer <credential>`.
  - Reconectar con el backoff propio de `websockets` (connect como
    async iterator); avisar pérdidas con on_reconnecting().
  - Codificar/decodificar frames JSON {"event": ..., "data": ...}.
  - Reportar cierre terminal (ej: handshake rechazado 401/403) con on_close().

Collaborators:
  - domain.services (RealtimeTransport, TransportSession, TransportListener)
  - realtime.channel_manager (consume las sesiones)
  - websockets.asyncio.client.connect
============================================================
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from ...crosscutting.exceptions import RealtimeChannelError
from ...crosscutting.logger import logger
from ...domain.services import TransportListener


def encode_frame(event: str, payload: Any) -> str:
    return json.dumps({"event": event, "data": payload}, ensure_ascii=False)


def decode_frame(raw: str | bytes) -> Optional[tuple[str, Any]]:
    """Frame válido => (event, data); cualquier otra cosa => None."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        message = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(message, dict):
        return None
    event = message.get("event")
    if not isinstance(event, str) or not event:
        return None
    return event, message.get("data")


class WebSocketSession:
    """Una conexión lógica (con reconexiones internas) para UNA credencial."""

    def __init__(
        self,
        url: str,
        credential: str,
        listener: TransportListener,
        *,
        open_timeout: float,
        close_timeout: float,
    ):
        self._url = url
        self._credential = credential
        self._listener = listener
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._ws: Optional[ClientConnection] = None
        self._closing = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        headers = {"Authorization": f"Bearer {self._credential}"}
        error: Optional[BaseException] = None
        try:
            async for ws in connect(
                self._url,
                additional_headers=headers,
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
            ):
                if self._closing:
                    await ws.close()
                    break
                self._ws = ws
                self._listener.on_open()
                drop: Optional[BaseException] = None
                try:
                    async for raw in ws:
                        frame = decode_frame(raw)
                        if frame is None:
                            logger.debug("frame realtime inválido descartado")
                            continue
                        self._listener.on_event(*frame)
                except ConnectionClosed as exc:
                    drop = exc
                finally:
                    self._ws = None
                if self._closing:
                    break
                self._listener.on_reconnecting(drop)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # connect() ya agotó lo reintentable (ej: handshake rechazado).
            error = exc
            logger.warning(
                "canal realtime: falla terminal",
                extra={"error": type(exc).__name__},
            )
        if not self._closing:
            self._listener.on_close(error)

    async def send(self, event: str, payload: Any) -> None:
        ws = self._ws
        if ws is None or self._closing:
            raise RealtimeChannelError("websocket no conectado")
        await ws.send(encode_frame(event, payload))

    async def close(self) -> None:
        self._closing = True
        ws = self._ws
        if ws is not None:
            await ws.close()
        # Si seguía en handshake/backoff, se cancela.
        if not self._task.done():
            self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)


class WebSocketTransport:
    def __init__(
        self, url: str, *, open_timeout: float = 10.0, close_timeout: float = 5.0
    ):
        self._url = url
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout

    @classmethod
    def from_settings(cls, settings) -> "WebSocketTransport":
        return cls(
            settings.socket_url,
            open_timeout=settings.socket_open_timeout_seconds,
            close_timeout=settings.socket_close_timeout_seconds,
        )

    def open(self, credential: str, listener: TransportListener) -> WebSocketSession:
        return WebSocketSession(
            self._url,
            credential,
            listener,
            open_timeout=self._open_timeout,
            close_timeout=self._close_timeout,
        )
