"""
Name: Realtime Frame Codec Tests
"""

import json

import pytest

from gsign.infrastructure.realtime.websocket_transport import (
    WebSocketTransport,
    decode_frame,
    encode_frame,
)

pytestmark = pytest.mark.unit


def test_encode_frame_shape():
    assert json.loads(encode_frame("notification", {"id": 1})) == {
        "event": "notification",
        "data": {"id": 1},
    }


def test_decode_frame_accepts_text_and_bytes():
    raw = '{"event": "user-notifications-server", "data": {"totalNotificaciones": 2}}'

    assert decode_frame(raw) == ("user-notifications-server", {"totalNotificaciones": 2})
    assert decode_frame(raw.encode("utf-8"))[0] == "user-notifications-server"


@pytest.mark.parametrize(
    "raw",
    ["no json", "[1, 2]", '{"data": 1}', '{"event": ""}', '{"event": 3}', b"\xff\xfe"],
)
def test_decode_frame_rejects_invalid(raw):
    assert decode_frame(raw) is None


def test_transport_from_settings():
    from gsign.crosscutting.config import Settings

    settings = Settings(socket_url="ws://rt.test/ws", socket_open_timeout_seconds=3)
    transport = WebSocketTransport.from_settings(settings)

    assert transport._url == "ws://rt.test/ws"
    assert transport._open_timeout == 3
