"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Put the project root on sys.path and isolate Settings from .env files
  - Provide deterministic fakes for the profile backend and realtime transport
  - Provide sample Session payloads

Collaborators:
  - pytest: Test framework
  - gsign.domain: entities and ports

Notes:
  - FakeTransport lets tests drive open/event/reconnecting/close by hand,
    per opened session, so stale-session scenarios are reproducible
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Any

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from gsign.crosscutting import config as app_config  # noqa: E402

app_config.Settings.model_config["env_file"] = None

from gsign.crosscutting.exceptions import SessionResolutionError  # noqa: E402
from gsign.domain.entities import Session  # noqa: E402

os.environ.setdefault("APP_ENV", "test")


def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )


# ============================================================================
# Payload fixtures
# ============================================================================


def profile_payload(user_id: int = 7, **overrides: Any) -> dict:
    payload = {
        "id": user_id,
        "nombre": f"Usuario {user_id}",
        "correo": f"user{user_id}@example.com",
        "roles": ["USER"],
        "pages": [
            {"id": 1, "code": "DOCS", "name": "Mis documentos", "path": "/gsign/mis-documentos", "order": 1},
            {"id": 2, "code": "GEN", "name": "General", "path": "/general", "order": 2},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def sample_session() -> Session:
    return Session.from_payload(profile_payload())


# ============================================================================
# Fake profile provider
# ============================================================================


class FakeProfileProvider:
    """
    ProfileProvider controlado por el test: cada fetch queda pendiente en un
    Future hasta que el test lo resuelve con `resolve`/`fail`.
    """

    def __init__(self):
        self.calls: list[str] = []
        self._pending: dict[str, list[asyncio.Future]] = {}

    async def fetch_session(self, credential: str) -> Session:
        self.calls.append(credential)
        future = asyncio.get_running_loop().create_future()
        self._pending.setdefault(credential, []).append(future)
        return await future

    def pending(self, credential: str) -> int:
        return sum(1 for f in self._pending.get(credential, []) if not f.done())

    def resolve(self, credential: str, session: Session) -> None:
        self._next(credential).set_result(session)

    def fail(self, credential: str, error: Exception | None = None) -> None:
        self._next(credential).set_exception(
            error or SessionResolutionError("boom", status_code=500)
        )

    def _next(self, credential: str) -> asyncio.Future:
        for future in self._pending.get(credential, []):
            if not future.done():
                return future
        raise AssertionError(f"no pending fetch for {credential!r}")


@pytest.fixture
def profiles() -> FakeProfileProvider:
    return FakeProfileProvider()


# ============================================================================
# Fake realtime transport
# ============================================================================


class FakeTransportSession:
    def __init__(self, credential: str, listener):
        self.credential = credential
        self.listener = listener
        self.closed = False
        self.sent: list[tuple[str, Any]] = []

    async def send(self, event: str, payload: Any) -> None:
        self.sent.append((event, payload))

    async def close(self) -> None:
        self.closed = True

    # Hooks para el test
    def open(self) -> None:
        self.listener.on_open()

    def push(self, event: str, payload: Any = None) -> None:
        self.listener.on_event(event, payload)

    def drop(self, error: BaseException | None = None) -> None:
        self.listener.on_reconnecting(error)

    def terminate(self, error: BaseException | None = None) -> None:
        self.listener.on_close(error)


class FakeTransport:
    def __init__(self):
        self.sessions: list[FakeTransportSession] = []

    def open(self, credential: str, listener) -> FakeTransportSession:
        session = FakeTransportSession(credential, listener)
        self.sessions.append(session)
        return session

    @property
    def last(self) -> FakeTransportSession:
        return self.sessions[-1]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


class FakeNotificationsGateway:
    def __init__(self, items=None):
        self.items = list(items or [])
        self.list_calls: list[int] = []
        self.read_calls: list[tuple[int, int]] = []
        self.fail_list = False
        self.fail_read_ids: set[int] = set()

    async def list_for_user(self, user_id: int):
        from gsign.infrastructure.http.notifications_client import (
            NotificationsClientError,
        )

        self.list_calls.append(user_id)
        if self.fail_list:
            raise NotificationsClientError("list failed")
        return list(self.items)

    async def mark_read(self, user_id: int, notification_id: int) -> None:
        from gsign.infrastructure.http.notifications_client import (
            NotificationsClientError,
        )

        self.read_calls.append((user_id, notification_id))
        if notification_id in self.fail_read_ids:
            raise NotificationsClientError("mark failed")


@pytest.fixture
def notifications_gateway() -> FakeNotificationsGateway:
    return FakeNotificationsGateway()
