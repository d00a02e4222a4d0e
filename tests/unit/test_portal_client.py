"""
Name: PortalClient Composition Tests

Responsibilities:
  - Validate the store/resolver/channel/notifications wiring end to end
  - Validate that an unauthenticated client never opens a channel
  - Validate T1 -> T2 before connect: channel ends on T2 and no T1 event
    reaches the Notification Surface
  - Validate logout resets every derived state
  - Validate a notification fetch started for one user is dropped after
    logout and never merged into the next user's inbox
"""

import asyncio

import pytest

from conftest import FakeNotificationsGateway, profile_payload
from gsign.container import PortalClient
from gsign.crosscutting.config import Settings
from gsign.domain.entities import Notification, Session
from gsign.identity.guard import Decision, PageRequirement
from gsign.identity.session_resolver import SessionStatus
from gsign.realtime.channel_manager import ChannelState
from gsign.realtime.notifications import SNAPSHOT_EVENT

pytestmark = pytest.mark.unit


async def _drain():
    for _ in range(10):
        await asyncio.sleep(0)


def _snapshot(*ids):
    return {
        "totalNotificaciones": len(ids),
        "userNotifications": [
            {"id": i, "titulo": f"n{i}", "fechaCreacion": f"2024-01-{i:02d}T00:00:00Z"}
            for i in ids
        ],
    }


def _portal(profiles, transport, gateway):
    return PortalClient(
        Settings(),
        transport=transport,
        profiles=profiles,
        notifications_gateway=gateway,
    )


@pytest.mark.asyncio
async def test_unauthenticated_client_never_opens_a_channel(profiles, transport):
    portal = _portal(profiles, transport, FakeNotificationsGateway())
    portal.start()
    await _drain()

    assert portal.resolver.status is SessionStatus.IDLE
    assert portal.channel.state is ChannelState.DISCONNECTED
    assert transport.sessions == []
    await portal.aclose()


@pytest.mark.asyncio
async def test_credential_swap_before_connect_reaches_only_new_channel(profiles, transport):
    gateway = FakeNotificationsGateway()
    portal = _portal(profiles, transport, gateway)
    portal.start()

    portal.login("T1")
    assert portal.channel.state is ChannelState.CONNECTING
    t1 = transport.last
    assert t1.credential == "T1"

    portal.login("T2")
    t2 = transport.last
    assert t2.credential == "T2"

    t1.open()
    t1.push(SNAPSHOT_EVENT, _snapshot(1))
    t2.open()
    t2.push(SNAPSHOT_EVENT, _snapshot(2))
    await _drain()

    assert portal.channel.state is ChannelState.CONNECTED
    assert portal.channel.credential == "T2"
    assert t1.closed is True
    assert [n.id for n in portal.notifications.items] == [2]
    await portal.aclose()


@pytest.mark.asyncio
async def test_resolved_session_triggers_notifications_fetch(profiles, transport):
    gateway = FakeNotificationsGateway(
        [Notification(id=5, title="hola", created_at="2024-01-05T00:00:00Z")]
    )
    portal = _portal(profiles, transport, gateway)
    portal.start()

    portal.login("T1")
    await _drain()
    profiles.resolve("T1", Session.from_payload(profile_payload(9)))
    await portal.resolver.wait_settled()
    await _drain()

    assert gateway.list_calls == [9]
    assert portal.notifications.user_id == 9
    assert [n.id for n in portal.notifications.items] == [5]
    await portal.aclose()


@pytest.mark.asyncio
async def test_logout_resets_derived_state(profiles, transport):
    portal = _portal(profiles, transport, FakeNotificationsGateway())
    portal.start()
    portal.login("T1")
    transport.last.open()
    transport.last.push(SNAPSHOT_EVENT, _snapshot(1, 2))
    await _drain()
    assert portal.notifications.unread_count == 2

    portal.logout()
    await _drain()

    assert portal.resolver.status is SessionStatus.IDLE
    assert portal.channel.state is ChannelState.DISCONNECTED
    assert portal.notifications.items == ()
    assert transport.last.closed is True

    portal.login("T3")
    assert portal.channel.state is ChannelState.CONNECTING
    assert transport.last.credential == "T3"
    await portal.aclose()


@pytest.mark.asyncio
async def test_guard_is_wired_to_the_resolver(profiles, transport):
    portal = _portal(profiles, transport, FakeNotificationsGateway())
    portal.start()
    navigations = []
    guard = portal.guard(PageRequirement(path="/gsign/mis-documentos/123"), navigations.append)

    portal.login("T1")
    assert guard.decision is Decision.PENDING
    await _drain()
    profiles.resolve("T1", Session.from_payload(profile_payload(1)))
    await portal.resolver.wait_settled()

    assert guard.decision is Decision.ALLOW
    assert navigations == ["/403"]
    await portal.aclose()


@pytest.mark.asyncio
async def test_context_manager_lifecycle(profiles, transport):
    async with _portal(profiles, transport, FakeNotificationsGateway()) as portal:
        portal.login("T1")
        assert portal.channel.attached is True

    assert portal.store.closed is True
    assert portal.channel.state is ChannelState.DISCONNECTED


class SlowNotificationsGateway(FakeNotificationsGateway):
    """Cada list_for_user queda abierto hasta que el test lo libera."""

    def __init__(self):
        super().__init__()
        self.pending: dict[int, asyncio.Future] = {}

    async def list_for_user(self, user_id: int):
        self.list_calls.append(user_id)
        future = asyncio.get_running_loop().create_future()
        self.pending[user_id] = future
        return await future

    def release(self, user_id: int, *items: Notification) -> None:
        future = self.pending[user_id]
        if not future.done():
            future.set_result(list(items))


async def _resolve(portal, profiles, credential, user_id):
    await _drain()
    profiles.resolve(credential, Session.from_payload(profile_payload(user_id)))
    await portal.resolver.wait_settled()
    await _drain()


@pytest.mark.asyncio
async def test_fetch_in_flight_at_logout_never_reaches_next_user(profiles, transport):
    gateway = SlowNotificationsGateway()
    portal = _portal(profiles, transport, gateway)
    portal.start()

    portal.login("TA")
    await _resolve(portal, profiles, "TA", 9)
    assert gateway.list_calls == [9]

    portal.logout()
    gateway.release(9, Notification(id=1, title="de 9", created_at="2024-01-01T00:00:00Z"))
    await _drain()
    assert portal.notifications.items == ()

    portal.login("TB")
    await _resolve(portal, profiles, "TB", 11)
    gateway.release(11, Notification(id=2, title="de 11", created_at="2024-01-02T00:00:00Z"))
    await _drain()

    assert gateway.list_calls == [9, 11]
    assert portal.notifications.user_id == 11
    assert [n.id for n in portal.notifications.items] == [2]
    await portal.aclose()


@pytest.mark.asyncio
async def test_rotated_credential_for_same_user_refetches(profiles, transport):
    gateway = FakeNotificationsGateway(
        [Notification(id=3, title="hola", created_at="2024-01-03T00:00:00Z")]
    )
    portal = _portal(profiles, transport, gateway)
    portal.start()

    portal.login("T1")
    await _resolve(portal, profiles, "T1", 5)
    portal.login("T1")
    await _drain()
    portal.login("T1b")
    await _resolve(portal, profiles, "T1b", 5)

    assert gateway.list_calls == [5, 5]
    assert [n.id for n in portal.notifications.items] == [3]
    assert portal.notifications.loading is False
    await portal.aclose()
