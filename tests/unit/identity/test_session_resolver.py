"""
Name: Session Resolver Tests

Responsibilities:
  - Validate one fetch per credential value and no duplicate in-flight fetch
  - Validate last-credential-wins when fetches race
  - Validate synchronous reset to idle on clear
  - Validate error state and explicit refresh
"""

import asyncio

import pytest

from conftest import profile_payload
from gsign.crosscutting.exceptions import SessionResolutionError
from gsign.domain.entities import Session
from gsign.identity.credential_store import CredentialStore
from gsign.identity.session_resolver import SessionResolver, SessionStatus

pytestmark = pytest.mark.unit


async def _drain():
    for _ in range(5):
        await asyncio.sleep(0)


def _session(user_id):
    return Session.from_payload(profile_payload(user_id))


@pytest.mark.asyncio
async def test_initial_credential_issues_exactly_one_fetch(profiles):
    store = CredentialStore("T1")
    resolver = SessionResolver(store, profiles)

    resolver.start()
    resolver.start()
    await _drain()

    assert resolver.status is SessionStatus.LOADING
    assert profiles.calls == ["T1"]

    profiles.resolve("T1", _session(1))
    state = await resolver.wait_settled()

    assert state.status is SessionStatus.RESOLVED
    assert state.session.user_id == 1
    await resolver.aclose()


@pytest.mark.asyncio
async def test_without_credential_stays_idle(profiles):
    resolver = SessionResolver(CredentialStore(), profiles)

    resolver.start()
    await _drain()

    assert resolver.status is SessionStatus.IDLE
    assert profiles.calls == []
    await resolver.aclose()


@pytest.mark.asyncio
async def test_same_credential_while_loading_is_not_refetched(profiles):
    store = CredentialStore()
    resolver = SessionResolver(store, profiles)
    resolver.start()

    store.set("T1")
    store.set("T1")
    await _drain()

    assert profiles.calls == ["T1"]
    await resolver.aclose()


@pytest.mark.asyncio
async def test_last_credential_wins_over_last_completed(profiles):
    store = CredentialStore()
    resolver = SessionResolver(store, profiles)
    resolver.start()

    store.set("T1")
    await _drain()
    store.set("T2")
    await _drain()

    profiles.resolve("T2", _session(2))
    await _drain()
    profiles.resolve("T1", _session(1))
    await _drain()

    assert resolver.status is SessionStatus.RESOLVED
    assert resolver.session.user_id == 2
    await resolver.aclose()


@pytest.mark.asyncio
async def test_stale_result_does_not_settle_current_credential(profiles):
    store = CredentialStore()
    resolver = SessionResolver(store, profiles)
    resolver.start()

    store.set("T1")
    await _drain()
    store.set("T2")
    await _drain()
    profiles.resolve("T1", _session(1))
    await _drain()

    assert resolver.status is SessionStatus.LOADING
    assert resolver.session is None
    await resolver.aclose()


@pytest.mark.asyncio
async def test_clear_resets_to_idle_synchronously(profiles):
    store = CredentialStore("T1")
    resolver = SessionResolver(store, profiles)
    resolver.start()
    await _drain()

    store.clear()

    assert resolver.status is SessionStatus.IDLE
    assert resolver.session is None

    profiles.resolve("T1", _session(1))
    await _drain()
    assert resolver.status is SessionStatus.IDLE
    await resolver.aclose()


@pytest.mark.asyncio
async def test_failure_sets_error_without_clearing_credential(profiles):
    store = CredentialStore("T1")
    resolver = SessionResolver(store, profiles)
    resolver.start()
    await _drain()

    profiles.fail("T1", SessionResolutionError("401", status_code=401))
    state = await resolver.wait_settled()

    assert state.status is SessionStatus.ERROR
    assert state.session is None
    assert state.error.status_code == 401
    assert store.get() == "T1"
    await resolver.aclose()


@pytest.mark.asyncio
async def test_unexpected_exception_is_wrapped(profiles):
    store = CredentialStore("T1")
    resolver = SessionResolver(store, profiles)
    resolver.start()
    await _drain()

    profiles.fail("T1", KeyError("boom"))
    state = await resolver.wait_settled()

    assert state.status is SessionStatus.ERROR
    assert isinstance(state.error, SessionResolutionError)
    await resolver.aclose()


@pytest.mark.asyncio
async def test_refresh_after_error_refetches(profiles):
    store = CredentialStore("T1")
    resolver = SessionResolver(store, profiles)
    resolver.start()
    await _drain()
    profiles.fail("T1")
    await resolver.wait_settled()

    resolver.refresh()
    resolver.refresh()
    await _drain()

    assert resolver.status is SessionStatus.LOADING
    assert profiles.calls == ["T1", "T1"]

    profiles.resolve("T1", _session(1))
    state = await resolver.wait_settled()
    assert state.status is SessionStatus.RESOLVED
    await resolver.aclose()


@pytest.mark.asyncio
async def test_refresh_keeps_previous_session_visible(profiles):
    store = CredentialStore("T1")
    resolver = SessionResolver(store, profiles)
    resolver.start()
    await _drain()
    profiles.resolve("T1", _session(1))
    await resolver.wait_settled()
    generation = resolver.state.generation

    resolver.refresh()

    assert resolver.status is SessionStatus.LOADING
    assert resolver.session.user_id == 1
    assert resolver.state.generation == generation
    await resolver.aclose()


@pytest.mark.asyncio
async def test_refresh_without_credential_is_noop(profiles):
    resolver = SessionResolver(CredentialStore(), profiles)
    resolver.start()

    resolver.refresh()

    assert resolver.status is SessionStatus.IDLE
    assert profiles.calls == []
    await resolver.aclose()


@pytest.mark.asyncio
async def test_listeners_receive_every_transition(profiles):
    store = CredentialStore()
    resolver = SessionResolver(store, profiles)
    statuses = []
    resolver.subscribe(lambda state: statuses.append(state.status))
    resolver.start()

    store.set("T1")
    await _drain()
    profiles.resolve("T1", _session(1))
    await resolver.wait_settled()
    store.clear()

    assert statuses == [
        SessionStatus.LOADING,
        SessionStatus.RESOLVED,
        SessionStatus.IDLE,
    ]
    await resolver.aclose()


@pytest.mark.asyncio
async def test_never_writes_back_to_store(profiles):
    store = CredentialStore("T1")
    writes = []
    store.subscribe(writes.append)
    resolver = SessionResolver(store, profiles)
    resolver.start()
    await _drain()

    profiles.fail("T1")
    await resolver.wait_settled()

    assert writes == []
    await resolver.aclose()
