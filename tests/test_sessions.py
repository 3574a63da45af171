"""Tests for SessionRegistry capacity, preemption and routing."""

from __future__ import annotations

import asyncio

import pytest

from speech_relay.errors import TransportError
from speech_relay.routers.sse import session_events
from speech_relay.rpc.sessions import SessionRegistry

_BASE = "https://relay.example.com/messages"


@pytest.mark.asyncio
async def test_open_announces_endpoint_with_session_id():
    reg = SessionRegistry()
    session = await reg.open(_BASE)
    assert session.endpoint == f"{_BASE}?sessionId={session.session_id}"
    assert reg.resolve(session.session_id) is session
    assert reg.resolve(None) is session


@pytest.mark.asyncio
async def test_resolve_without_sessions_fails_fast():
    reg = SessionRegistry()
    with pytest.raises(TransportError) as exc:
        reg.resolve(None)
    assert exc.value.http_status == 503
    assert exc.value.code == -32000


@pytest.mark.asyncio
async def test_second_open_preempts_first_at_capacity_one():
    reg = SessionRegistry(max_sessions=1)
    first = await reg.open(_BASE)
    second = await reg.open(_BASE)

    assert first.closed
    assert not second.closed
    assert await first.next_message(timeout_s=1.0) is None
    assert reg.resolve(None) is second
    with pytest.raises(TransportError) as exc:
        reg.resolve(first.session_id)
    assert exc.value.http_status == 404

    snap = reg.snapshot()
    assert snap["active_sessions"] == 1
    assert snap["preempted"] == 1


@pytest.mark.asyncio
async def test_never_more_than_one_active_session_by_default():
    reg = SessionRegistry()
    sessions = [await reg.open(_BASE) for _ in range(5)]
    assert reg.snapshot()["active_sessions"] == 1
    assert [s.closed for s in sessions] == [True, True, True, True, False]
    assert reg.latest() is sessions[-1]


@pytest.mark.asyncio
async def test_capacity_two_keeps_both_sessions():
    reg = SessionRegistry(max_sessions=2)
    a = await reg.open(_BASE)
    b = await reg.open(_BASE)
    assert reg.resolve(a.session_id) is a
    assert reg.resolve(b.session_id) is b
    c = await reg.open(_BASE)
    assert a.closed and not b.closed and not c.closed


@pytest.mark.asyncio
async def test_close_of_preempted_session_does_not_evict_newer():
    reg = SessionRegistry()
    first = await reg.open(_BASE)
    second = await reg.open(_BASE)
    await reg.close(first)
    assert reg.resolve(None) is second
    assert reg.snapshot()["closed"] == 0

    await reg.close(second)
    assert reg.latest() is None
    assert reg.snapshot()["closed"] == 1


@pytest.mark.asyncio
async def test_send_after_close_is_refused():
    reg = SessionRegistry()
    session = await reg.open(_BASE)
    await reg.close(session)
    assert session.send({"id": 1}) is False


@pytest.mark.asyncio
async def test_session_events_stream_until_preempted():
    reg = SessionRegistry()
    session = await reg.open(_BASE)
    events = session_events(reg, session)

    first = await events.__anext__()
    assert first == {"event": "endpoint", "data": session.endpoint}

    session.send({"jsonrpc": "2.0", "id": 1, "result": {}})
    second = await asyncio.wait_for(events.__anext__(), timeout=1.0)
    assert second["event"] == "message"
    assert '"id": 1' in second["data"]

    await reg.open(_BASE)
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(events.__anext__(), timeout=1.0)
    assert reg.snapshot()["active_sessions"] == 1
