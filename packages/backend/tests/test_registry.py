"""Live-delivery registry tests — binding, replacement, best-effort push."""

import pytest
from starlette.websockets import WebSocketState

from tunetrace.realtime.registry import ConnectionState, LiveConnection, LiveDeliveryRegistry

NOTIFICATION = {"_id": "n-1", "type": "NEW_CONCERT", "title": "T", "message": "M",
                "data": {}, "isRead": False, "createdAt": "2026-01-01T00:00:00"}


@pytest.mark.asyncio
async def test_push_to_bound_user(fake_ws):
    registry = LiveDeliveryRegistry()
    ws = fake_ws()
    await registry.bind("u1", LiveConnection(ws))

    assert await registry.push("u1", NOTIFICATION) is True
    assert ws.sent == [{"type": "NEW_NOTIFICATION", "notification": NOTIFICATION}]


@pytest.mark.asyncio
async def test_push_without_binding_is_noop():
    registry = LiveDeliveryRegistry()
    assert await registry.push("nobody", NOTIFICATION) is False


@pytest.mark.asyncio
async def test_second_binding_replaces_first(fake_ws):
    """Two connections for one user → one entry; pushes reach only the newest."""
    registry = LiveDeliveryRegistry()
    first_ws, second_ws = fake_ws(), fake_ws()
    first, second = LiveConnection(first_ws), LiveConnection(second_ws)

    assert await registry.bind("u1", first) is None
    assert await registry.bind("u1", second) is first
    assert registry.connected_clients == 1
    assert await registry.lookup("u1") is second

    assert await registry.push("u1", NOTIFICATION) is True
    assert first_ws.sent == []
    assert len(second_ws.frames("NEW_NOTIFICATION")) == 1

    # The replaced socket stays open; it just stops receiving pushes.
    assert first_ws.close_code is None


@pytest.mark.asyncio
async def test_stale_unbind_does_not_evict_replacement(fake_ws):
    registry = LiveDeliveryRegistry()
    first, second = LiveConnection(fake_ws()), LiveConnection(fake_ws())
    await registry.bind("u1", first)
    await registry.bind("u1", second)

    assert await registry.unbind("u1", first) is False
    assert await registry.lookup("u1") is second

    assert await registry.unbind("u1", second) is True
    assert registry.connected_clients == 0


@pytest.mark.asyncio
async def test_push_to_closed_socket_returns_false(fake_ws):
    registry = LiveDeliveryRegistry()
    ws = fake_ws()
    await registry.bind("u1", LiveConnection(ws))
    ws.client_state = WebSocketState.DISCONNECTED

    assert await registry.push("u1", NOTIFICATION) is False
    assert ws.sent == []


@pytest.mark.asyncio
async def test_push_send_error_is_swallowed(fake_ws):
    registry = LiveDeliveryRegistry()
    ws = fake_ws()
    ws.fail_sends = True
    await registry.bind("u1", LiveConnection(ws))

    assert await registry.push("u1", NOTIFICATION) is False


@pytest.mark.asyncio
async def test_push_times_out(fake_ws):
    registry = LiveDeliveryRegistry(push_timeout=0.05)
    ws = fake_ws()
    ws.send_delay = 1.0
    await registry.bind("u1", LiveConnection(ws))

    assert await registry.push("u1", NOTIFICATION) is False


@pytest.mark.asyncio
async def test_connection_close_is_idempotent(fake_ws):
    ws = fake_ws()
    conn = LiveConnection(ws)
    await conn.close(code=4001)
    await conn.close(code=1000)

    assert conn.state is ConnectionState.CLOSED
    assert ws.close_code == 4001
    assert conn.is_writable is False
