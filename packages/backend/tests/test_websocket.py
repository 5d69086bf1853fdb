"""Live channel tests — the authentication handshake state machine.

Learn: Two layers:
1. ConnectionSession driven directly with a FakeWebSocket, so every
   transition (and its registry side effect) is observable.
2. A real socket round trip through Starlette's TestClient against
   both mount points (/ws and the bare host).
"""

import uuid

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tunetrace.auth.jwt import TokenError, create_access_token
from tunetrace.main import create_app
from tunetrace.realtime import protocol
from tunetrace.realtime.registry import ConnectionState, LiveConnection, LiveDeliveryRegistry
from tunetrace.realtime.websocket import ConnectionSession

TOKENS = {"token-u1": "u1", "token-u2": "u2"}


def fake_verify(token: str) -> str:
    try:
        return TOKENS[token]
    except KeyError:
        raise TokenError("Invalid token")


def _session(ws, registry=None, auth_timeout=None):
    return ConnectionSession(
        LiveConnection(ws),
        registry if registry is not None else LiveDeliveryRegistry(),
        verify=fake_verify,
        auth_timeout=auth_timeout,
    )


# ═══════════════════════════════════════════════════════════
# State machine
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_valid_token_binds_and_replies(fake_ws):
    registry = LiveDeliveryRegistry()
    ws = fake_ws()
    session = _session(ws, registry)

    await session.handle_text('{"type": "AUTHENTICATE", "token": "token-u1"}')

    assert session.state is ConnectionState.AUTHENTICATED
    assert ws.sent == [protocol.authenticated()]
    assert (await registry.lookup("u1")) is session.connection


@pytest.mark.asyncio
async def test_full_session_unbinds_on_disconnect(fake_ws):
    registry = LiveDeliveryRegistry()
    ws = fake_ws()
    ws.feed({"type": "AUTHENTICATE", "token": "token-u1"})
    ws.feed({"type": "PING"})
    ws.feed({"type": "SOMETHING_ELSE"})
    ws.disconnect()

    await _session(ws, registry).run()

    assert [m["type"] for m in ws.sent] == ["AUTHENTICATED", "PONG"]
    assert registry.connected_clients == 0


@pytest.mark.asyncio
async def test_invalid_token_sends_one_error_and_closes(fake_ws):
    registry = LiveDeliveryRegistry()
    ws = fake_ws()
    ws.feed({"type": "AUTHENTICATE", "token": "forged"})
    ws.feed({"type": "AUTHENTICATE", "token": "token-u1"})  # never read

    session = _session(ws, registry)
    await session.run()

    assert ws.sent == [protocol.error("Authentication failed")]
    assert ws.close_code == protocol.CLOSE_AUTH_FAILED
    assert session.state is ConnectionState.CLOSED
    assert registry.connected_clients == 0


@pytest.mark.asyncio
async def test_missing_token_is_rejected(fake_ws):
    ws = fake_ws()
    ws.feed({"type": "AUTHENTICATE"})
    await _session(ws).run()
    assert ws.frames("ERROR") and ws.close_code == protocol.CLOSE_AUTH_FAILED


@pytest.mark.asyncio
async def test_message_before_authenticate_is_rejected(fake_ws):
    ws = fake_ws()
    ws.feed({"type": "PING"})
    await _session(ws).run()

    assert ws.sent == [protocol.error("Authentication required")]
    assert ws.close_code == protocol.CLOSE_AUTH_FAILED


@pytest.mark.asyncio
async def test_junk_before_authenticate_is_rejected(fake_ws):
    ws = fake_ws()
    ws.feed_raw("this is not json")
    await _session(ws).run()

    assert ws.sent == [protocol.error("Invalid message")]
    assert ws.close_code == protocol.CLOSE_PROTOCOL_ERROR


@pytest.mark.asyncio
async def test_junk_after_authenticate_is_ignored(fake_ws):
    ws = fake_ws()
    ws.feed({"type": "AUTHENTICATE", "token": "token-u1"})
    ws.feed_raw("[1, 2, 3]")
    ws.feed({"type": "PING"})
    ws.disconnect()
    await _session(ws).run()

    assert [m["type"] for m in ws.sent] == ["AUTHENTICATED", "PONG"]
    assert ws.close_code is None or ws.close_code == 1000


@pytest.mark.asyncio
async def test_authentication_timeout(fake_ws):
    ws = fake_ws()
    await _session(ws, auth_timeout=0.05).run()

    assert ws.sent == [protocol.error("Authentication timed out")]
    assert ws.close_code == protocol.CLOSE_AUTH_TIMEOUT


@pytest.mark.asyncio
async def test_handshake_runs_once(fake_ws):
    registry = LiveDeliveryRegistry()
    ws = fake_ws()
    session = _session(ws, registry)

    await session.handle_text('{"type": "AUTHENTICATE", "token": "token-u1"}')
    await session.handle_text('{"type": "AUTHENTICATE", "token": "token-u2"}')

    assert len(ws.frames("AUTHENTICATED")) == 1
    assert session.connection.user_id == "u1"
    assert await registry.lookup("u2") is None


class PushOnBindRegistry(LiveDeliveryRegistry):
    """Delivers a notification the moment a connection is bound."""

    async def bind(self, user_id, connection):
        await super().bind(user_id, connection)
        await self.push(user_id, {"_id": "n-during-handshake"})


@pytest.mark.asyncio
async def test_authenticated_precedes_pushes_racing_the_handshake(fake_ws):
    ws = fake_ws()
    session = _session(ws, PushOnBindRegistry())

    await session.handle_text('{"type": "AUTHENTICATE", "token": "token-u1"}')

    assert [m["type"] for m in ws.sent] == ["AUTHENTICATED", "NEW_NOTIFICATION"]
    assert ws.sent[1]["notification"]["_id"] == "n-during-handshake"


@pytest.mark.asyncio
async def test_old_connection_close_keeps_new_binding(fake_ws):
    """User reconnects; the old socket closing later must not unbind the new one."""
    registry = LiveDeliveryRegistry()
    old_ws, new_ws = fake_ws(), fake_ws()
    old, new = _session(old_ws, registry), _session(new_ws, registry)

    await old.handle_text('{"type": "AUTHENTICATE", "token": "token-u1"}')
    await new.handle_text('{"type": "AUTHENTICATE", "token": "token-u1"}')
    assert registry.connected_clients == 1

    old_ws.disconnect()
    await old.run()

    assert await registry.lookup("u1") is new.connection
    assert await registry.push("u1", {"_id": "n1"}) is True
    assert old_ws.frames("NEW_NOTIFICATION") == []
    assert new_ws.frames("NEW_NOTIFICATION") == [protocol.new_notification({"_id": "n1"})]


# ═══════════════════════════════════════════════════════════
# Real socket round trip
# ═══════════════════════════════════════════════════════════


@pytest.mark.parametrize("path", ["/ws", "/"])
def test_handshake_over_real_socket(path):
    app = create_app()
    client = TestClient(app)
    user_id = str(uuid.uuid4())
    token = create_access_token(user_id)

    with client.websocket_connect(path) as ws:
        ws.send_json({"type": "AUTHENTICATE", "token": token})
        assert ws.receive_json()["type"] == "AUTHENTICATED"
        assert app.state.registry.connected_clients == 1

        ws.send_json({"type": "PING"})
        assert ws.receive_json() == {"type": "PONG"}

    # Teardown has run by the time the test client has closed the socket.
    assert app.state.registry.connected_clients == 0


def test_bad_token_over_real_socket():
    app = create_app()
    client = TestClient(app)

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "AUTHENTICATE", "token": "not-a-jwt"})
        msg = ws.receive_json()
        assert msg["type"] == "ERROR"
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
        assert exc.value.code == protocol.CLOSE_AUTH_FAILED

    assert app.state.registry.connected_clients == 0


def test_expired_token_over_real_socket():
    app = create_app()
    client = TestClient(app)
    token = create_access_token(str(uuid.uuid4()), expires_minutes=-5)

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "AUTHENTICATE", "token": token})
        assert ws.receive_json() == protocol.error("Authentication failed")
