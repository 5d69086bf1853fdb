"""WebSocket endpoint — live notification delivery to the mobile app.

Learn: The socket is accepted anonymous and has to authenticate itself
with the same JWT the REST API uses. Each connection runs one
ConnectionSession, an explicit state machine driven by a receive loop:

    UNAUTHENTICATED ──AUTHENTICATE(valid)──▶ AUTHENTICATED ──close──▶ CLOSED
          │                                                          ▲
          └──bad token / other message / junk / timeout ─ERROR──────┘

- Before authentication only AUTHENTICATE is accepted. Anything else gets
  a single ERROR frame and the socket is closed.
- The handshake runs once. A repeated AUTHENTICATE is ignored.
- AUTHENTICATED is sent before the connection joins the registry, so it
  is always the first frame a client sees after its AUTHENTICATE.
- After authentication the client may send PING (answered with PONG);
  other messages are ignored. Notifications flow server → client only.
- Whatever ends the loop (client close, transport error, rejection), the
  registry binding for this connection is removed on the way out.
"""

import asyncio
import json
from typing import Any, Callable, Optional

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tunetrace.auth.jwt import TokenError, resolve_user_id
from tunetrace.config import settings
from tunetrace.realtime import protocol
from tunetrace.realtime.registry import (
    ConnectionState,
    LiveConnection,
    LiveDeliveryRegistry,
)

logger = structlog.get_logger()
router = APIRouter()


class ConnectionSession:
    """Handshake + message dispatch for one live connection."""

    def __init__(
        self,
        connection: LiveConnection,
        registry: LiveDeliveryRegistry,
        *,
        verify: Callable[[str], str] = resolve_user_id,
        auth_timeout: Optional[float] = None,
    ):
        self.connection = connection
        self.registry = registry
        self.verify = verify
        self.auth_timeout = auth_timeout
        self.log = logger.bind(connection_id=connection.id)

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    async def run(self) -> None:
        """Receive loop. Returns when the connection is closed."""
        self.log.info("ws.connected")
        try:
            while self.state is not ConnectionState.CLOSED:
                text = await self._receive_text()
                await self.handle_text(text)
        except WebSocketDisconnect as e:
            self.log.info("ws.disconnected", code=e.code, user_id=self.connection.user_id)
        except asyncio.TimeoutError:
            await self._reject("Authentication timed out", protocol.CLOSE_AUTH_TIMEOUT)
        finally:
            await self._teardown()

    async def _receive_text(self) -> str:
        receive = self.connection.websocket.receive()
        if self.state is ConnectionState.UNAUTHENTICATED and self.auth_timeout:
            message = await asyncio.wait_for(receive, timeout=self.auth_timeout)
        else:
            message = await receive

        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(code=message.get("code", 1000))
        if message.get("text") is not None:
            return message["text"]
        data = message.get("bytes") or b""
        return data.decode("utf-8", errors="replace")

    async def handle_text(self, text: str) -> None:
        """Dispatch one inbound frame according to the current state."""
        try:
            message: Any = json.loads(text)
        except ValueError:
            message = None

        if not isinstance(message, dict):
            if self.state is ConnectionState.UNAUTHENTICATED:
                await self._reject("Invalid message", protocol.CLOSE_PROTOCOL_ERROR)
            else:
                self.log.warning("ws.invalid_message")
            return

        message_type = message.get("type")

        if self.state is ConnectionState.UNAUTHENTICATED:
            if message_type != protocol.AUTHENTICATE:
                await self._reject("Authentication required", protocol.CLOSE_AUTH_FAILED)
                return
            await self._authenticate(message.get("token"))
            return

        if message_type == protocol.PING:
            await self.connection.send({"type": protocol.PONG})
        elif message_type == protocol.AUTHENTICATE:
            self.log.info("ws.duplicate_authenticate", user_id=self.connection.user_id)
        else:
            self.log.debug("ws.message_ignored", message_type=message_type)

    async def _authenticate(self, token: Any) -> None:
        if not isinstance(token, str) or not token:
            await self._reject("Authentication failed", protocol.CLOSE_AUTH_FAILED)
            return
        try:
            user_id = self.verify(token)
        except TokenError as e:
            self.log.info("ws.authentication_failed", error=str(e))
            await self._reject("Authentication failed", protocol.CLOSE_AUTH_FAILED)
            return

        self.connection.user_id = user_id
        self.connection.state = ConnectionState.AUTHENTICATED
        self.log = self.log.bind(user_id=user_id)

        await self.connection.send(protocol.authenticated())
        await self.registry.bind(user_id, self.connection)
        self.log.info("ws.authenticated", connected_clients=self.registry.connected_clients)

    async def _reject(self, message: str, code: int) -> None:
        """Send one ERROR frame, then close."""
        if self.connection.is_writable:
            try:
                await self.connection.send(protocol.error(message))
            except (RuntimeError, WebSocketDisconnect) as e:
                self.log.debug("ws.error_frame_not_sent", error=str(e))
        self.log.info("ws.rejected", reason=message, code=code)
        await self.connection.close(code=code, reason=message)

    async def _teardown(self) -> None:
        await self.connection.close()
        user_id = self.connection.user_id
        if user_id and await self.registry.unbind(user_id, self.connection):
            self.log.info("ws.unbound", connected_clients=self.registry.connected_clients)


async def notifications_websocket(websocket: WebSocket):
    """Live notification channel. See module docstring for the protocol."""
    await websocket.accept()
    registry: LiveDeliveryRegistry = websocket.app.state.registry
    session = ConnectionSession(
        LiveConnection(websocket),
        registry,
        auth_timeout=settings.ws_auth_timeout_seconds,
    )
    await session.run()


# Mobile clients connect to the bare host (ws://host:port), newer ones to /ws.
router.add_api_websocket_route("/ws", notifications_websocket)
router.add_api_websocket_route("/", notifications_websocket)
