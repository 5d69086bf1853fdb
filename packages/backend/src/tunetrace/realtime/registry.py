"""Live-delivery registry — which user is connected on which socket.

Learn: One process-wide table, user_id → LiveConnection, owned by the app
(app.state.registry) and handed explicitly to whoever needs it: the
WebSocket handshake binds, connection teardown unbinds, the poller pushes.
A single asyncio.Lock guards the table; contention is one entry per
connected user, so nothing fancier is needed.

Rules:
- At most one connection per user. A second authenticated connection
  replaces the first (last writer wins). The old socket is NOT closed,
  it just stops receiving pushes.
- unbind() only removes the entry if it still points at the connection
  being torn down, so a stale close can't evict its replacement.
- push() is best effort: no entry, a closed socket, a send error or a
  send timeout all just return False. Nothing is retried; clients catch
  up through the REST API.
"""

import asyncio
import json
import uuid
from enum import Enum
from typing import Any, Optional, Protocol

import structlog
from starlette.websockets import WebSocket, WebSocketState

from tunetrace.realtime import protocol

logger = structlog.get_logger()


class Notifier(Protocol):
    """Anything the poller can hand a freshly created notification to."""

    async def push(self, user_id: str, notification: dict[str, Any]) -> bool: ...


class ConnectionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class LiveConnection:
    """One accepted WebSocket plus its handshake state.

    Sends are serialized with a per-connection lock: handshake replies
    and poller pushes can race on the same socket.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.id = uuid.uuid4().hex[:12]
        self.state = ConnectionState.UNAUTHENTICATED
        self.user_id: Optional[str] = None
        self._send_lock = asyncio.Lock()

    @property
    def is_writable(self) -> bool:
        return (
            self.state is not ConnectionState.CLOSED
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, message: dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_text(json.dumps(message))

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        """Close the socket once; later calls are no-ops."""
        writable = self.is_writable
        self.state = ConnectionState.CLOSED
        if not writable:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except RuntimeError as e:
            # Peer closed between the state check and our close frame.
            logger.debug("ws.close_raced", connection_id=self.id, error=str(e))


class LiveDeliveryRegistry:
    """Lock-guarded user_id → LiveConnection table."""

    def __init__(self, push_timeout: float = 5.0):
        self.push_timeout = push_timeout
        self._connections: dict[str, LiveConnection] = {}
        self._lock = asyncio.Lock()

    @property
    def connected_clients(self) -> int:
        return len(self._connections)

    async def bind(self, user_id: str, connection: LiveConnection) -> Optional[LiveConnection]:
        """Point user_id at connection. Returns the connection it replaced, if any."""
        async with self._lock:
            previous = self._connections.get(user_id)
            self._connections[user_id] = connection

        if previous is connection:
            return None
        if previous is not None:
            logger.info(
                "ws.binding_replaced",
                user_id=user_id,
                old_connection_id=previous.id,
                new_connection_id=connection.id,
            )
        return previous

    async def unbind(self, user_id: str, connection: LiveConnection) -> bool:
        """Remove the binding if it still points at this connection."""
        async with self._lock:
            if self._connections.get(user_id) is connection:
                del self._connections[user_id]
                return True
            return False

    async def lookup(self, user_id: str) -> Optional[LiveConnection]:
        async with self._lock:
            return self._connections.get(user_id)

    async def push(self, user_id: str, notification: dict[str, Any]) -> bool:
        """Send one NEW_NOTIFICATION frame to the user's live connection.

        Returns True only if the frame was written. Never raises.
        """
        user_id = str(user_id)
        connection = await self.lookup(user_id)
        if connection is None or not connection.is_writable:
            return False

        log = logger.bind(
            user_id=user_id,
            connection_id=connection.id,
            notification_id=notification.get("_id"),
        )
        try:
            await asyncio.wait_for(
                connection.send(protocol.new_notification(notification)),
                timeout=self.push_timeout,
            )
        except asyncio.TimeoutError:
            log.warning("ws.push_timeout", timeout=self.push_timeout)
            return False
        except Exception as e:
            log.warning("ws.push_failed", error=str(e))
            return False

        log.info("ws.notification_pushed")
        return True
