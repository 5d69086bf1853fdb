"""Live channel message types.

Client → server:  {"type": "AUTHENTICATE", "token": "<jwt>"}
                  {"type": "PING"}
Server → client:  {"type": "AUTHENTICATED", "message": ...}
                  {"type": "ERROR", "message": ...}
                  {"type": "NEW_NOTIFICATION", "notification": {...}}
                  {"type": "PONG"}

All frames are text frames carrying one JSON object.
"""

from typing import Any

AUTHENTICATE = "AUTHENTICATE"
AUTHENTICATED = "AUTHENTICATED"
ERROR = "ERROR"
NEW_NOTIFICATION = "NEW_NOTIFICATION"
PING = "PING"
PONG = "PONG"

# Close codes (4000-4999 are application-defined)
CLOSE_AUTH_FAILED = 4001
CLOSE_PROTOCOL_ERROR = 4002
CLOSE_AUTH_TIMEOUT = 4008


def authenticated() -> dict[str, Any]:
    return {"type": AUTHENTICATED, "message": "WebSocket connection established"}


def error(message: str) -> dict[str, Any]:
    return {"type": ERROR, "message": message}


def new_notification(notification: dict[str, Any]) -> dict[str, Any]:
    return {"type": NEW_NOTIFICATION, "notification": notification}
