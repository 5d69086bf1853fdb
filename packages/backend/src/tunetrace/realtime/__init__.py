"""Real-time infrastructure — live notification delivery over WebSocket.

Learn: Notifications reach a connected client through one path:
    poller → Notifier.push → LiveDeliveryRegistry → WebSocket

The Notifier is either the local registry itself, or (multi-instance,
TUNETRACE_REDIS_FANOUT) a Redis publisher whose messages every instance
relays into its own registry. Delivery is best effort; the database is
the source of truth.
"""
