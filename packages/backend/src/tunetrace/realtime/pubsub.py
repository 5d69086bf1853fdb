"""Redis pub/sub — notification fan-out across API instances.

Learn: The live-delivery registry only knows the sockets of its own
process. With several instances behind a load balancer, the poller on
instance A can't reach a user connected to instance B. When
TUNETRACE_REDIS_FANOUT is on, the poller publishes through RedisFanout
instead, and every instance runs relay_notifications(), which feeds
each message into its local registry. Only the instance holding the
user's socket actually delivers.

Redis pub/sub is fire-and-forget. If no one is listening, the message
is lost. That's fine: notifications are durable in the database and
clients reconcile through the REST API.
"""

import json
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from tunetrace.config import settings
from tunetrace.realtime.registry import LiveDeliveryRegistry

logger = structlog.get_logger()

NOTIFICATION_CHANNEL = "tunetrace:notifications"

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection before publishing it to get_redis()
    try:
        await client.ping()
    except RedisError:
        await client.aclose()
        raise
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


class RedisFanout:
    """Notifier that publishes to every instance instead of pushing locally."""

    def __init__(self, redis: aioredis.Redis, channel: str = NOTIFICATION_CHANNEL):
        self.redis = redis
        self.channel = channel

    async def push(self, user_id: str, notification: dict[str, Any]) -> bool:
        """Publish; True means published, not delivered."""
        payload = json.dumps({"userId": str(user_id), "notification": notification})
        try:
            await self.redis.publish(self.channel, payload)
        except RedisError as e:
            logger.warning("fanout.publish_failed", user_id=str(user_id), error=str(e))
            return False
        return True


async def relay_notifications(
    registry: LiveDeliveryRegistry,
    redis: Optional[aioredis.Redis] = None,
    channel: str = NOTIFICATION_CHANNEL,
) -> None:
    """Forward published notifications into the local registry until cancelled."""
    r = redis or get_redis()
    pubsub = r.pubsub()
    await pubsub.subscribe(channel)
    logger.info("fanout.relay_started", channel=channel)
    try:
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                payload = json.loads(message["data"])
                user_id = str(payload["userId"])
                notification = payload["notification"]
            except (ValueError, KeyError, TypeError):
                logger.warning("fanout.bad_message", data=str(message.get("data"))[:200])
                continue
            await registry.push(user_id, notification)
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        logger.info("fanout.relay_stopped")
