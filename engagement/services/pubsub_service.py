"""
Fan-out bus for ephemeral events on Redis pub/sub.

Delivery is best effort: an event published while nobody listens is gone.
Order is FIFO per channel as seen by one subscriber; nothing is ordered
across channels.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace

import redis.asyncio as redis

from engagement.errors import StorageUnavailable
from engagement.infrastructure.observability.logging import get_logger
from engagement.models.domain.match_domain import MatchRecord
from engagement.models.domain.presence_domain import EphemeralEvent, EventType
from engagement.services.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)

TYPING_CHANNEL_PREFIX = "typing:"
NOTIFY_CHANNEL_PREFIX = "notify:"


def typing_channel(match_id: str) -> str:
    return f"{TYPING_CHANNEL_PREFIX}{match_id}"


def notify_channel(user_id: str) -> str:
    return f"{NOTIFY_CHANNEL_PREFIX}{user_id}"


class Subscription:
    """Receiving side of one channel. Only valid inside ``PubSubBus.subscribe``."""

    def __init__(self, channel: str, pubsub):
        self.channel = channel
        self._pubsub = pubsub

    async def next_event(self, timeout: float | None = None) -> EphemeralEvent | None:
        """
        Wait for the next event on this channel.

        Returns None when ``timeout`` elapses first. Malformed payloads are
        logged and skipped.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=remaining
                )
            except (redis.RedisError, OSError) as e:
                raise StorageUnavailable("Subscription read failed", operation="subscribe") from e

            if message is not None and message.get("type") == "message":
                try:
                    return EphemeralEvent.from_json(message["data"])
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning("Dropping malformed event", channel=self.channel, error=str(e))

            if deadline is not None and loop.time() >= deadline:
                return None

    def __aiter__(self):
        return self

    async def __anext__(self) -> EphemeralEvent:
        event = await self.next_event()
        if event is None:
            raise StopAsyncIteration
        return event


class PubSubBus:
    """Publish/subscribe on named channels, shared by every service instance."""

    def __init__(self, redis_client: FastRedisClient = fast_redis):
        self._redis = redis_client
        self.active_subscriptions = 0

    async def publish(self, channel: str, event: EphemeralEvent) -> int:
        """
        Fire-and-forget publish.

        Returns:
            Number of receivers reported by the broker; 0 with no subscribers
            or when the broker is unreachable
        """
        message = replace(event, channel=channel).to_json()
        receivers = await self._redis.publish(channel, message)
        logger.debug("Event published", channel=channel, type=event.type.value, receivers=receivers)
        return receivers

    @asynccontextmanager
    async def subscribe(self, channel: str) -> AsyncIterator[Subscription]:
        """
        Scoped subscription; the channel is unsubscribed and the connection
        released when the block exits, however it exits.
        """
        try:
            client = await self._redis.get_client()
            pubsub = client.pubsub()
            await pubsub.subscribe(channel)
        except (redis.RedisError, OSError, RuntimeError) as e:
            raise StorageUnavailable(f"Cannot subscribe to {channel}", operation="subscribe") from e

        self.active_subscriptions += 1
        try:
            yield Subscription(channel, pubsub)
        finally:
            self.active_subscriptions -= 1
            try:
                await pubsub.unsubscribe(channel)
            except (redis.RedisError, OSError) as e:
                logger.warning("Unsubscribe failed", channel=channel, error=str(e))
            finally:
                await pubsub.aclose()

    async def publish_typing(self, match: MatchRecord, sender_id: str, is_typing: bool) -> int:
        """
        Send one typing event to the conversation channel and to the other
        participant's private channel.
        """
        event = EphemeralEvent(
            channel="",
            type=EventType.TYPING_START if is_typing else EventType.TYPING_STOP,
            sender_id=sender_id,
            payload={"matchId": match.id, "isTyping": is_typing},
        )
        recipient_id = match.other_participant(sender_id)
        receivers = await self.publish(typing_channel(match.id), event)
        receivers += await self.publish(notify_channel(recipient_id), event)
        return receivers


pubsub_bus = PubSubBus()
