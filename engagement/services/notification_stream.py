"""
Server-sent unread-count stream, one generator per open connection.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AsyncExitStack

from engagement.config import settings
from engagement.errors import StorageUnavailable
from engagement.infrastructure.observability.logging import get_logger
from engagement.models.domain.presence_domain import NOTIFICATION_EVENT_TYPES
from engagement.repositories.notification_repository import NotificationRepository
from engagement.services.pubsub_service import PubSubBus, Subscription, notify_channel, pubsub_bus

logger = get_logger(__name__)

DISCONNECT_POLL_SECONDS = 1.0


def format_frame(unread_count: int) -> str:
    return f"data: {json.dumps({'unreadCount': unread_count})}\n\n"


class NotificationStream:
    """
    Emits the unread count right away, then on every interval tick and early
    whenever a notification-class event lands on the user's private channel.
    """

    def __init__(
        self,
        notifications=NotificationRepository,
        bus: PubSubBus = pubsub_bus,
        interval_s: float | None = None,
        disconnect_poll_s: float = DISCONNECT_POLL_SECONDS,
    ):
        self._notifications = notifications
        self._bus = bus
        self.interval_s = interval_s or settings.NOTIFICATION_STREAM_INTERVAL_SECONDS
        self.disconnect_poll_s = disconnect_poll_s
        self.active_streams = 0

    async def _frame(self, user_id: str) -> str | None:
        try:
            count = await self._notifications.count_unread(user_id)
        except StorageUnavailable as e:
            logger.warning("Unread count failed, skipping tick", user_id=user_id, error=str(e))
            return None
        return format_frame(count)

    async def _wait(self, subscription: Subscription | None, timeout: float) -> tuple[bool, bool]:
        """Returns (woken early, subscription still usable)."""
        if subscription is None:
            await asyncio.sleep(timeout)
            return False, False
        try:
            event = await subscription.next_event(timeout=timeout)
        except StorageUnavailable as e:
            logger.warning("Subscription lost, falling back to polling", error=str(e))
            return False, False
        return event is not None and event.type in NOTIFICATION_EVENT_TYPES, True

    async def events(
        self, user_id: str, is_disconnected: Callable[[], Awaitable[bool]]
    ) -> AsyncIterator[str]:
        """
        Yield SSE frames until the client goes away.

        Args:
            user_id: Authenticated stream owner
            is_disconnected: Probe polled between ticks
        """
        self.active_streams += 1
        logger.info("Notification stream opened", user_id=user_id, active=self.active_streams)
        try:
            async with AsyncExitStack() as stack:
                subscription: Subscription | None = None
                try:
                    subscription = await stack.enter_async_context(
                        self._bus.subscribe(notify_channel(user_id))
                    )
                except StorageUnavailable as e:
                    logger.warning("Stream without wake-ups", user_id=user_id, error=str(e))

                frame = await self._frame(user_id)
                if frame:
                    yield frame

                loop = asyncio.get_running_loop()
                next_tick = loop.time() + self.interval_s
                while not await is_disconnected():
                    remaining = next_tick - loop.time()
                    woken = False
                    if remaining > 0:
                        woken, usable = await self._wait(
                            subscription, min(self.disconnect_poll_s, remaining)
                        )
                        if not usable:
                            subscription = None
                    if woken or loop.time() >= next_tick:
                        next_tick = loop.time() + self.interval_s
                        frame = await self._frame(user_id)
                        if frame:
                            yield frame
        finally:
            self.active_streams -= 1
            logger.info("Notification stream closed", user_id=user_id, active=self.active_streams)


notification_stream = NotificationStream()
