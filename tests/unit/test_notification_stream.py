import asyncio
import json

import pytest

from engagement.errors import StorageUnavailable
from engagement.models.domain.presence_domain import EphemeralEvent, EventType
from engagement.services.notification_stream import NotificationStream, format_frame
from engagement.services.pubsub_service import PubSubBus, notify_channel
from tests.fakes import FakeNotifications


async def never_disconnected():
    return False


def _count(frame: str) -> int:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: ") :])["unreadCount"]


@pytest.fixture
def bus(fake_redis):
    return PubSubBus(redis_client=fake_redis)


@pytest.fixture
def notifications():
    return FakeNotifications({"bob": 3})


def test_format_frame():
    assert format_frame(4) == 'data: {"unreadCount": 4}\n\n'


@pytest.mark.asyncio
async def test_first_frame_is_sent_immediately(notifications, bus):
    stream = NotificationStream(notifications=notifications, bus=bus, interval_s=60)
    events = stream.events("bob", never_disconnected)

    frame = await asyncio.wait_for(events.__anext__(), 1)
    await events.aclose()

    assert _count(frame) == 3
    assert stream.active_streams == 0
    assert bus.active_subscriptions == 0


@pytest.mark.asyncio
async def test_notification_event_wakes_stream_early(notifications, bus):
    stream = NotificationStream(
        notifications=notifications, bus=bus, interval_s=60, disconnect_poll_s=0.05
    )
    events = stream.events("bob", never_disconnected)
    await events.__anext__()

    notifications.counts["bob"] = 4
    await bus.publish(
        notify_channel("bob"), EphemeralEvent(channel="", type=EventType.MESSAGE_NEW, sender_id="alice")
    )

    frame = await asyncio.wait_for(events.__anext__(), 1)
    await events.aclose()

    assert _count(frame) == 4


@pytest.mark.asyncio
async def test_typing_event_does_not_wake_stream(notifications, bus):
    stream = NotificationStream(
        notifications=notifications, bus=bus, interval_s=0.3, disconnect_poll_s=0.05
    )
    events = stream.events("bob", never_disconnected)
    await events.__anext__()
    loop = asyncio.get_running_loop()
    started = loop.time()

    await bus.publish(
        notify_channel("bob"), EphemeralEvent(channel="", type=EventType.TYPING_START, sender_id="alice")
    )
    await asyncio.wait_for(events.__anext__(), 2)
    await events.aclose()

    assert loop.time() - started >= 0.25


@pytest.mark.asyncio
async def test_failed_count_skips_tick(bus):
    class FlakyNotifications(FakeNotifications):
        calls = 0

        async def count_unread(self, user_id):
            self.calls += 1
            if self.calls == 1:
                raise StorageUnavailable("db down")
            return 7

    stream = NotificationStream(
        notifications=FlakyNotifications(), bus=bus, interval_s=0.05, disconnect_poll_s=0.05
    )
    events = stream.events("bob", never_disconnected)

    frame = await asyncio.wait_for(events.__anext__(), 1)
    await events.aclose()

    assert _count(frame) == 7


@pytest.mark.asyncio
async def test_stream_ends_when_client_disconnects(notifications, bus):
    stream = NotificationStream(notifications=notifications, bus=bus, interval_s=60)

    async def disconnected():
        return True

    frames = [frame async for frame in stream.events("bob", disconnected)]

    assert len(frames) == 1
    assert stream.active_streams == 0
    assert bus.active_subscriptions == 0


@pytest.mark.asyncio
async def test_stream_falls_back_to_polling_without_bus(notifications, bus, fake_redis):
    fake_redis.raw.fail = True
    stream = NotificationStream(
        notifications=notifications, bus=bus, interval_s=0.05, disconnect_poll_s=0.05
    )
    events = stream.events("bob", never_disconnected)

    first = await asyncio.wait_for(events.__anext__(), 1)
    notifications.counts["bob"] = 5
    second = await asyncio.wait_for(events.__anext__(), 1)
    await events.aclose()

    assert (_count(first), _count(second)) == (3, 5)
    assert stream.active_streams == 0
