from datetime import UTC, datetime, timedelta

import pytest

from engagement.errors import StorageUnavailable, Unauthenticated
from engagement.services.presence_service import ONLINE_TEXT, PresenceTracker, format_last_seen
from tests.fakes import FakeUsers

NOW = datetime(2026, 3, 10, 10, 0, tzinfo=UTC)
THRESHOLD = timedelta(seconds=300)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture
def users():
    return FakeUsers()


@pytest.fixture
def tracker(fake_redis, users, clock):
    return PresenceTracker(
        redis_client=fake_redis,
        users=users,
        clock=clock,
        online_threshold_s=300,
        persist_interval_s=300,
    )


@pytest.mark.parametrize(
    "elapsed, expected",
    [
        (timedelta(0), ONLINE_TEXT),
        (timedelta(seconds=300), ONLINE_TEXT),
        (timedelta(seconds=301), "5 min geleden"),
        (timedelta(minutes=59, seconds=59), "59 min geleden"),
        (timedelta(hours=1), "1 uur geleden"),
        (timedelta(hours=23, minutes=59), "23 uur geleden"),
        (timedelta(hours=24), "Gisteren"),
        (timedelta(hours=47), "Gisteren"),
        (timedelta(hours=48), "2 dagen geleden"),
        (timedelta(days=6, hours=23), "6 dagen geleden"),
    ],
)
def test_format_last_seen_relative_labels(elapsed, expected):
    assert format_last_seen(NOW - elapsed, NOW, THRESHOLD) == expected


def test_format_last_seen_switches_to_date_at_exactly_seven_days():
    just_inside = NOW - timedelta(days=7) + timedelta(seconds=1)
    assert format_last_seen(just_inside, NOW, THRESHOLD, tz="UTC") == "6 dagen geleden"
    assert format_last_seen(NOW - timedelta(days=7), NOW, THRESHOLD, tz="UTC") == "Op 03-03-2026"


def test_format_last_seen_uses_local_date_after_a_week():
    # 23:30 UTC on 2 March is already 3 March in Amsterdam
    last_seen = datetime(2026, 3, 2, 23, 30, tzinfo=UTC)
    assert format_last_seen(last_seen, NOW, THRESHOLD, tz="Europe/Amsterdam") == "Op 03-03-2026"


def test_format_last_seen_without_record():
    assert format_last_seen(None, NOW, THRESHOLD) is None


@pytest.mark.asyncio
async def test_touch_marks_user_online_until_threshold(tracker, clock):
    record = await tracker.touch("alice")

    assert (record.user_id, record.last_seen_at) == ("alice", NOW)
    assert await tracker.is_online("alice") is True

    clock.advance(seconds=300)
    assert await tracker.is_online("alice") is True

    clock.advance(seconds=1)
    assert await tracker.is_online("alice") is False


@pytest.mark.asyncio
async def test_older_heartbeat_never_overwrites_newer(tracker, fake_redis, clock):
    await tracker.touch("alice")
    newest = await tracker.last_seen("alice")

    clock.now = NOW - timedelta(minutes=10)
    await tracker.touch("alice")

    assert await tracker.last_seen("alice") == newest


@pytest.mark.asyncio
async def test_touch_requires_identity(tracker):
    with pytest.raises(Unauthenticated):
        await tracker.touch("")


@pytest.mark.asyncio
async def test_unknown_user_is_offline_without_text(tracker):
    assert await tracker.is_online("ghost") is False
    statuses = await tracker.status_for(["ghost"])
    assert statuses["ghost"].is_online is False
    assert statuses["ghost"].last_seen_text is None


@pytest.mark.asyncio
async def test_status_for_evaluates_batch_at_one_instant(tracker, clock):
    await tracker.touch("alice")
    clock.advance(hours=2)
    await tracker.touch("bob")

    statuses = await tracker.status_for(["alice", "bob", "alice"])

    assert list(statuses) == ["alice", "bob"]
    assert statuses["alice"].to_dict() == {"isOnline": False, "lastSeenText": "2 uur geleden"}
    assert statuses["bob"].to_dict() == {"isOnline": True, "lastSeenText": ONLINE_TEXT}


@pytest.mark.asyncio
async def test_online_count_only_counts_recent_heartbeats(tracker, clock):
    await tracker.touch("alice")
    clock.advance(minutes=10)
    await tracker.touch("bob")
    await tracker.touch("carol")

    assert await tracker.online_count() == 2


@pytest.mark.asyncio
async def test_last_seen_is_persisted_once_per_interval(tracker, users, clock):
    await tracker.touch("alice")
    clock.advance(seconds=30)
    await tracker.touch("alice")

    assert users.touches == [("alice", NOW)]


@pytest.mark.asyncio
async def test_touch_raises_when_store_unavailable(tracker, fake_redis):
    fake_redis.raw.fail = True

    with pytest.raises(StorageUnavailable):
        await tracker.touch("alice")


@pytest.mark.asyncio
async def test_status_for_raises_but_safe_variant_degrades(tracker, fake_redis):
    await tracker.touch("alice")
    fake_redis.raw.fail = True

    with pytest.raises(StorageUnavailable):
        await tracker.status_for(["alice"])

    statuses = await tracker.safe_status_for(["alice", "bob"])
    assert statuses["alice"].to_dict() == {"isOnline": None, "lastSeenText": None}
    assert statuses["bob"].is_online is None
