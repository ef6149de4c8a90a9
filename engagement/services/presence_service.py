"""
Presence tracking on the shared Redis store.

Heartbeats land in one sorted set (member = user id, score = epoch seconds of
the last heartbeat). Every instance reads and writes the same set, so
"online" means the same thing on every node. Records are never deleted; a
record older than the online threshold simply reads as offline.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import redis.asyncio as redis

from engagement.config import settings
from engagement.errors import StorageUnavailable, Unauthenticated
from engagement.infrastructure.observability.logging import get_logger
from engagement.models.domain.presence_domain import PresenceRecord, PresenceStatus
from engagement.repositories.user_repository import UserRepository
from engagement.services.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)

PRESENCE_KEY = "presence:last_seen"
PERSIST_MARKER_PREFIX = "presence:persisted:"

# Last-seen text boundaries
MINUTES_TEXT_LIMIT = timedelta(hours=1)
HOURS_TEXT_LIMIT = timedelta(hours=24)
YESTERDAY_TEXT_LIMIT = timedelta(hours=48)
DAYS_TEXT_LIMIT = timedelta(days=7)

ONLINE_TEXT = "Nu online"

_STORE_ERRORS = (redis.RedisError, OSError, RuntimeError)


def format_last_seen(
    last_seen_at: datetime | None,
    now: datetime,
    online_threshold: timedelta | None = None,
    tz: str | None = None,
) -> str | None:
    """
    Human readable Dutch last-seen label.

    Args:
        last_seen_at: Last heartbeat, or None when the user never sent one
        now: Reference instant, shared with the online computation
        online_threshold: Window within which the user counts as online
        tz: Timezone used for the absolute date label

    Returns:
        The label, or None when there is no record
    """
    if last_seen_at is None:
        return None

    threshold = online_threshold or timedelta(seconds=settings.PRESENCE_ONLINE_THRESHOLD_SECONDS)
    elapsed = now - last_seen_at
    if elapsed < timedelta(0):
        elapsed = timedelta(0)

    if elapsed <= threshold:
        return ONLINE_TEXT
    if elapsed < MINUTES_TEXT_LIMIT:
        return f"{int(elapsed.total_seconds() // 60)} min geleden"
    if elapsed < HOURS_TEXT_LIMIT:
        return f"{int(elapsed.total_seconds() // 3600)} uur geleden"
    if elapsed < YESTERDAY_TEXT_LIMIT:
        return "Gisteren"
    if elapsed < DAYS_TEXT_LIMIT:
        return f"{elapsed.days} dagen geleden"

    local = last_seen_at.astimezone(ZoneInfo(tz or settings.PLATFORM_TIMEZONE))
    return f"Op {local.strftime('%d-%m-%Y')}"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PresenceTracker:
    """Records heartbeats and answers online/last-seen queries."""

    def __init__(
        self,
        redis_client: FastRedisClient = fast_redis,
        users=UserRepository,
        clock: Callable[[], datetime] = _utcnow,
        online_threshold_s: int | None = None,
        persist_interval_s: int | None = None,
    ):
        self._redis = redis_client
        self._users = users
        self._clock = clock
        self.online_threshold = timedelta(
            seconds=online_threshold_s or settings.PRESENCE_ONLINE_THRESHOLD_SECONDS
        )
        self._persist_interval_s = persist_interval_s or settings.PRESENCE_PERSIST_INTERVAL_SECONDS

    async def _client(self):
        try:
            return await self._redis.get_client()
        except _STORE_ERRORS as e:
            raise StorageUnavailable("Presence store unavailable", operation="connect") from e

    async def touch(self, user_id: str) -> PresenceRecord:
        """Record a heartbeat for ``user_id`` at the current instant."""
        if not user_id or not isinstance(user_id, str):
            raise Unauthenticated("Heartbeat without a user identity", operation="presence_touch")

        now = self._clock()
        client = await self._client()
        try:
            # GT: an older timestamp never overwrites a newer one
            await client.zadd(PRESENCE_KEY, {user_id: now.timestamp()}, gt=True)
        except _STORE_ERRORS as e:
            logger.error("Presence write failed", user_id=user_id, error=str(e))
            raise StorageUnavailable("Presence write failed", operation="presence_touch") from e

        await self._persist_last_seen(user_id, now)
        return PresenceRecord(user_id=user_id, last_seen_at=now)

    async def _persist_last_seen(self, user_id: str, now: datetime) -> None:
        marker = f"{PERSIST_MARKER_PREFIX}{user_id}"
        if not await self._redis.set_if_absent(marker, "1", self._persist_interval_s):
            return
        try:
            await self._users.touch_last_seen(user_id, now)
        except StorageUnavailable as e:
            logger.warning("Could not persist last_seen_at", user_id=user_id, error=str(e))

    async def last_seen(self, user_id: str) -> datetime | None:
        client = await self._client()
        try:
            score = await client.zscore(PRESENCE_KEY, user_id)
        except _STORE_ERRORS as e:
            raise StorageUnavailable("Presence read failed", operation="presence_read") from e
        if score is None:
            return None
        return datetime.fromtimestamp(float(score), UTC)

    async def is_online(self, user_id: str) -> bool:
        last_seen_at = await self.last_seen(user_id)
        if last_seen_at is None:
            return False
        return self._clock() - last_seen_at <= self.online_threshold

    async def status_for(self, user_ids: Iterable[str]) -> dict[str, PresenceStatus]:
        """
        Batch presence lookup, evaluated at a single instant.

        Raises:
            StorageUnavailable: If the presence store cannot be read
        """
        ids = list(dict.fromkeys(uid for uid in user_ids if uid))
        if not ids:
            return {}

        client = await self._client()
        try:
            scores = await client.zmscore(PRESENCE_KEY, ids)
        except _STORE_ERRORS as e:
            raise StorageUnavailable("Presence read failed", operation="presence_batch") from e

        now = self._clock()
        statuses: dict[str, PresenceStatus] = {}
        for user_id, score in zip(ids, scores, strict=True):
            if score is None:
                statuses[user_id] = PresenceStatus(is_online=False, last_seen_text=None)
                continue
            last_seen_at = datetime.fromtimestamp(float(score), UTC)
            statuses[user_id] = PresenceStatus(
                is_online=now - last_seen_at <= self.online_threshold,
                last_seen_text=format_last_seen(last_seen_at, now, self.online_threshold),
            )
        return statuses

    async def safe_status_for(self, user_ids: Iterable[str]) -> dict[str, PresenceStatus]:
        """Like ``status_for`` but degrades to unknown statuses when the store is down."""
        ids = list(dict.fromkeys(uid for uid in user_ids if uid))
        try:
            return await self.status_for(ids)
        except StorageUnavailable as e:
            logger.warning("Presence degraded to unknown", count=len(ids), error=str(e))
            return {uid: PresenceStatus(is_online=None, last_seen_text=None) for uid in ids}

    async def online_count(self) -> int:
        cutoff = (self._clock() - self.online_threshold).timestamp()
        client = await self._client()
        try:
            return int(await client.zcount(PRESENCE_KEY, cutoff, "+inf"))
        except _STORE_ERRORS as e:
            raise StorageUnavailable("Presence count failed", operation="presence_count") from e


presence_tracker = PresenceTracker()
