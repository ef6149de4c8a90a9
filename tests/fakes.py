"""In-memory fakes shared by the unit and integration tests."""

import asyncio
from collections import defaultdict
from datetime import UTC, datetime

import redis.asyncio as redis

from engagement.features.campaigns.domain import (
    PROFILE_NUDGE_THRESHOLD,
    ActivitySummary,
    AudienceExclusion,
    ConversationNudge,
    DeliveryOutcome,
    GuardianWeekSummary,
    UserRecord,
    VariantStats,
    profile_score,
)
from engagement.features.campaigns.repository import ALL_MARKETING, PREFERENCE_GROUPS
from engagement.features.campaigns.services.guard import FrequencyGuard
from engagement.features.campaigns.services.renderer import CampaignRenderer
from engagement.services.email_transport import SendResult

NOW = datetime(2026, 3, 10, 10, 0, tzinfo=UTC)


# --------------------------------------------------------------------------
# Redis
# --------------------------------------------------------------------------


class FakePubSub:
    def __init__(self, redis_fake: "FakeRedis"):
        self._redis = redis_fake
        self.queue: asyncio.Queue = asyncio.Queue()
        self.channels: set[str] = set()
        self.closed = False

    async def subscribe(self, *channels: str) -> None:
        if self._redis.fail:
            raise redis.ConnectionError("down")
        for channel in channels:
            self.channels.add(channel)
            self._redis.subscribers[channel].append(self)

    async def unsubscribe(self, *channels: str) -> None:
        for channel in channels or tuple(self.channels):
            self.channels.discard(channel)
            if self in self._redis.subscribers[channel]:
                self._redis.subscribers[channel].remove(self)

    async def get_message(self, ignore_subscribe_messages: bool = False, timeout: float | None = None):
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except TimeoutError:
            return None

    async def aclose(self) -> None:
        self.closed = True


class FakeRedis:
    """In-memory stand-in for the ``redis.asyncio`` calls the services make."""

    def __init__(self):
        self.zsets: dict[str, dict[str, float]] = defaultdict(dict)
        self.store: dict[str, str] = {}
        self.subscribers: dict[str, list[FakePubSub]] = defaultdict(list)
        self.published: list[tuple[str, str]] = []
        self.fail = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("Connection refused")

    async def ping(self):
        self._check()
        return True

    async def zadd(self, key, mapping, gt=False):
        self._check()
        zset = self.zsets[key]
        changed = 0
        for member, score in mapping.items():
            if gt and member in zset and score <= zset[member]:
                continue
            zset[member] = float(score)
            changed += 1
        return changed

    async def zscore(self, key, member):
        self._check()
        return self.zsets[key].get(member)

    async def zmscore(self, key, members):
        self._check()
        return [self.zsets[key].get(m) for m in members]

    async def zcount(self, key, min_score, max_score):
        self._check()
        high = float("inf") if max_score == "+inf" else float(max_score)
        return sum(1 for s in self.zsets[key].values() if float(min_score) <= s <= high)

    async def set(self, key, value, nx=False, ex=None):
        self._check()
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def publish(self, channel, message):
        self._check()
        self.published.append((channel, message))
        for sub in self.subscribers[channel]:
            sub.queue.put_nowait({"type": "message", "channel": channel, "data": message})
        return len(self.subscribers[channel])

    def pubsub(self):
        return FakePubSub(self)


class FakeRedisClient:
    """Mirrors ``FastRedisClient``: raw access raises, convenience calls degrade."""

    def __init__(self, raw: FakeRedis | None = None):
        self.raw = raw or FakeRedis()

    async def get_client(self):
        return self.raw

    async def ping(self) -> bool:
        try:
            return await self.raw.ping()
        except redis.RedisError:
            return False

    async def set_if_absent(self, key, value, ttl_s):
        try:
            return bool(await self.raw.set(key, value, nx=True, ex=ttl_s))
        except redis.RedisError:
            return False

    async def publish(self, channel, message):
        try:
            return await self.raw.publish(channel, message)
        except redis.RedisError:
            return 0


# --------------------------------------------------------------------------
# Repositories
# --------------------------------------------------------------------------


class FakeUsers:
    def __init__(self):
        self.touches: list[tuple[str, datetime]] = []

    async def touch_last_seen(self, user_id, seen_at):
        self.touches.append((user_id, seen_at))
        return True


class FakeNotifications:
    def __init__(self, counts=None):
        self.counts = dict(counts or {})
        self.fail = False

    async def count_unread(self, user_id):
        from engagement.errors import StorageUnavailable

        if self.fail:
            raise StorageUnavailable("db down")
        return self.counts.get(user_id, 0)


class FakeDeliveries:
    def __init__(self):
        self.outcomes: list[DeliveryOutcome] = []
        self.claims: set[tuple[str, str, str]] = set()
        self.released: list[tuple[str, str, str]] = []

    async def last_success_at(self, user_id, category):
        times = [
            o.created_at
            for o in self.outcomes
            if o.user_id == user_id and o.category == category and o.success
        ]
        return max(times) if times else None

    async def has_success_since(self, user_id, category, since):
        return any(
            o.user_id == user_id
            and o.category == category
            and o.success
            and (since is None or o.created_at >= since)
            for o in self.outcomes
        )

    async def counted_sends_since(self, user_id, day_start, week_start):
        counted = [
            o for o in self.outcomes if o.user_id == user_id and o.success and o.counts_toward_caps
        ]
        return (
            sum(1 for o in counted if o.created_at >= day_start),
            sum(1 for o in counted if o.created_at >= week_start),
        )

    async def claim(self, user_id, category, window_key):
        key = (user_id, category, window_key)
        if key in self.claims:
            return False
        self.claims.add(key)
        return True

    async def release_claim(self, user_id, category, window_key):
        key = (user_id, category, window_key)
        self.claims.discard(key)
        self.released.append(key)

    async def record_outcome(self, outcome):
        self.outcomes.append(outcome)
        return str(len(self.outcomes))

    def add_success(self, user_id, category, at, counts_toward_caps=True):
        self.outcomes.append(
            DeliveryOutcome(
                user_id=user_id,
                category=category,
                campaign=category,
                recipient_email=f"{user_id}@example.com",
                success=True,
                created_at=at,
                counts_toward_caps=counts_toward_caps,
            )
        )


class FakePreferences:
    def __init__(self):
        self.opt_outs: dict[str, set[str]] = {}
        self.suppressed: dict[str, str] = {}
        self.consent: dict[str, bool] = {}

    async def get_opt_outs(self, user_id):
        return set(self.opt_outs.get(user_id, set()))

    async def get_preferences(self, user_id):
        if user_id not in self.consent:
            return None
        opt_outs = self.opt_outs.get(user_id, set())
        preferences = {group: group not in opt_outs for group in PREFERENCE_GROUPS}
        preferences["marketing_consent"] = self.consent[user_id]
        return preferences

    async def update_preferences(self, user_id, groups):
        opt_outs = self.opt_outs.setdefault(user_id, set())
        for group, enabled in groups.items():
            if enabled:
                opt_outs.discard(group)
            else:
                opt_outs.add(group)

    async def set_marketing_consent(self, user_id, consent):
        self.consent[user_id] = consent

    async def is_suppressed(self, email):
        return email.lower() in self.suppressed

    async def suppress(self, email, reason):
        self.suppressed[email.lower()] = reason


class FakeRecipients:
    """
    Selection finders over an in-memory user list.

    Exclusions are always recorded; they only filter when ``apply_exclusions``
    is set, so most tests still drive the guard's own refusals.
    """

    def __init__(self, users=None, deliveries=None, preferences=None):
        self.users: list[UserRecord] = list(users or [])
        self.deliveries = deliveries
        self.preferences = preferences
        self.interested: set[str] = set()
        self.unmessaged: list[ConversationNudge] = []
        self.unanswered: list[ConversationNudge] = []
        self.guardian_notified: list[tuple[str, datetime]] = []
        self.exclusions: list[AudienceExclusion] = []
        self.apply_exclusions = False
        self.limit: int | None = None

    def _excluded(self, user, exclude):
        deliveries, preferences = self.deliveries, self.preferences
        if deliveries is not None:
            if any(
                o.user_id == user.id
                and o.category == exclude.category
                and o.success
                and (exclude.since is None or o.created_at >= exclude.since)
                for o in deliveries.outcomes
            ):
                return True
            if (user.id, exclude.category, exclude.window_key) in deliveries.claims:
                return True
        if exclude.marketing and preferences is not None:
            opt_outs = preferences.opt_outs.get(user.id, set())
            if ALL_MARKETING in opt_outs or exclude.preference in opt_outs:
                return True
            if user.email and user.email.lower() in preferences.suppressed:
                return True
        return False

    def _pick(self, items, exclude, limit, user=lambda item: item):
        if exclude is not None:
            self.exclusions.append(exclude)
            if self.apply_exclusions:
                items = [item for item in items if not self._excluded(user(item), exclude)]
        limit = limit or self.limit
        return items[:limit] if limit else items

    async def find_by_birthday(self, month_days, exclude=None, limit=None):
        users = [u for u in self.users if u.birth_date and u.birth_date.strftime("%m-%d") in month_days]
        return self._pick(users, exclude, limit)

    async def find_last_active_between(self, oldest, newest, exclude=None, limit=None):
        users = [u for u in self.users if oldest <= (u.last_seen_at or u.created_at) <= newest]
        return self._pick(users, exclude, limit)

    async def find_active_since(self, since, exclude=None, limit=None):
        users = [u for u in self.users if u.last_seen_at and u.last_seen_at >= since]
        return self._pick(users, exclude, limit)

    async def find_signed_up_between(self, start, end, exclude=None, limit=None):
        users = [u for u in self.users if start <= u.created_at < end]
        return self._pick(users, exclude, limit)

    async def find_with_recent_interest(self, since, exclude=None, limit=None):
        users = [u for u in self.users if u.id in self.interested]
        return self._pick(users, exclude, limit)

    async def find_incomplete_profiles(self, created_before, exclude=None, limit=None):
        users = [
            u for u in self.users
            if u.created_at <= created_before and profile_score(u) < PROFILE_NUDGE_THRESHOLD
        ]
        return self._pick(users, exclude, limit)

    async def find_unmessaged_matches(self, oldest, newest, exclude=None, limit=None):
        nudges = [n for n in self.unmessaged if oldest <= n.since <= newest]
        return self._pick(nudges, exclude, limit, user=lambda n: n.user)

    async def find_unanswered_messages(self, oldest, newest, exclude=None, limit=None):
        nudges = [n for n in self.unanswered if oldest <= n.since <= newest]
        return self._pick(nudges, exclude, limit, user=lambda n: n.user)

    async def find_guardian_recipients(self, exclude=None, limit=None):
        return self._pick([u for u in self.users if u.guardian_email], exclude, limit)

    async def mark_guardian_notified(self, user_id, notified_at):
        self.guardian_notified.append((user_id, notified_at))


class FakeActivity:
    def __init__(self):
        self.activity: dict[str, ActivitySummary] = {}
        self.guardian: dict[str, GuardianWeekSummary] = {}
        self.since_calls: list[tuple[str, datetime]] = []

    async def activity_since(self, user_id, since):
        self.since_calls.append((user_id, since))
        return self.activity.get(user_id, ActivitySummary())

    async def guardian_week_summary(self, user_id, since):
        return self.guardian.get(user_id, GuardianWeekSummary(0, 0, 0, 0))


class FakeExperiments:
    def __init__(self, experiments=None, stats=None):
        self.experiments = list(experiments or [])
        self.stats: dict[str, dict[str, VariantStats]] = dict(stats or {})
        self.ended: list[tuple[str, str, float, datetime]] = []

    async def list_running(self):
        ended_ids = {e[0] for e in self.ended}
        return [e for e in self.experiments if e.id not in ended_ids]

    async def running_for_category(self, category):
        for experiment in await self.list_running():
            if experiment.category == category:
                return experiment
        return None

    async def variant_stats(self, experiment):
        return self.stats.get(
            experiment.id, {"A": VariantStats(0, 0), "B": VariantStats(0, 0)}
        )

    async def end(self, experiment_id, winner, confidence, ended_at):
        self.ended.append((experiment_id, winner, confidence, ended_at))


class FakeTransport:
    def __init__(self, fail_for=None, delay: float = 0.0):
        self.sent = []
        self.fail_for = set(fail_for or ())
        self.delay = delay

    async def send(self, message):
        if self.delay:
            await asyncio.sleep(self.delay)
        if message.to in self.fail_for:
            return SendResult(success=False, error="HTTP 422: rejected")
        self.sent.append(message)
        return SendResult(success=True, external_id=f"ext-{len(self.sent)}")

    async def close(self):
        return None


def make_user(user_id="u1", **overrides) -> UserRecord:
    values = {
        "id": user_id,
        "email": f"{user_id}@example.com",
        "first_name": "Sanne",
        "created_at": datetime(2025, 1, 1, tzinfo=UTC),
    }
    values.update(overrides)
    return UserRecord(**values)


class CampaignHarness:
    """All collaborators of a campaign job, wired to in-memory fakes."""

    def __init__(self, users=None):
        self.deliveries = FakeDeliveries()
        self.preferences = FakePreferences()
        self.recipients = FakeRecipients(users, deliveries=self.deliveries, preferences=self.preferences)
        self.activity = FakeActivity()
        self.experiments = FakeExperiments()
        self.transport = FakeTransport()

    def build(self, job_cls, now=NOW, **kwargs):
        options = {
            "recipients": self.recipients,
            "activity": self.activity,
            "deliveries": self.deliveries,
            "experiments": self.experiments,
            "preferences": self.preferences,
            "guard": FrequencyGuard(
                deliveries=self.deliveries,
                preferences=self.preferences,
                max_per_day=2,
                max_per_week=7,
                tz="Europe/Amsterdam",
            ),
            "renderer": CampaignRenderer(app_url="https://app.example.com"),
            "transport": self.transport,
            "clock": lambda: now,
            "tz": "Europe/Amsterdam",
        }
        options.update(kwargs)
        return job_cls(**options)
