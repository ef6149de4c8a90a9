"""
Frequency and suppression guard.

Every send decision goes through ``FrequencyGuard.may_contact`` right before
dispatch. The guard only reads; the claim and the outcome are written by the
campaign runner.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from engagement.config import settings
from engagement.errors import ValidationError
from engagement.features.campaigns.repository import (
    ALL_MARKETING,
    DeliveryRepository,
    PreferenceRepository,
)
from engagement.features.campaigns.services.timeframes import (
    iso_week_key,
    start_of_local_day,
    start_of_local_iso_week,
    start_of_local_year,
    to_local,
)
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class Window(StrEnum):
    COOLDOWN = "cooldown"
    CALENDAR_YEAR = "calendar_year"
    ISO_WEEK = "iso_week"
    ONCE = "once"


@dataclass(frozen=True, slots=True)
class CategoryPolicy:
    """How often one category may reach the same user, and what can veto it."""

    window: Window
    cooldown: timedelta | None = None
    preference: str | None = None
    counts_toward_caps: bool = True
    marketing: bool = True

    def window_start(self, now: datetime, tz: str | None = None) -> datetime | None:
        """Start of the period in which a previous success blocks a new send. None means ever."""
        if self.window is Window.COOLDOWN:
            return now - self.cooldown
        if self.window is Window.CALENDAR_YEAR:
            return start_of_local_year(now, tz)
        if self.window is Window.ISO_WEEK:
            return start_of_local_iso_week(now, tz)
        return None

    def window_key(self, now: datetime, tz: str | None = None) -> str:
        """Identifier of the current send window, used as the claim key."""
        if self.window is Window.COOLDOWN:
            return f"cooldown-{int(now.timestamp() // self.cooldown.total_seconds())}"
        if self.window is Window.CALENDAR_YEAR:
            return str(to_local(now, tz).year)
        if self.window is Window.ISO_WEEK:
            return iso_week_key(now, tz)
        return "once"


CATEGORY_POLICIES: dict[str, CategoryPolicy] = {
    "birthday": CategoryPolicy(Window.CALENDAR_YEAR, preference="special_events"),
    "win_back": CategoryPolicy(Window.COOLDOWN, timedelta(days=30), preference="re_engagement"),
    "re_engagement": CategoryPolicy(Window.COOLDOWN, timedelta(days=14), preference="re_engagement"),
    "daily_digest": CategoryPolicy(Window.COOLDOWN, timedelta(hours=20), preference="daily_digest"),
    "weekly_digest": CategoryPolicy(Window.ISO_WEEK, preference="weekly_highlights"),
    "seasonal": CategoryPolicy(Window.CALENDAR_YEAR, preference="special_events"),
    "weekend_boost": CategoryPolicy(Window.COOLDOWN, timedelta(days=6), preference="special_events"),
    "milestone": CategoryPolicy(Window.ONCE, preference="special_events"),
    "match_reminder": CategoryPolicy(Window.COOLDOWN, timedelta(days=3)),
    "unanswered_message": CategoryPolicy(Window.COOLDOWN, timedelta(days=2)),
    "profile_nudge": CategoryPolicy(Window.COOLDOWN, timedelta(days=7), preference="profile_nudge"),
    # Goes to the guardian, not the member: member marketing settings and caps do not apply
    "guardian_digest": CategoryPolicy(
        Window.COOLDOWN, timedelta(days=6), counts_toward_caps=False, marketing=False
    ),
}


def policy_for(category: str) -> CategoryPolicy:
    """Resolve ``seasonal:valentines`` style categories through their family prefix."""
    policy = CATEGORY_POLICIES.get(category) or CATEGORY_POLICIES.get(category.split(":", 1)[0])
    if policy is None:
        raise ValidationError(f"Unknown send category: {category}", operation="policy_for")
    return policy


@dataclass(frozen=True, slots=True)
class GuardDecision:
    allowed: bool
    reason: str | None = None


ALLOWED = GuardDecision(allowed=True)


class FrequencyGuard:
    def __init__(
        self,
        deliveries=DeliveryRepository,
        preferences=PreferenceRepository,
        max_per_day: int | None = None,
        max_per_week: int | None = None,
        tz: str | None = None,
    ):
        self._deliveries = deliveries
        self._preferences = preferences
        self.max_per_day = max_per_day or settings.EMAIL_MAX_PER_DAY
        self.max_per_week = max_per_week or settings.EMAIL_MAX_PER_WEEK
        self._tz = tz

    async def may_contact(
        self, user_id: str, category: str, now: datetime, email: str | None = None
    ) -> GuardDecision:
        """
        Decide whether ``category`` may be sent to ``user_id`` at ``now``.

        Args:
            user_id: Member the send is about
            category: Send category, e.g. ``win_back`` or ``seasonal:valentines``
            now: Decision instant
            email: Actual recipient address, checked against suppressions

        Returns:
            GuardDecision with the first denial reason, or allowed
        """
        policy = policy_for(category)

        if email and await self._preferences.is_suppressed(email):
            return GuardDecision(False, "suppressed")

        if policy.marketing:
            opt_outs = await self._preferences.get_opt_outs(user_id)
            if ALL_MARKETING in opt_outs:
                return GuardDecision(False, "opted_out")
            if policy.preference and policy.preference in opt_outs:
                return GuardDecision(False, f"opted_out:{policy.preference}")

        since = policy.window_start(now, self._tz)
        if await self._deliveries.has_success_since(user_id, category, since):
            return GuardDecision(False, "already_sent")

        if policy.counts_toward_caps:
            today, week = await self._deliveries.counted_sends_since(
                user_id, start_of_local_day(now, self._tz), now - timedelta(days=7)
            )
            if today >= self.max_per_day:
                return GuardDecision(False, "daily_cap")
            if week >= self.max_per_week:
                return GuardDecision(False, "weekly_cap")

        return ALLOWED
