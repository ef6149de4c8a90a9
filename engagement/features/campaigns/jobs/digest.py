"""
Activity digests: a daily "people looked at you" mail and a weekly summary.

Both only go out when something actually happened since the previous digest
of the same kind.
"""

from abc import abstractmethod
from datetime import datetime, timedelta

from engagement.errors import SkippedRecipient
from engagement.features.campaigns.domain import ActivitySummary, Recipient
from engagement.features.campaigns.jobs.base import SendCampaignJob

DAILY_LOOKBACK = timedelta(hours=24)
WEEKLY_LOOKBACK = timedelta(days=7)
WEEKLY_RECENTLY_SEEN = timedelta(days=14)


class DigestCampaign(SendCampaignJob):
    """Shared activity lookup; subclasses define audience and what counts."""

    category: str
    lookback: timedelta

    async def _activity_window_start(self, user_id: str, now: datetime) -> datetime:
        last_digest = await self.deliveries.last_success_at(user_id, self.category)
        floor = now - self.lookback
        return max(last_digest, floor) if last_digest else floor

    @abstractmethod
    def counts(self, activity: ActivitySummary) -> int:
        """Activity that justifies sending this digest."""

    async def personalize(self, recipient: Recipient, now: datetime) -> None:
        since = await self._activity_window_start(recipient.user_id, now)
        activity = await self.activity.activity_since(recipient.user_id, since)
        if self.counts(activity) == 0:
            raise SkippedRecipient("no_new_activity", user_id=recipient.user_id)
        recipient.context.update(
            profile_views=activity.profile_views,
            likes=activity.likes,
            matches=activity.matches,
            messages=activity.messages,
            total=activity.total,
        )


class DailyDigestCampaign(DigestCampaign):
    name = "daily_digest"
    category = "daily_digest"
    lookback = DAILY_LOOKBACK

    def counts(self, activity: ActivitySummary) -> int:
        return activity.profile_views + activity.likes

    async def select(self, now: datetime) -> list[Recipient]:
        users = await self.recipients.find_with_recent_interest(
            now - DAILY_LOOKBACK, exclude=self.exclusion(self.category, now)
        )
        return [
            self.make_recipient(
                user,
                now,
                category=self.category,
                template="daily_digest",
                subject="{{ first_name }}, er is interesse in je profiel!",
            )
            for user in users
        ]


class WeeklyDigestCampaign(DigestCampaign):
    name = "weekly_digest"
    category = "weekly_digest"
    lookback = WEEKLY_LOOKBACK

    def counts(self, activity: ActivitySummary) -> int:
        return activity.total

    async def select(self, now: datetime) -> list[Recipient]:
        users = await self.recipients.find_active_since(
            now - WEEKLY_RECENTLY_SEEN, exclude=self.exclusion(self.category, now)
        )
        return [
            self.make_recipient(
                user,
                now,
                category=self.category,
                template="weekly_digest",
                subject="Jouw week op Liefde Voor Iedereen, {{ first_name }}",
            )
            for user in users
        ]
