"""
Campaigns aimed at members who stopped visiting.

``re_engagement`` covers 7-90 days of absence in four tiers with their own
subject and tone; ``win_back`` takes over for 90-180 days.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from engagement.features.campaigns.domain import Recipient, UserRecord
from engagement.features.campaigns.jobs.base import SendCampaignJob

WIN_BACK_MIN_DAYS = 90
WIN_BACK_MAX_DAYS = 180


@dataclass(frozen=True, slots=True)
class DormancyTier:
    key: str
    min_days: int
    max_days: int
    subject: str


RE_ENGAGEMENT_TIERS: tuple[DormancyTier, ...] = (
    DormancyTier("gentle_reminder", 7, 14, "{{ first_name }}, er is van alles gebeurd sinds je weg was"),
    DormancyTier("missed_you", 14, 30, "We missen je, {{ first_name }}"),
    DormancyTier("come_back", 30, 60, "{{ first_name }}, je matches wachten op je"),
    DormancyTier("last_chance", 60, 90, "Nog één keer, {{ first_name }}: kom je terug?"),
)


def days_inactive(user: UserRecord, now: datetime) -> int:
    last_active = user.last_seen_at or user.created_at
    return max(0, (now - last_active).days)


def tier_for(days: int) -> DormancyTier | None:
    for tier in RE_ENGAGEMENT_TIERS:
        if tier.min_days <= days < tier.max_days:
            return tier
    return None


class ReEngagementCampaign(SendCampaignJob):
    name = "re_engagement"

    async def select(self, now: datetime) -> list[Recipient]:
        users = await self.recipients.find_last_active_between(
            now - timedelta(days=RE_ENGAGEMENT_TIERS[-1].max_days),
            now - timedelta(days=RE_ENGAGEMENT_TIERS[0].min_days),
            exclude=self.exclusion("re_engagement", now),
        )
        recipients = []
        for user in users:
            days = days_inactive(user, now)
            tier = tier_for(days)
            if tier is None:
                continue
            recipients.append(
                self.make_recipient(
                    user,
                    now,
                    category="re_engagement",
                    template="re_engagement",
                    subject=tier.subject,
                    tier=tier.key,
                    days_inactive=days,
                )
            )
        return recipients


class WinBackCampaign(SendCampaignJob):
    name = "win_back"

    async def select(self, now: datetime) -> list[Recipient]:
        users = await self.recipients.find_last_active_between(
            now - timedelta(days=WIN_BACK_MAX_DAYS),
            now - timedelta(days=WIN_BACK_MIN_DAYS),
            exclude=self.exclusion("win_back", now),
        )
        return [
            self.make_recipient(
                user,
                now,
                category="win_back",
                template="win_back",
                subject="{{ first_name }}, we hebben je gemist",
                days_inactive=days_inactive(user, now),
            )
            for user in users
        ]
