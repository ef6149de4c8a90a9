from dataclasses import dataclass
from datetime import datetime, timedelta

from engagement.features.campaigns.domain import Recipient
from engagement.features.campaigns.jobs.base import SendCampaignJob

# Members who signed up inside the lookback still qualify after a missed run
MILESTONE_LOOKBACK = timedelta(days=2)


@dataclass(frozen=True, slots=True)
class Milestone:
    key: str
    days: int
    subject: str


MILESTONES: tuple[Milestone, ...] = (
    Milestone("one_week_active", 7, "Een week samen, {{ first_name }}!"),
    Milestone("one_month_active", 30, "Al een maand lid, {{ first_name }}!"),
)


class MilestoneCampaign(SendCampaignJob):
    """Celebrates membership anniversaries; each milestone reaches a member once."""

    name = "milestone"

    async def select(self, now: datetime) -> list[Recipient]:
        recipients = []
        for milestone in MILESTONES:
            reached_at = now - timedelta(days=milestone.days)
            category = f"milestone:{milestone.key}"
            users = await self.recipients.find_signed_up_between(
                reached_at - MILESTONE_LOOKBACK, reached_at, exclude=self.exclusion(category, now)
            )
            recipients.extend(
                self.make_recipient(
                    user,
                    now,
                    category=category,
                    template="milestone",
                    subject=milestone.subject,
                    milestone=milestone.key,
                    days=milestone.days,
                )
                for user in users
            )
        return recipients
