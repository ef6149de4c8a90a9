from datetime import datetime, timedelta

from engagement.features.campaigns.domain import Recipient, missing_fields, profile_score
from engagement.features.campaigns.jobs.base import SendCampaignJob

# New members get a few days to fill in their profile before the first nudge
PROFILE_GRACE_PERIOD = timedelta(days=3)


class ProfileNudgeCampaign(SendCampaignJob):
    """Asks members with a thin profile to fill in what is missing."""

    name = "profile_nudge"
    category = "profile_nudge"

    async def select(self, now: datetime) -> list[Recipient]:
        users = await self.recipients.find_incomplete_profiles(
            now - PROFILE_GRACE_PERIOD, exclude=self.exclusion(self.category, now)
        )
        return [
            self.make_recipient(
                user,
                now,
                category=self.category,
                template="profile_nudge",
                subject="{{ first_name }}, maak je profiel compleet",
                profile_score=profile_score(user),
                missing_fields=missing_fields(user),
            )
            for user in users
        ]
