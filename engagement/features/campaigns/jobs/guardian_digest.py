from datetime import datetime, timedelta

from engagement.features.campaigns.domain import Recipient
from engagement.features.campaigns.jobs.base import SendCampaignJob

GUARDIAN_WEEK = timedelta(days=7)


class GuardianDigestCampaign(SendCampaignJob):
    """
    Weekly counts for a member's confirmed guardian.

    The guardian only ever sees aggregate numbers, never message content.
    """

    name = "guardian_digest"

    async def select(self, now: datetime) -> list[Recipient]:
        users = await self.recipients.find_guardian_recipients(
            exclude=self.exclusion("guardian_digest", now)
        )
        return [
            self.make_recipient(
                user,
                now,
                category="guardian_digest",
                template="guardian_digest",
                subject="Weekoverzicht van {{ first_name }}",
                email=user.guardian_email,
                guardian_name=user.guardian_name or "Begeleider",
                last_seen_at=user.last_seen_at,
            )
            for user in users
        ]

    async def personalize(self, recipient: Recipient, now: datetime) -> None:
        summary = await self.activity.guardian_week_summary(recipient.user_id, now - GUARDIAN_WEEK)
        recipient.context.update(
            new_matches=summary.new_matches,
            conversations=summary.conversations,
            messages_received=summary.messages_received,
            safety_flags=summary.safety_flags,
            activity_level=summary.activity_level,
        )

    async def after_send(self, recipient: Recipient, now: datetime) -> None:
        await self.recipients.mark_guardian_notified(recipient.user_id, now)
