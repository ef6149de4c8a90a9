"""
Nudges about conversations that stalled on the member's side: a fresh match
nobody has written to yet, and messages that sit unread.
"""

from datetime import datetime, timedelta

from engagement.features.campaigns.domain import Recipient
from engagement.features.campaigns.jobs.base import SendCampaignJob

MATCH_REMINDER_MIN_AGE = timedelta(days=1)
MATCH_REMINDER_MAX_AGE = timedelta(days=3)

UNANSWERED_MIN_AGE = timedelta(days=2)
UNANSWERED_MAX_AGE = timedelta(days=7)


class MatchReminderCampaign(SendCampaignJob):
    """Both members of a silent match hear that the other one is waiting."""

    name = "match_reminder"
    category = "match_reminder"

    async def select(self, now: datetime) -> list[Recipient]:
        nudges = await self.recipients.find_unmessaged_matches(
            now - MATCH_REMINDER_MAX_AGE,
            now - MATCH_REMINDER_MIN_AGE,
            exclude=self.exclusion(self.category, now),
        )
        return [
            self.make_recipient(
                nudge.user,
                now,
                category=self.category,
                template="match_reminder",
                subject="{{ match_name }} wacht op je eerste bericht!",
                match_name=nudge.counterpart_name,
                days_since_match=(now - nudge.since).days,
            )
            for nudge in nudges
        ]


class UnansweredMessagesCampaign(SendCampaignJob):
    name = "unanswered_messages"
    category = "unanswered_message"

    async def select(self, now: datetime) -> list[Recipient]:
        nudges = await self.recipients.find_unanswered_messages(
            now - UNANSWERED_MAX_AGE,
            now - UNANSWERED_MIN_AGE,
            exclude=self.exclusion(self.category, now),
        )
        return [
            self.make_recipient(
                nudge.user,
                now,
                category=self.category,
                template="unanswered_messages",
                subject="{{ sender_name }} wacht nog op antwoord...",
                sender_name=nudge.counterpart_name,
                unread_count=nudge.unread_count,
                days_waiting=(now - nudge.since).days,
            )
            for nudge in nudges
        ]
