import calendar
from datetime import date, datetime

from engagement.features.campaigns.domain import Recipient
from engagement.features.campaigns.jobs.base import SendCampaignJob
from engagement.features.campaigns.services.timeframes import to_local


def age_on(birth_date: date | None, today: date) -> int | None:
    if birth_date is None:
        return None
    before_birthday = (today.month, today.day) < (birth_date.month, birth_date.day)
    return today.year - birth_date.year - int(before_birthday)


def birthday_keys(today: date) -> list[str]:
    """``MM-DD`` keys celebrated today; 29 February moves to the 28th in common years."""
    keys = [today.strftime("%m-%d")]
    if today.month == 2 and today.day == 28 and not calendar.isleap(today.year):
        keys.append("02-29")
    return keys


class BirthdayCampaign(SendCampaignJob):
    """Congratulates members on their birthday, at most once per calendar year."""

    name = "birthday"

    async def select(self, now: datetime) -> list[Recipient]:
        today = to_local(now, self.tz).date()
        users = await self.recipients.find_by_birthday(
            birthday_keys(today), exclude=self.exclusion("birthday", now)
        )
        return [
            self.make_recipient(
                user,
                now,
                category="birthday",
                template="birthday",
                subject="Gefeliciteerd met je verjaardag, {{ first_name }}!",
                age=age_on(user.birth_date, today),
            )
            for user in users
        ]
