"""
Calendar-bound campaigns. Outside their window a run selects its audience,
reports every selected member as skipped and sends nothing.
"""

from datetime import date, datetime, timedelta

from engagement.features.campaigns.domain import Recipient
from engagement.features.campaigns.jobs.base import SendCampaignJob
from engagement.features.campaigns.services.timeframes import to_local

FRIDAY = 4
WEEKEND_BOOST_START_HOUR = 16


class SeasonalCampaign(SendCampaignJob):
    category: str
    template: str
    subject: str
    recently_seen: timedelta

    async def select(self, now: datetime) -> list[Recipient]:
        users = await self.recipients.find_active_since(
            now - self.recently_seen, exclude=self.exclusion(self.category, now)
        )
        return [
            self.make_recipient(
                user, now, category=self.category, template=self.template, subject=self.subject
            )
            for user in users
        ]


def _in_date_range(today: date, start: tuple[int, int], end: tuple[int, int]) -> bool:
    return start <= (today.month, today.day) <= end


class ValentinesCampaign(SeasonalCampaign):
    name = "valentines"
    category = "seasonal:valentines"
    template = "valentines"
    subject = "{{ first_name }}, maak van Valentijn iets bijzonders"
    recently_seen = timedelta(days=30)

    def in_window(self, now: datetime) -> bool:
        return _in_date_range(to_local(now, self.tz).date(), (2, 10), (2, 14))


class NewYearCampaign(SeasonalCampaign):
    name = "new_year"
    category = "seasonal:new_year"
    template = "new_year"
    subject = "Gelukkig nieuwjaar, {{ first_name }}!"
    recently_seen = timedelta(days=90)

    def in_window(self, now: datetime) -> bool:
        return _in_date_range(to_local(now, self.tz).date(), (1, 1), (1, 7))


class WeekendBoostCampaign(SeasonalCampaign):
    name = "weekend_boost"
    category = "weekend_boost"
    template = "weekend_boost"
    subject = "Het is weekend, {{ first_name }}: tijd om te daten"
    recently_seen = timedelta(days=30)

    def in_window(self, now: datetime) -> bool:
        local = to_local(now, self.tz)
        return local.weekday() == FRIDAY and local.hour >= WEEKEND_BOOST_START_HOUR
