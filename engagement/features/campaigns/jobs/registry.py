"""
Closed set of triggerable campaigns, keyed by the name used in trigger URLs
and on the worker command line.
"""

from enum import StrEnum

from engagement.errors import NotFound
from engagement.features.campaigns.jobs.ab_evaluation import ABEvaluationCampaign
from engagement.features.campaigns.jobs.base import CampaignJob, CampaignResult
from engagement.features.campaigns.jobs.birthday import BirthdayCampaign
from engagement.features.campaigns.jobs.conversations import MatchReminderCampaign, UnansweredMessagesCampaign
from engagement.features.campaigns.jobs.digest import DailyDigestCampaign, WeeklyDigestCampaign
from engagement.features.campaigns.jobs.dormancy import ReEngagementCampaign, WinBackCampaign
from engagement.features.campaigns.jobs.guardian_digest import GuardianDigestCampaign
from engagement.features.campaigns.jobs.milestone import MilestoneCampaign
from engagement.features.campaigns.jobs.profile_nudge import ProfileNudgeCampaign
from engagement.features.campaigns.jobs.seasonal import (
    NewYearCampaign,
    ValentinesCampaign,
    WeekendBoostCampaign,
)


class CampaignName(StrEnum):
    BIRTHDAY = "birthday"
    WIN_BACK = "win_back"
    RE_ENGAGEMENT = "re_engagement"
    DAILY_DIGEST = "daily_digest"
    WEEKLY_DIGEST = "weekly_digest"
    VALENTINES = "valentines"
    NEW_YEAR = "new_year"
    WEEKEND_BOOST = "weekend_boost"
    MILESTONE = "milestone"
    MATCH_REMINDER = "match_reminder"
    UNANSWERED_MESSAGES = "unanswered_messages"
    PROFILE_NUDGE = "profile_nudge"
    GUARDIAN_DIGEST = "guardian_digest"
    AB_EVALUATION = "ab_evaluation"


CAMPAIGN_REGISTRY: dict[CampaignName, type[CampaignJob]] = {
    CampaignName.BIRTHDAY: BirthdayCampaign,
    CampaignName.WIN_BACK: WinBackCampaign,
    CampaignName.RE_ENGAGEMENT: ReEngagementCampaign,
    CampaignName.DAILY_DIGEST: DailyDigestCampaign,
    CampaignName.WEEKLY_DIGEST: WeeklyDigestCampaign,
    CampaignName.VALENTINES: ValentinesCampaign,
    CampaignName.NEW_YEAR: NewYearCampaign,
    CampaignName.WEEKEND_BOOST: WeekendBoostCampaign,
    CampaignName.MILESTONE: MilestoneCampaign,
    CampaignName.MATCH_REMINDER: MatchReminderCampaign,
    CampaignName.UNANSWERED_MESSAGES: UnansweredMessagesCampaign,
    CampaignName.PROFILE_NUDGE: ProfileNudgeCampaign,
    CampaignName.GUARDIAN_DIGEST: GuardianDigestCampaign,
    CampaignName.AB_EVALUATION: ABEvaluationCampaign,
}


def resolve_campaign(name: str) -> CampaignName:
    """Map a trigger name (``win-back`` or ``win_back``) to its campaign."""
    normalized = name.strip().lower().replace("-", "_")
    try:
        return CampaignName(normalized)
    except ValueError as e:
        raise NotFound(f"Unknown campaign '{name}'", operation="resolve_campaign") from e


async def run_campaign(name: str) -> CampaignResult:
    campaign = resolve_campaign(name)
    job = CAMPAIGN_REGISTRY[campaign]()
    return await job.run()
