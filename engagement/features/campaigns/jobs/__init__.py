"""
Campaign jobs: one class per triggerable campaign.
"""

from .base import CampaignJob, CampaignMetrics, CampaignResult, SendCampaignJob
from .registry import CAMPAIGN_REGISTRY, CampaignName, resolve_campaign, run_campaign

__all__ = [
    "CAMPAIGN_REGISTRY",
    "CampaignJob",
    "CampaignMetrics",
    "CampaignName",
    "CampaignResult",
    "SendCampaignJob",
    "resolve_campaign",
    "run_campaign",
]
