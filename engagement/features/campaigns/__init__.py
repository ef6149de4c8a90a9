"""
Campaign scheduler feature package.

Everything behind the scheduled email campaigns lives here: domain models,
repositories, the frequency guard, rendering and templates, the campaign
jobs and their HTTP trigger routes.
"""

# Re-export the primary building blocks for easy access.
from .api.preferences import router as preferences_router  # noqa: F401
from .api.router import router as campaigns_router  # noqa: F401
from .jobs import CAMPAIGN_REGISTRY, CampaignName, CampaignResult, run_campaign  # noqa: F401
from .services.guard import FrequencyGuard, GuardDecision  # noqa: F401
