"""
Service layer for the campaign scheduler.
"""

from .experiments import assign_variant, evaluate, two_proportion_confidence
from .guard import CATEGORY_POLICIES, CategoryPolicy, FrequencyGuard, GuardDecision, policy_for
from .preference_center import PreferenceCenter, UnsubscribeAction
from .renderer import CampaignRenderer, RenderedEmail

__all__ = [
    "CATEGORY_POLICIES",
    "CampaignRenderer",
    "CategoryPolicy",
    "FrequencyGuard",
    "GuardDecision",
    "PreferenceCenter",
    "RenderedEmail",
    "UnsubscribeAction",
    "assign_variant",
    "evaluate",
    "policy_for",
    "two_proportion_confidence",
]
