"""
Domain subpackage for the campaign scheduler.
"""

from .models import (
    ActivitySummary,
    AudienceExclusion,
    ConversationNudge,
    DeliveryOutcome,
    Experiment,
    GuardianWeekSummary,
    Recipient,
    UserRecord,
    Variant,
    VariantStats,
)
from .profile import PROFILE_FIELDS, PROFILE_NUDGE_THRESHOLD, missing_fields, profile_score, profile_score_sql

__all__ = [
    "PROFILE_FIELDS",
    "PROFILE_NUDGE_THRESHOLD",
    "ActivitySummary",
    "AudienceExclusion",
    "ConversationNudge",
    "DeliveryOutcome",
    "Experiment",
    "GuardianWeekSummary",
    "Recipient",
    "UserRecord",
    "Variant",
    "VariantStats",
    "missing_fields",
    "profile_score",
    "profile_score_sql",
]
