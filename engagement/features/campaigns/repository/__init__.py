"""
Persistence layer for the campaign scheduler.
"""

from .activity_repository import ActivityRepository
from .delivery_repository import DeliveryRepository
from .experiment_repository import EmailEventRepository, ExperimentRepository
from .preference_repository import ALL_MARKETING, PREFERENCE_GROUPS, PreferenceRepository
from .recipient_repository import RecipientRepository

__all__ = [
    "ALL_MARKETING",
    "PREFERENCE_GROUPS",
    "ActivityRepository",
    "DeliveryRepository",
    "EmailEventRepository",
    "ExperimentRepository",
    "PreferenceRepository",
    "RecipientRepository",
]
