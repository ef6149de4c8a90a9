"""
Member-facing email preference changes: the footer unsubscribe link and the
settings page both land here.

Marketing consent follows the groups: switching every group off withdraws
consent, switching any group back on restores it.
"""

from enum import StrEnum

from engagement.errors import NotFound, ValidationError
from engagement.features.campaigns.repository import PREFERENCE_GROUPS, PreferenceRepository
from engagement.features.campaigns.services.guard import policy_for
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class UnsubscribeAction(StrEnum):
    UNSUBSCRIBE = "unsubscribe"
    UNSUBSCRIBE_ALL = "unsubscribe_all"
    UPDATE_PREFERENCES = "update_preferences"
    RESUBSCRIBE = "resubscribe"


def group_for(name: str) -> str:
    """
    Preference group behind a group name or a send category.

    Raises:
        ValidationError: Unknown name, or a category no member can switch off
    """
    if name in PREFERENCE_GROUPS:
        return name
    group = policy_for(name).preference
    if group is None:
        raise ValidationError(f"'{name}' can not be switched off separately", operation="group_for")
    return group


class PreferenceCenter:
    def __init__(self, preferences=PreferenceRepository):
        self._preferences = preferences

    async def get(self, user_id: str) -> dict[str, bool]:
        current = await self._preferences.get_preferences(user_id)
        if current is None:
            raise NotFound("Unknown member", operation="get_preferences")
        return current

    async def update(self, user_id: str, groups: dict[str, bool]) -> dict[str, bool]:
        """
        Store the given groups and bring consent in line with them.

        Raises:
            NotFound: The member does not exist
            ValidationError: A key is not a preference group
        """
        unknown = set(groups) - set(PREFERENCE_GROUPS)
        if unknown:
            raise ValidationError(f"Unknown preference groups: {sorted(unknown)}", operation="update_preferences")

        current = await self.get(user_id)
        await self._preferences.update_preferences(user_id, groups)
        merged = {group: groups.get(group, current[group]) for group in PREFERENCE_GROUPS}

        consent = any(merged.values()) if groups else current["marketing_consent"]
        if consent != current["marketing_consent"]:
            await self._preferences.set_marketing_consent(user_id, consent)
        return {**merged, "marketing_consent": consent}

    async def apply(
        self,
        user_id: str,
        action: UnsubscribeAction,
        category: str | None = None,
        groups: dict[str, bool] | None = None,
    ) -> dict[str, bool]:
        """Carry out one footer-link action and return the resulting settings."""
        logger.info("Email preference action", user_id=user_id, action=action.value, category=category)

        if action is UnsubscribeAction.UNSUBSCRIBE:
            if not category:
                raise ValidationError("A category is required to unsubscribe from", operation="unsubscribe")
            return await self.update(user_id, {group_for(category): False})
        if action is UnsubscribeAction.UNSUBSCRIBE_ALL:
            return await self.update(user_id, dict.fromkeys(PREFERENCE_GROUPS, False))
        if action is UnsubscribeAction.RESUBSCRIBE:
            return await self.update(user_id, dict.fromkeys(PREFERENCE_GROUPS, True))
        return await self.update(user_id, groups or {})
