# engagement/models/api/engagement_response.py
"""
Response shapes for the member-facing routes.
"""

from pydantic import BaseModel, ConfigDict, Field, RootModel


class SuccessResponse(BaseModel):
    success: bool = True


class PresenceStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_online: bool | None = Field(None, alias="isOnline")
    last_seen_text: str | None = Field(None, alias="lastSeenText")


class PresenceBatchResponse(RootModel[dict[str, PresenceStatusResponse]]):
    """Presence keyed by user id."""


class OnlineCountResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    online_count: int = Field(..., alias="onlineCount")


class EmailPreferencesResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    marketing_consent: bool = Field(..., alias="marketingConsent")
    daily_digest: bool = Field(..., alias="dailyDigest")
    weekly_highlights: bool = Field(..., alias="weeklyHighlights")
    re_engagement: bool = Field(..., alias="reEngagement")
    special_events: bool = Field(..., alias="specialEvents")
    profile_nudge: bool = Field(..., alias="profileNudge")
