# engagement/models/api/engagement_request.py
"""
Request bodies for the member-facing routes.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TypingRequest(BaseModel):
    """Typing indicator change for one conversation."""

    model_config = ConfigDict(populate_by_name=True)

    match_id: str = Field(..., alias="matchId", min_length=1, description="Conversation id")
    is_typing: bool = Field(..., alias="isTyping", description="True on start, False on stop")


class EmailPreferencesUpdate(BaseModel):
    """Groups to switch on or off; groups left out keep their value."""

    model_config = ConfigDict(populate_by_name=True)

    daily_digest: bool | None = Field(None, alias="dailyDigest")
    weekly_highlights: bool | None = Field(None, alias="weeklyHighlights")
    re_engagement: bool | None = Field(None, alias="reEngagement")
    special_events: bool | None = Field(None, alias="specialEvents")
    profile_nudge: bool | None = Field(None, alias="profileNudge")

    def groups(self) -> dict[str, bool]:
        return self.model_dump(exclude_none=True)


class UnsubscribeRequest(BaseModel):
    """Action taken from the footer link of an email."""

    model_config = ConfigDict(populate_by_name=True)

    action: Literal["unsubscribe", "unsubscribe_all", "update_preferences", "resubscribe"] = "unsubscribe"
    category: str | None = Field(None, description="Group or send category for a single unsubscribe")
    preferences: EmailPreferencesUpdate | None = None
