"""
Domain models for the campaign scheduler.

Lightweight dataclasses shared by repositories, campaign jobs and the
frequency guard. Rows are mapped into these shapes at the repository edge.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal


@dataclass(slots=True)
class UserRecord:
    """The subset of a user row the campaigns read."""

    id: str
    email: str | None
    first_name: str | None
    created_at: datetime
    last_seen_at: datetime | None = None
    birth_date: date | None = None
    guardian_email: str | None = None
    guardian_name: str | None = None
    profile_image_url: str | None = None
    bio: str | None = None
    interests: list[str] = field(default_factory=list)
    city: str | None = None
    voice_intro_url: str | None = None
    looking_for: str | None = None


@dataclass(frozen=True, slots=True)
class AudienceExclusion:
    """
    Members a selection query leaves out up front.

    Covers members already served inside the current send window of
    ``category`` (a successful outcome since ``since``, or a claim on
    ``window_key``) and, for marketing categories, members who withdrew
    consent, switched off ``preference`` or whose address is suppressed. The
    frequency guard still decides per member at send time.
    """

    category: str
    window_key: str
    since: datetime | None
    preference: str | None = None
    marketing: bool = True


@dataclass(slots=True)
class ConversationNudge:
    """A member with a conversation waiting on them."""

    user: UserRecord
    counterpart_name: str | None
    since: datetime
    unread_count: int = 0


@dataclass(slots=True)
class ActivitySummary:
    """Qualifying events received by a user since a point in time."""

    profile_views: int = 0
    likes: int = 0
    matches: int = 0
    messages: int = 0

    @property
    def total(self) -> int:
        return self.profile_views + self.likes + self.matches + self.messages


ActivityLevel = Literal["low", "medium", "high"]

GUARDIAN_MEDIUM_ACTIVITY = 5
GUARDIAN_HIGH_ACTIVITY = 20


@dataclass(slots=True)
class GuardianWeekSummary:
    """Privacy-preserving weekly counts shown to a guardian (never message content)."""

    new_matches: int
    conversations: int
    messages_received: int
    safety_flags: int

    @property
    def activity_level(self) -> ActivityLevel:
        total = self.new_matches + self.conversations + self.messages_received
        if total > GUARDIAN_HIGH_ACTIVITY:
            return "high"
        if total > GUARDIAN_MEDIUM_ACTIVITY:
            return "medium"
        return "low"


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    """Immutable record of one send attempt."""

    user_id: str
    category: str
    campaign: str
    recipient_email: str
    success: bool
    created_at: datetime
    counts_toward_caps: bool = True
    external_id: str | None = None
    error: str | None = None
    subject: str | None = None
    variant: str | None = None
    id: str | None = None


Variant = Literal["A", "B"]


@dataclass(slots=True)
class Experiment:
    """A running subject-line experiment attached to a send category."""

    id: str
    name: str
    category: str
    variant_a_subject: str
    variant_b_subject: str
    traffic_split_percent: int = 50
    started_at: datetime | None = None


@dataclass(slots=True)
class VariantStats:
    sent: int
    conversions: int

    @property
    def rate(self) -> float:
        return self.conversions / self.sent if self.sent else 0.0


@dataclass(slots=True)
class Recipient:
    """
    One selected recipient of a campaign run.

    ``window_key`` identifies the send window used for the atomic claim, so
    overlapping runs of the same job cannot both send inside one window.
    """

    user_id: str
    email: str | None
    category: str
    window_key: str
    template: str
    subject: str
    context: dict[str, Any] = field(default_factory=dict)
