"""
Domain models for presence and ephemeral real-time events.

Neither shape is persisted in Postgres: presence lives in the shared Redis
store and events only exist in flight on the pub/sub bus.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


@dataclass(slots=True)
class PresenceRecord:
    """Last heartbeat of a user. ``is_online`` is derived, never stored."""

    user_id: str
    last_seen_at: datetime


@dataclass(slots=True)
class PresenceStatus:
    """Batch presence answer for one user. ``None`` fields mean unknown."""

    is_online: bool | None
    last_seen_text: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"isOnline": self.is_online, "lastSeenText": self.last_seen_text}


class EventType(StrEnum):
    TYPING_START = "typing:start"
    TYPING_STOP = "typing:stop"
    MATCH_NEW = "match:new"
    MESSAGE_NEW = "message:new"
    NOTIFICATION_NEW = "notification:new"
    PRESENCE_ONLINE = "presence:online"


# Events that change a user's unread notification count
NOTIFICATION_EVENT_TYPES = frozenset(
    {EventType.MATCH_NEW, EventType.MESSAGE_NEW, EventType.NOTIFICATION_NEW}
)


@dataclass(slots=True)
class EphemeralEvent:
    """An in-flight bus message. Lost if nobody is subscribed when it is published."""

    channel: str
    type: EventType
    sender_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_json(self) -> str:
        return json.dumps(
            {
                "channel": self.channel,
                "type": self.type.value,
                "senderId": self.sender_id,
                "payload": self.payload,
                "timestamp": self.timestamp.isoformat(),
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "EphemeralEvent":
        data = json.loads(raw)
        return cls(
            channel=data["channel"],
            type=EventType(data["type"]),
            sender_id=data["senderId"],
            payload=data.get("payload") or {},
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )
