"""
Email provider webhook handling.

Provider events are appended to ``email_events`` by external message id (the
``opened`` events feed experiment conversions). Hard bounces and spam
complaints suppress the address for every future campaign.
"""

import hashlib
import hmac
from typing import Any

from engagement.errors import ValidationError
from engagement.features.campaigns.repository import EmailEventRepository, PreferenceRepository
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "resend-signature"

EVENT_TYPES = {
    "email.sent": "sent",
    "email.delivered": "delivered",
    "email.opened": "opened",
    "email.clicked": "clicked",
    "email.bounced": "bounced",
    "email.complained": "complained",
}


def verify_signature(raw: bytes, signature: str | None, secret: str) -> bool:
    if not signature:
        return False
    expected = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8"))


class EmailWebhookProcessor:
    def __init__(self, events=EmailEventRepository, preferences=PreferenceRepository):
        self._events = events
        self._preferences = preferences

    async def handle(self, payload: dict[str, Any]) -> str | None:
        """
        Record one provider event.

        Returns:
            The normalized event type, or None for events that are ignored

        Raises:
            ValidationError: The payload is not a provider event
        """
        if not isinstance(payload, dict) or "type" not in payload:
            raise ValidationError("Webhook payload has no event type", operation="email_webhook")

        event_type = EVENT_TYPES.get(payload["type"])
        if event_type is None:
            logger.info("Ignoring email event", type=payload["type"])
            return None

        data = payload.get("data") or {}
        external_id = data.get("email_id")
        recipients = [r for r in (data.get("to") or []) if r]

        if external_id:
            await self._events.record(
                external_id, event_type, recipients[0] if recipients else None, payload
            )
        else:
            logger.warning("Email event without message id", type=event_type)

        reason = None
        if event_type == "bounced" and (data.get("bounce") or {}).get("type", "hard") == "hard":
            reason = "hard_bounce"
        elif event_type == "complained":
            reason = "complaint"

        if reason:
            for email in recipients:
                await self._preferences.suppress(email, reason)

        logger.info("Email event recorded", type=event_type, external_id=external_id, suppressed=bool(reason))
        return event_type
