"""
Delivery outcomes and send claims.

``delivery_outcomes`` is insert-only. ``delivery_claims`` holds one row per
(recipient, category, window); inserting it is the atomic "I am the sender"
step that keeps overlapping runs from double-sending.
"""

from datetime import datetime

from engagement.db.helpers import execute_query, fetch_one, fetch_val
from engagement.features.campaigns.domain import DeliveryOutcome
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DeliveryRepository:
    @classmethod
    async def last_success_at(cls, user_id: str, category: str) -> datetime | None:
        return await fetch_val(
            """
            SELECT MAX(created_at) FROM delivery_outcomes
            WHERE user_id = %s AND category = %s AND success
            """,
            (user_id, category),
        )

    @classmethod
    async def has_success_since(cls, user_id: str, category: str, since: datetime | None) -> bool:
        """True if a successful send of ``category`` exists at or after ``since`` (ever when None)."""
        if since is None:
            query = """
                SELECT EXISTS (
                    SELECT 1 FROM delivery_outcomes
                    WHERE user_id = %s AND category = %s AND success
                )
            """
            params: tuple = (user_id, category)
        else:
            query = """
                SELECT EXISTS (
                    SELECT 1 FROM delivery_outcomes
                    WHERE user_id = %s AND category = %s AND success AND created_at >= %s
                )
            """
            params = (user_id, category, since)
        return bool(await fetch_val(query, params))

    @classmethod
    async def counted_sends_since(
        cls, user_id: str, day_start: datetime, week_start: datetime
    ) -> tuple[int, int]:
        """Successful cap-counted sends since ``day_start`` and since ``week_start``."""
        row = await fetch_one(
            """
            SELECT
                COUNT(*) FILTER (WHERE created_at >= %s) AS today,
                COUNT(*) FILTER (WHERE created_at >= %s) AS week
            FROM delivery_outcomes
            WHERE user_id = %s AND success AND counts_toward_caps
              AND created_at >= LEAST(%s::timestamptz, %s::timestamptz)
            """,
            (day_start, week_start, user_id, day_start, week_start),
        ) or {}
        return int(row.get("today") or 0), int(row.get("week") or 0)

    @classmethod
    async def claim(cls, user_id: str, category: str, window_key: str) -> bool:
        """Atomically claim the send slot. False when another run already holds it."""
        claimed = await execute_query(
            """
            INSERT INTO delivery_claims (user_id, category, window_key)
            VALUES (%s, %s, %s)
            ON CONFLICT (user_id, category, window_key) DO NOTHING
            """,
            (user_id, category, window_key),
        )
        return claimed == 1

    @classmethod
    async def release_claim(cls, user_id: str, category: str, window_key: str) -> None:
        await execute_query(
            "DELETE FROM delivery_claims WHERE user_id = %s AND category = %s AND window_key = %s",
            (user_id, category, window_key),
        )
        logger.debug("Delivery claim released", user_id=user_id, category=category, window_key=window_key)

    @classmethod
    async def record_outcome(cls, outcome: DeliveryOutcome) -> str:
        row = await fetch_one(
            """
            INSERT INTO delivery_outcomes (
                user_id, category, campaign, recipient_email, success,
                counts_toward_caps, subject, variant, external_id, error, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                outcome.user_id,
                outcome.category,
                outcome.campaign,
                outcome.recipient_email,
                outcome.success,
                outcome.counts_toward_caps,
                outcome.subject,
                outcome.variant,
                outcome.external_id,
                outcome.error,
                outcome.created_at,
            ),
        )
        return str(row["id"]) if row else ""
