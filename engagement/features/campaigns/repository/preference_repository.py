"""
Opt-outs, suppressions and the member-facing preference settings.
"""

from engagement.db.helpers import execute_query, fetch_one, fetch_val
from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Marker returned when the user withdrew marketing consent altogether
ALL_MARKETING = "all_marketing"

PREFERENCE_GROUPS = (
    "daily_digest",
    "weekly_highlights",
    "re_engagement",
    "special_events",
    "profile_nudge",
)

_GROUP_COLUMNS = ", ".join(f"p.{group}" for group in PREFERENCE_GROUPS)


class PreferenceRepository:
    @classmethod
    async def _load(cls, user_id: str) -> dict | None:
        return await fetch_one(
            f"""
            SELECT u.marketing_consent, {_GROUP_COLUMNS}
            FROM users u
            LEFT JOIN email_preferences p ON p.user_id = u.id
            WHERE u.id = %s
            """,
            (user_id,),
        )

    @classmethod
    async def get_opt_outs(cls, user_id: str) -> set[str]:
        """
        Preference groups the user switched off, plus ``ALL_MARKETING`` when
        marketing consent is withdrawn. A user without a preferences row has
        every group enabled.
        """
        row = await cls._load(user_id)
        if not row:
            return {ALL_MARKETING}

        opt_outs = {group for group in PREFERENCE_GROUPS if row.get(group) is False}
        if row.get("marketing_consent") is False:
            opt_outs.add(ALL_MARKETING)
        return opt_outs

    @classmethod
    async def get_preferences(cls, user_id: str) -> dict[str, bool] | None:
        """
        Consent and every group as booleans, or None for an unknown user.
        Groups without a stored row read as enabled.
        """
        row = await cls._load(user_id)
        if not row:
            return None
        preferences = {group: row.get(group) is not False for group in PREFERENCE_GROUPS}
        preferences["marketing_consent"] = row.get("marketing_consent") is not False
        return preferences

    @classmethod
    async def update_preferences(cls, user_id: str, groups: dict[str, bool]) -> None:
        """Upsert the given groups; groups not mentioned keep their value."""
        columns = [group for group in PREFERENCE_GROUPS if group in groups]
        if not columns:
            return
        values = tuple(groups[group] for group in columns)
        await execute_query(
            f"""
            INSERT INTO email_preferences (user_id, {", ".join(columns)})
            VALUES (%s, {", ".join(["%s"] * len(columns))})
            ON CONFLICT (user_id) DO UPDATE SET
                {", ".join(f"{c} = EXCLUDED.{c}" for c in columns)},
                updated_at = NOW()
            """,
            (user_id, *values),
        )
        logger.info("Email preferences updated", user_id=user_id, groups=columns)

    @classmethod
    async def set_marketing_consent(cls, user_id: str, consent: bool) -> None:
        await execute_query(
            "UPDATE users SET marketing_consent = %s WHERE id = %s",
            (consent, user_id),
        )
        logger.info("Marketing consent changed", user_id=user_id, consent=consent)

    @classmethod
    async def is_suppressed(cls, email: str) -> bool:
        return bool(
            await fetch_val(
                "SELECT EXISTS (SELECT 1 FROM email_suppressions WHERE LOWER(email) = LOWER(%s))",
                (email,),
            )
        )

    @classmethod
    async def suppress(cls, email: str, reason: str) -> None:
        await execute_query(
            """
            INSERT INTO email_suppressions (email, reason)
            VALUES (LOWER(%s), %s)
            ON CONFLICT (email) DO UPDATE SET reason = EXCLUDED.reason
            """,
            (email, reason),
        )
        logger.info("Email address suppressed", reason=reason)
