"""
Selection queries for campaign runs.

Each method returns the full candidate list for one run; the runner
materializes it before dispatching, so a selection is never re-evaluated
mid-run. Every finder accepts an ``AudienceExclusion`` so members already
served in the current window never take up room in the batch limit, and a
member past the limit is reached by a later run.
"""

from datetime import datetime

from engagement.config import settings
from engagement.db.helpers import execute_query, fetch_all
from engagement.errors import ValidationError
from engagement.features.campaigns.domain import (
    PROFILE_NUDGE_THRESHOLD,
    AudienceExclusion,
    ConversationNudge,
    UserRecord,
    profile_score_sql,
)
from engagement.infrastructure.observability.logging import get_logger

from .preference_repository import PREFERENCE_GROUPS

logger = get_logger(__name__)


class RecipientRepository:
    """Read-side user queries backing the campaign selection predicates."""

    USER_COLUMN_NAMES = (
        "id", "email", "first_name", "created_at", "last_seen_at", "birth_date",
        "guardian_email", "guardian_name",
        "profile_image_url", "bio", "interests", "city", "voice_intro_url", "looking_for",
    )

    # Users without a heartbeat count as last seen at signup
    LAST_ACTIVE = "COALESCE(last_seen_at, created_at)"

    @classmethod
    def _columns(cls, alias: str = "users") -> str:
        return ", ".join(f"{alias}.{name}" for name in cls.USER_COLUMN_NAMES)

    @classmethod
    def _row_to_user(cls, row: dict) -> UserRecord:
        return UserRecord(
            id=str(row["id"]),
            email=row.get("email"),
            first_name=row.get("first_name"),
            created_at=row["created_at"],
            last_seen_at=row.get("last_seen_at"),
            birth_date=row.get("birth_date"),
            guardian_email=row.get("guardian_email"),
            guardian_name=row.get("guardian_name"),
            profile_image_url=row.get("profile_image_url"),
            bio=row.get("bio"),
            interests=list(row.get("interests") or []),
            city=row.get("city"),
            voice_intro_url=row.get("voice_intro_url"),
            looking_for=row.get("looking_for"),
        )

    @classmethod
    def _row_to_nudge(cls, row: dict) -> ConversationNudge:
        return ConversationNudge(
            user=cls._row_to_user(row),
            counterpart_name=row.get("counterpart_name"),
            since=row["since"],
            unread_count=int(row.get("unread_count") or 0),
        )

    @classmethod
    def _exclusion(cls, exclude: AudienceExclusion | None, alias: str = "users") -> tuple[str, tuple]:
        """
        Anti-join fragment, starting with ``AND``, that drops members the
        guard would refuse for ``exclude.category`` anyway.
        """
        if exclude is None:
            return "", ()

        sent = f"""
            SELECT 1 FROM delivery_outcomes dlo
            WHERE dlo.user_id = {alias}.id AND dlo.category = %s AND dlo.success
        """
        params: list = [exclude.category]
        if exclude.since is not None:
            sent += " AND dlo.created_at >= %s"
            params.append(exclude.since)

        clauses = [
            f"NOT EXISTS ({sent})",
            f"""NOT EXISTS (
                SELECT 1 FROM delivery_claims dc
                WHERE dc.user_id = {alias}.id AND dc.category = %s AND dc.window_key = %s
            )""",
        ]
        params += [exclude.category, exclude.window_key]

        if exclude.marketing:
            clauses.append(f"{alias}.marketing_consent")
            clauses.append(
                f"""NOT EXISTS (
                    SELECT 1 FROM email_suppressions es WHERE LOWER(es.email) = LOWER({alias}.email)
                )"""
            )
            if exclude.preference:
                if exclude.preference not in PREFERENCE_GROUPS:
                    raise ValidationError(
                        f"Unknown preference group: {exclude.preference}", operation="audience_exclusion"
                    )
                clauses.append(
                    f"""NOT EXISTS (
                        SELECT 1 FROM email_preferences ep
                        WHERE ep.user_id = {alias}.id AND ep.{exclude.preference} IS FALSE
                    )"""
                )

        return "".join(f" AND {clause}" for clause in clauses), tuple(params)

    @classmethod
    async def _select(
        cls,
        where: str,
        params: tuple,
        limit: int | None,
        exclude: AudienceExclusion | None = None,
    ) -> list[UserRecord]:
        excluded, exclude_params = cls._exclusion(exclude)
        query = f"""
            SELECT {cls._columns()}
            FROM users
            WHERE email IS NOT NULL AND {where}{excluded}
            ORDER BY id
            LIMIT %s
        """
        rows = await fetch_all(
            query, (*params, *exclude_params, limit or settings.CAMPAIGN_BATCH_LIMIT)
        )
        return [cls._row_to_user(row) for row in rows]

    @classmethod
    async def find_by_birthday(
        cls,
        month_days: list[str],
        exclude: AudienceExclusion | None = None,
        limit: int | None = None,
    ) -> list[UserRecord]:
        """
        Users whose birth date falls on any of ``month_days`` (``MM-DD`` strings).
        """
        return await cls._select(
            "birth_date IS NOT NULL AND TO_CHAR(birth_date, 'MM-DD') = ANY(%s)",
            (month_days,),
            limit,
            exclude,
        )

    @classmethod
    async def find_last_active_between(
        cls,
        oldest: datetime,
        newest: datetime,
        exclude: AudienceExclusion | None = None,
        limit: int | None = None,
    ) -> list[UserRecord]:
        """Users last active in ``[oldest, newest]``."""
        return await cls._select(
            f"{cls.LAST_ACTIVE} >= %s AND {cls.LAST_ACTIVE} <= %s",
            (oldest, newest),
            limit,
            exclude,
        )

    @classmethod
    async def find_active_since(
        cls,
        since: datetime,
        exclude: AudienceExclusion | None = None,
        limit: int | None = None,
    ) -> list[UserRecord]:
        return await cls._select("last_seen_at >= %s", (since,), limit, exclude)

    @classmethod
    async def find_signed_up_between(
        cls,
        start: datetime,
        end: datetime,
        exclude: AudienceExclusion | None = None,
        limit: int | None = None,
    ) -> list[UserRecord]:
        """Users created in ``[start, end)``."""
        return await cls._select("created_at >= %s AND created_at < %s", (start, end), limit, exclude)

    @classmethod
    async def find_with_recent_interest(
        cls,
        since: datetime,
        exclude: AudienceExclusion | None = None,
        limit: int | None = None,
    ) -> list[UserRecord]:
        """Users who received a profile view or a like since ``since``."""
        return await cls._select(
            """
            (
                EXISTS (
                    SELECT 1 FROM profile_views pv
                    WHERE pv.viewed_id = users.id AND pv.created_at >= %s
                )
                OR EXISTS (
                    SELECT 1 FROM swipes s
                    WHERE s.swiped_id = users.id AND s.is_like AND s.created_at >= %s
                )
            )
            """,
            (since, since),
            limit,
            exclude,
        )

    @classmethod
    async def find_incomplete_profiles(
        cls,
        created_before: datetime,
        exclude: AudienceExclusion | None = None,
        limit: int | None = None,
    ) -> list[UserRecord]:
        """Users signed up before ``created_before`` whose profile scores below the nudge threshold."""
        return await cls._select(
            f"created_at <= %s AND ({profile_score_sql()}) < %s",
            (created_before, PROFILE_NUDGE_THRESHOLD),
            limit,
            exclude,
        )

    @classmethod
    async def find_unmessaged_matches(
        cls,
        oldest: datetime,
        newest: datetime,
        exclude: AudienceExclusion | None = None,
        limit: int | None = None,
    ) -> list[ConversationNudge]:
        """
        Members with a match made in ``[oldest, newest]`` that nobody has
        written in yet. Both sides of the match qualify; a member with several
        such matches is returned once, for the newest.
        """
        excluded, exclude_params = cls._exclusion(exclude, alias="u")
        query = f"""
            SELECT DISTINCT ON (u.id)
                {cls._columns("u")},
                other.first_name AS counterpart_name,
                m.created_at AS since
            FROM matches m
            JOIN users u ON u.id IN (m.user1_id, m.user2_id)
            JOIN users other
              ON other.id = CASE WHEN m.user1_id = u.id THEN m.user2_id ELSE m.user1_id END
            WHERE m.created_at >= %s AND m.created_at <= %s
              AND u.email IS NOT NULL
              AND NOT EXISTS (SELECT 1 FROM messages msg WHERE msg.match_id = m.id)
              {excluded}
            ORDER BY u.id, m.created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(
            query, (oldest, newest, *exclude_params, limit or settings.CAMPAIGN_BATCH_LIMIT)
        )
        return [cls._row_to_nudge(row) for row in rows]

    @classmethod
    async def find_unanswered_messages(
        cls,
        oldest: datetime,
        newest: datetime,
        exclude: AudienceExclusion | None = None,
        limit: int | None = None,
    ) -> list[ConversationNudge]:
        """
        Members with unread messages sent in ``[oldest, newest]``, one row per
        member naming the sender of the newest one and counting all of them.
        """
        excluded, exclude_params = cls._exclusion(exclude, alias="u")
        query = f"""
            SELECT DISTINCT ON (u.id)
                {cls._columns("u")},
                sender.first_name AS counterpart_name,
                msg.created_at AS since,
                COUNT(*) OVER (PARTITION BY u.id) AS unread_count
            FROM messages msg
            JOIN matches m ON m.id = msg.match_id
            JOIN users u
              ON u.id = CASE WHEN m.user1_id = msg.sender_id THEN m.user2_id ELSE m.user1_id END
            JOIN users sender ON sender.id = msg.sender_id
            WHERE msg.read_at IS NULL
              AND msg.created_at >= %s AND msg.created_at <= %s
              AND u.email IS NOT NULL
              {excluded}
            ORDER BY u.id, msg.created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(
            query, (oldest, newest, *exclude_params, limit or settings.CAMPAIGN_BATCH_LIMIT)
        )
        return [cls._row_to_nudge(row) for row in rows]

    @classmethod
    async def find_guardian_recipients(
        cls, exclude: AudienceExclusion | None = None, limit: int | None = None
    ) -> list[UserRecord]:
        """Users whose confirmed guardian has an email address."""
        excluded, exclude_params = cls._exclusion(exclude)
        query = f"""
            SELECT {cls._columns()}
            FROM users
            WHERE guardian_enabled
              AND guardian_confirmed
              AND guardian_email IS NOT NULL
              {excluded}
            ORDER BY id
            LIMIT %s
        """
        rows = await fetch_all(query, (*exclude_params, limit or settings.CAMPAIGN_BATCH_LIMIT))
        return [cls._row_to_user(row) for row in rows]

    @classmethod
    async def mark_guardian_notified(cls, user_id: str, notified_at: datetime) -> None:
        await execute_query(
            "UPDATE users SET guardian_last_notified_at = %s WHERE id = %s",
            (notified_at, user_id),
        )
        logger.debug("Guardian notified timestamp updated", user_id=user_id)
