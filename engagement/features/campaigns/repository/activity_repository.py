"""
Activity counts that personalize digests and decide whether one is worth sending.
"""

from datetime import datetime

from engagement.db.helpers import fetch_one
from engagement.features.campaigns.domain import ActivitySummary, GuardianWeekSummary


class ActivityRepository:
    @classmethod
    async def activity_since(cls, user_id: str, since: datetime) -> ActivitySummary:
        """Views, likes, matches and received messages for ``user_id`` since ``since``."""
        query = """
            SELECT
                (SELECT COUNT(*) FROM profile_views
                 WHERE viewed_id = %(uid)s AND created_at >= %(since)s) AS profile_views,
                (SELECT COUNT(*) FROM swipes
                 WHERE swiped_id = %(uid)s AND is_like AND created_at >= %(since)s) AS likes,
                (SELECT COUNT(*) FROM matches
                 WHERE (user1_id = %(uid)s OR user2_id = %(uid)s)
                   AND created_at >= %(since)s) AS matches,
                (SELECT COUNT(*) FROM messages m
                 JOIN matches ma ON ma.id = m.match_id
                 WHERE (ma.user1_id = %(uid)s OR ma.user2_id = %(uid)s)
                   AND m.sender_id <> %(uid)s
                   AND m.created_at >= %(since)s) AS messages
        """
        row = await fetch_one(query, {"uid": user_id, "since": since}) or {}
        return ActivitySummary(
            profile_views=int(row.get("profile_views") or 0),
            likes=int(row.get("likes") or 0),
            matches=int(row.get("matches") or 0),
            messages=int(row.get("messages") or 0),
        )

    @classmethod
    async def guardian_week_summary(cls, user_id: str, since: datetime) -> GuardianWeekSummary:
        """
        Counts a guardian may see. Message content is never read here.
        """
        query = """
            SELECT
                (SELECT COUNT(*) FROM matches
                 WHERE (user1_id = %(uid)s OR user2_id = %(uid)s)
                   AND created_at >= %(since)s) AS new_matches,
                (SELECT COUNT(DISTINCT ma.id) FROM matches ma
                 JOIN messages m ON m.match_id = ma.id
                 WHERE (ma.user1_id = %(uid)s OR ma.user2_id = %(uid)s)
                   AND m.created_at >= %(since)s) AS conversations,
                (SELECT COUNT(*) FROM messages m
                 JOIN matches ma ON ma.id = m.match_id
                 WHERE (ma.user1_id = %(uid)s OR ma.user2_id = %(uid)s)
                   AND m.sender_id <> %(uid)s
                   AND m.created_at >= %(since)s) AS messages_received,
                (SELECT COUNT(*) FROM guardian_alerts
                 WHERE user_id = %(uid)s AND type = 'SAFETY_FLAG'
                   AND created_at >= %(since)s) AS safety_flags
        """
        row = await fetch_one(query, {"uid": user_id, "since": since}) or {}
        return GuardianWeekSummary(
            new_matches=int(row.get("new_matches") or 0),
            conversations=int(row.get("conversations") or 0),
            messages_received=int(row.get("messages_received") or 0),
            safety_flags=int(row.get("safety_flags") or 0),
        )
