"""
Shared user-table access used outside the campaign feature.
"""

from datetime import datetime

from engagement.db.helpers import execute_query

class UserRepository:
    @classmethod
    async def touch_last_seen(cls, user_id: str, seen_at: datetime) -> bool:
        """
        Persist a heartbeat to ``users.last_seen_at``.

        GREATEST keeps the column monotonic when heartbeats arrive out of order.
        """
        query = """
            UPDATE users
            SET last_seen_at = GREATEST(COALESCE(last_seen_at, %s), %s)
            WHERE id = %s
        """
        updated = await execute_query(query, (seen_at, seen_at, user_id))
        return updated > 0
