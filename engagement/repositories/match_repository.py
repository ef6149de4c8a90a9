from engagement.db.helpers import fetch_one
from engagement.models.domain.match_domain import MatchRecord


class MatchRepository:
    @classmethod
    async def get_match(cls, match_id: str) -> MatchRecord | None:
        row = await fetch_one(
            "SELECT id, user1_id, user2_id FROM matches WHERE id = %s",
            (match_id,),
        )
        if not row:
            return None
        return MatchRecord(
            id=str(row["id"]),
            user1_id=str(row["user1_id"]),
            user2_id=str(row["user2_id"]),
        )
