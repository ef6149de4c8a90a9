from engagement.db.helpers import fetch_val


class NotificationRepository:
    @classmethod
    async def count_unread(cls, user_id: str) -> int:
        count = await fetch_val(
            "SELECT COUNT(*) FROM notifications WHERE user_id = %s AND read_at IS NULL",
            (user_id,),
        )
        return int(count or 0)
