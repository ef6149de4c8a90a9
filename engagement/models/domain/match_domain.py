from dataclasses import dataclass


@dataclass(slots=True)
class MatchRecord:
    """Two users who matched; the conversation between them is keyed by ``id``."""

    id: str
    user1_id: str
    user2_id: str

    def other_participant(self, user_id: str) -> str | None:
        """Return the counterpart of ``user_id`` or None if they are not a participant."""
        if user_id == self.user1_id:
            return self.user2_id
        if user_id == self.user2_id:
            return self.user1_id
        return None
