from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Conversation:
    """1:1 conversation. The pair is stored normalised: ``user_a_id < user_b_id``."""

    id: UUID
    user_a_id: str
    user_b_id: str
    last_message_at: datetime | None
    created_at: datetime
    last_message_id: UUID | None = None

    @property
    def participants(self) -> tuple[str, str]:
        return self.user_a_id, self.user_b_id

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def other_participant(self, user_id: str) -> str:
        if user_id == self.user_a_id:
            return self.user_b_id
        if user_id == self.user_b_id:
            return self.user_a_id
        raise ValueError(f"{user_id!r} is not a participant of conversation {self.id}")
