from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from dm_service.domain.entities.conversation import Conversation


class ConversationResponse(BaseModel):
    id: UUID
    user_a_id: str
    user_b_id: str
    last_message_at: datetime | None
    created_at: datetime
    last_message_id: UUID | None = None

    model_config = {"from_attributes": True}

    def to_entity(self) -> Conversation:
        return Conversation(
            id=self.id,
            user_a_id=self.user_a_id,
            user_b_id=self.user_b_id,
            last_message_at=self.last_message_at,
            created_at=self.created_at,
            last_message_id=self.last_message_id,
        )
