from __future__ import annotations

from dm_service.domain.entities.conversation import Conversation
from dm_service.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=model.id,
        user_a_id=model.user_a_id,
        user_b_id=model.user_b_id,
        last_message_at=model.last_message_at,
        created_at=model.created_at,
        last_message_id=model.last_message_id,
    )
