from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from dm_service.domain.entities.message import Message
from dm_service.infrastructure.ws.protocol import ContentModel, content_to_model


class SendMessageRequest(BaseModel):
    client_msg_id: UUID | None = None
    body: str | None = None
    media_url: str | None = None
    media_type: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    file_name: str | None = None


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    from_user_id: str
    to_user_id: str
    content: ContentModel
    client_msg_id: UUID
    created_at: datetime
    seq: int | None = None

    @classmethod
    def from_entity(cls, message: Message) -> MessageResponse:
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            from_user_id=message.from_user_id,
            to_user_id=message.to_user_id,
            content=content_to_model(message.content),
            client_msg_id=message.client_msg_id,
            created_at=message.created_at,
            seq=message.seq,
        )

    def to_entity(self) -> Message:
        return Message(
            id=self.id,
            conversation_id=self.conversation_id,
            from_user_id=self.from_user_id,
            to_user_id=self.to_user_id,
            content=self.content.to_content(),
            client_msg_id=self.client_msg_id,
            created_at=self.created_at,
            seq=self.seq,
        )
