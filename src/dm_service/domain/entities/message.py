from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from dm_service.domain.value_objects.content import MessageContent


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    conversation_id: UUID
    from_user_id: str
    to_user_id: str
    content: MessageContent
    client_msg_id: UUID
    created_at: datetime
    # store-assigned insertion order; None until the message is persisted
    seq: int | None = None
