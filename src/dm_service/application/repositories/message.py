from __future__ import annotations

from typing import Protocol
from uuid import UUID

from dm_service.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(
        self,
        conversation_id: UUID,
        *,
        limit: int = 50,
    ) -> list[Message]:
        """Most recent ``limit`` messages, returned oldest first."""
        ...


class MessageWriter(Protocol):
    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message. Return (message, created). If conflict on client_msg_id → return existing."""
        ...

    async def get_by_client_msg_id(
        self,
        conversation_id: UUID,
        from_user_id: str,
        client_msg_id: UUID,
    ) -> Message | None: ...
