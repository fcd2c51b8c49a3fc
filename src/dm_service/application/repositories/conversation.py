from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from dm_service.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: UUID) -> Conversation | None: ...

    async def get_by_pair(self, user_a_id: str, user_b_id: str) -> Conversation | None:
        """Find the conversation for an already normalised pair."""
        ...

    async def list_for_user(self, user_id: str, *, limit: int = 50) -> list[Conversation]:
        """Most recently active first; conversations without messages last."""
        ...


class ConversationWriter(Protocol):
    async def create_if_not_exists(
        self, conversation: Conversation
    ) -> tuple[Conversation, bool]:
        """Insert conversation. Return (conversation, created). On pair conflict → existing."""
        ...

    async def touch_last_message(
        self, conversation_id: UUID, message_id: UUID, ts: datetime
    ) -> None:
        """Point the conversation at a newer message. Never moves it backwards."""
        ...
