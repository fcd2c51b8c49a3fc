from __future__ import annotations

from typing import Any, Protocol
from uuid import UUID


class FanoutPublisher(Protocol):
    async def publish(
        self,
        conversation_id: UUID,
        event_type: str,
        data: dict[str, Any],
        *,
        origin: str | None = None,
    ) -> None:
        """Deliver an event to every connection interested in the conversation.

        ``origin`` is the connection id of the sender, which is excluded.
        """
        ...
