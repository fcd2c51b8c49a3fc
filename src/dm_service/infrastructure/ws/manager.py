"""In-process WebSocket hub: connections and per-conversation interest."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from fastapi import WebSocket

from dm_service.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    ws: WebSocket
    user_id: str
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    conversations: set[UUID] = field(default_factory=set)


class ConnectionManager:
    """Tracks open connections and which conversations each one listens to.

    All mutations happen synchronously on the event loop. Broadcasts iterate
    over a snapshot, so joins and disconnects during a send are safe.
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._interest: dict[UUID, set[str]] = {}

    def __len__(self) -> int:
        return len(self._connections)

    async def connect(self, ws: WebSocket, user_id: str) -> Connection:
        await ws.accept()
        conn = Connection(ws=ws, user_id=user_id)
        self._connections[conn.connection_id] = conn
        logger.debug(
            "WS connected: %s as %s (total=%d)",
            conn.connection_id, user_id, len(self._connections),
        )
        return conn

    def disconnect(self, connection_id: str) -> None:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return
        for conversation_id in conn.conversations:
            self._drop_interest(conversation_id, connection_id)
        conn.conversations.clear()
        logger.debug("WS disconnected: %s", connection_id)

    def join(self, connection_id: str, conversation_id: UUID) -> None:
        conn = self._connections.get(connection_id)
        if conn is None:
            return
        conn.conversations.add(conversation_id)
        self._interest.setdefault(conversation_id, set()).add(connection_id)

    def leave(self, connection_id: str, conversation_id: UUID) -> None:
        conn = self._connections.get(connection_id)
        if conn is not None:
            conn.conversations.discard(conversation_id)
        self._drop_interest(conversation_id, connection_id)

    def is_joined(self, connection_id: str, conversation_id: UUID) -> bool:
        return connection_id in self._interest.get(conversation_id, ())

    def interested(self, conversation_id: UUID) -> set[str]:
        return set(self._interest.get(conversation_id, ()))

    def _drop_interest(self, conversation_id: UUID, connection_id: str) -> None:
        subs = self._interest.get(conversation_id)
        if subs is None:
            return
        subs.discard(connection_id)
        if not subs:
            del self._interest[conversation_id]

    async def broadcast_to_conversation(
        self,
        conversation_id: UUID,
        event_type: str,
        data: dict[str, Any],
        *,
        exclude: str | None = None,
    ) -> int:
        """Send an event to every connection joined to the conversation.

        Returns the number of connections the frame was written to.
        """
        raw = WsOutbound(type=event_type, data=data).model_dump_json()
        delivered = 0
        dead: list[str] = []
        for connection_id in self.interested(conversation_id):
            if connection_id == exclude:
                continue
            conn = self._connections.get(connection_id)
            if conn is None:
                continue
            try:
                await conn.ws.send_text(raw)
                delivered += 1
            except Exception:
                logger.debug("WS send failed on %s", connection_id, exc_info=True)
                dead.append(connection_id)
        for connection_id in dead:
            self.disconnect(connection_id)
        return delivered


class LocalFanout:
    """FanoutPublisher that delivers straight to this process's connections."""

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager

    async def publish(
        self,
        conversation_id: UUID,
        event_type: str,
        data: dict[str, Any],
        *,
        origin: str | None = None,
    ) -> None:
        delivered = await self._manager.broadcast_to_conversation(
            conversation_id, event_type, data, exclude=origin,
        )
        logger.debug(
            "Fan-out %s for %s reached %d connection(s)",
            event_type, conversation_id, delivered,
        )
