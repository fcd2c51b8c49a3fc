"""Realtime delivery session: one hub connection, one active conversation.

The session is strictly best-effort. A failed handshake or a dropped socket
puts it in ``closed`` and schedules a reconnect with exponential backoff; the
REST path keeps working the whole time. After every reconnect the active
conversation is re-joined and ``on_gap`` is called so the caller can refetch
whatever was pushed while the connection was down.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import StrEnum
from typing import Any, Awaitable, Callable
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from dm_service.application.exceptions import TransportError
from dm_service.client.session import Session
from dm_service.client.settings import ClientSettings
from dm_service.client.transport import RealtimeConnection, RealtimeTransport
from dm_service.domain.value_objects.content import MessageContent, content_fields
from dm_service.infrastructure.ws.protocol import (
    NewMessageData,
    PushedMessage,
    WsEvent,
    WsInbound,
    WsOutbound,
)

logger = logging.getLogger(__name__)

PushHandler = Callable[[PushedMessage], None]
GapHandler = Callable[[UUID], Awaitable[None]]


class ConnectionState(StrEnum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


def reconnect_delay(attempt: int, base: float, maximum: float) -> float:
    return min(base * (2 ** attempt), maximum)


class DeliverySession:
    def __init__(
        self,
        session: Session,
        transport: RealtimeTransport,
        *,
        on_push: PushHandler,
        on_gap: GapHandler | None = None,
        settings: ClientSettings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._session = session
        self._transport = transport
        self._on_push = on_push
        self._on_gap = on_gap
        self._settings = settings or ClientSettings()
        self._sleep = sleep

        self.state = ConnectionState.CLOSED
        self.active_conversation_id: UUID | None = None
        self._conn: RealtimeConnection | None = None
        self._reader: asyncio.Task | None = None
        self._handshake: asyncio.Task | None = None
        self._reconnector: asyncio.Task | None = None
        self._joined: set[UUID] = set()
        self._acked: set[UUID] = set()
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    def is_joined(self, conversation_id: UUID) -> bool:
        return conversation_id in self._joined

    def was_acknowledged(self, client_msg_id: UUID) -> bool:
        return client_msg_id in self._acked

    async def connect(self) -> bool:
        """Open the hub connection, or wait for the handshake already in flight."""
        if self.state == ConnectionState.OPEN:
            return True
        if self._closing:
            return False
        handshake = self._handshake
        if handshake is None or handshake.done():
            handshake = asyncio.create_task(self._handshake_once(), name="dm-realtime-handshake")
            self._handshake = handshake
        return await asyncio.shield(handshake)

    async def _handshake_once(self) -> bool:
        self.state = ConnectionState.CONNECTING
        try:
            async with asyncio.timeout(self._settings.HANDSHAKE_TIMEOUT):
                conn = await self._transport.connect(self._session.ws_url)
        except (TransportError, TimeoutError) as exc:
            self.state = ConnectionState.CLOSED
            logger.warning("Realtime handshake failed, using snapshots only: %s", exc)
            return False

        if self._closing:
            self.state = ConnectionState.CLOSED
            with contextlib.suppress(TransportError):
                await conn.close()
            return False

        self._conn = conn
        self._joined.clear()
        self.state = ConnectionState.OPEN
        self._reader = asyncio.create_task(self._read_loop(conn), name="dm-realtime-reader")
        logger.info("Realtime connection open for %s", self._session.user_id)
        return True

    async def open_conversation(self, conversation_id: UUID) -> bool:
        """Make ``conversation_id`` the only conversation this session listens to.

        Overlapping calls share one handshake; the last caller wins and the
        others return False.
        """
        self.active_conversation_id = conversation_id

        if not self.is_open and not await self.connect():
            self._schedule_reconnect()
            return False
        if self.active_conversation_id != conversation_id:
            return False

        for stale in [c for c in self._joined if c != conversation_id]:
            self._joined.discard(stale)
            await self._send(WsEvent.LEAVE_CONVERSATION, {"conversation_id": str(stale)})
        return await self._join(conversation_id)

    async def send_message(
        self,
        conversation_id: UUID,
        client_msg_id: UUID,
        content: MessageContent,
        *,
        message_id: UUID | None = None,
    ) -> bool:
        """Push a just-sent message to the other side. False when it could not go out."""
        if not self.is_open or conversation_id not in self._joined:
            logger.debug("Skipping realtime push for %s: not joined", conversation_id)
            return False
        data: dict[str, Any] = {
            "conversation_id": str(conversation_id),
            "client_msg_id": str(client_msg_id),
            **content_fields(content),
        }
        if message_id is not None:
            data["id"] = str(message_id)
        return await self._send(WsEvent.SEND_MESSAGE, data)

    async def close(self) -> None:
        self._closing = True
        current = asyncio.current_task()
        tasks = [t for t in (self._reconnector, self._reader) if t is not None and t is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._reconnector = self._reader = None

        # a handshake still in flight sees _closing and closes its own socket
        handshake = self._handshake
        if handshake is not None and handshake is not current:
            await asyncio.gather(handshake, return_exceptions=True)

        conn, self._conn = self._conn, None
        self.state = ConnectionState.CLOSED
        self._joined.clear()
        if conn is not None:
            with contextlib.suppress(TransportError):
                await conn.close()

    async def _join(self, conversation_id: UUID) -> bool:
        if conversation_id in self._joined:
            return True
        self._joined.add(conversation_id)
        ok = await self._send(WsEvent.JOIN_CONVERSATION, {"conversation_id": str(conversation_id)})
        if not ok:
            self._joined.discard(conversation_id)
        return ok

    async def _send(self, event: WsEvent, data: dict[str, Any]) -> bool:
        conn = self._conn
        if conn is None or not self.is_open:
            return False
        try:
            await conn.send(WsInbound(type=event, data=data).model_dump_json())
        except TransportError as exc:
            logger.warning("Realtime send of %s failed: %s", event, exc)
            await self._connection_lost(conn)
            return False
        return True

    async def _read_loop(self, conn: RealtimeConnection) -> None:
        try:
            while True:
                self._dispatch(await conn.recv())
        except TransportError as exc:
            logger.info("Realtime connection lost: %s", exc)
        await self._connection_lost(conn)

    def _dispatch(self, raw: str) -> None:
        try:
            frame = WsOutbound.model_validate_json(raw)
        except PydanticValidationError:
            logger.debug("Dropping malformed realtime frame")
            return

        if frame.type == WsEvent.NEW_MESSAGE:
            try:
                data = NewMessageData.model_validate(frame.data)
            except PydanticValidationError:
                logger.warning("Dropping malformed new_message frame")
                return
            if data.conversation_id not in self._joined:
                return
            try:
                self._on_push(data.message)
            except Exception:
                logger.exception("Push handler failed for %s", data.conversation_id)

        elif frame.type == WsEvent.SEND_ACK:
            client_msg_id = frame.data.get("client_msg_id")
            if client_msg_id:
                with contextlib.suppress(ValueError):
                    self._acked.add(UUID(client_msg_id))

        elif frame.type == WsEvent.ERROR:
            logger.warning("Hub reported an error: %s", frame.data)

    async def _connection_lost(self, conn: RealtimeConnection) -> None:
        if conn is not self._conn:
            return
        self._conn = None
        self.state = ConnectionState.CLOSED
        self._joined.clear()

        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        with contextlib.suppress(TransportError):
            await conn.close()

        if not self._closing:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return
        running = self._reconnector
        if running is not None and not running.done() and running is not asyncio.current_task():
            return
        self._reconnector = asyncio.create_task(self._reconnect_loop(), name="dm-realtime-reconnect")

    async def _reconnect_loop(self) -> None:
        attempt = 0
        max_attempts = self._settings.RECONNECT_MAX_ATTEMPTS
        while not self._closing:
            if max_attempts is not None and attempt >= max_attempts:
                logger.warning("Giving up on realtime after %d reconnect attempts", attempt)
                return
            delay = reconnect_delay(
                attempt,
                self._settings.RECONNECT_BASE_DELAY,
                self._settings.RECONNECT_MAX_DELAY,
            )
            await self._sleep(delay)
            attempt += 1
            if not await self.connect():
                continue

            conversation_id = self.active_conversation_id
            if conversation_id is None:
                return
            await self._join(conversation_id)
            if self._on_gap is not None:
                try:
                    await self._on_gap(conversation_id)
                except Exception:
                    logger.exception("Refetch after reconnect failed for %s", conversation_id)
            return
