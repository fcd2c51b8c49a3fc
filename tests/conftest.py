"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import dataclasses
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from uuid import UUID

import pytest

from dm_service.application.dto.principal import Principal
from dm_service.application.exceptions import TransportError
from dm_service.domain.entities.conversation import Conversation
from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.content import MessageContent, TextContent
from dm_service.infrastructure.ws.protocol import NewMessageData, PushedMessage

ALICE = "user-alice"
BOB = "user-bob"
MALLORY = "user-mallory"

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def alice() -> Principal:
    return Principal(user_id=ALICE, roles=[])


@pytest.fixture
def bob() -> Principal:
    return Principal(user_id=BOB, roles=[])


@pytest.fixture
def mallory() -> Principal:
    return Principal(user_id=MALLORY, roles=[])


class FixedClock:
    """Clock that returns ``start`` and advances by ``step`` on every call."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)) -> None:
        self._now = start
        self._step = step

    def now(self) -> datetime:
        current = self._now
        self._now += self._step
        return current


def make_conversation(
    *,
    conversation_id: UUID | None = None,
    user_a_id: str = ALICE,
    user_b_id: str = BOB,
    last_message_at: datetime | None = None,
) -> Conversation:
    first, second = sorted((user_a_id, user_b_id))
    return Conversation(
        id=conversation_id or uuid.uuid4(),
        user_a_id=first,
        user_b_id=second,
        last_message_at=last_message_at,
        created_at=T0,
    )


def make_message(
    *,
    conversation_id: UUID | None = None,
    from_user_id: str = ALICE,
    to_user_id: str = BOB,
    body: str = "hello",
    content: MessageContent | None = None,
    client_msg_id: UUID | None = None,
    created_at: datetime | None = None,
    message_id: UUID | None = None,
    seq: int | None = None,
) -> Message:
    return Message(
        id=message_id or uuid.uuid4(),
        conversation_id=conversation_id or uuid.uuid4(),
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        content=content or TextContent(body=body),
        client_msg_id=client_msg_id or uuid.uuid4(),
        created_at=created_at or T0,
        seq=seq,
    )


@dataclass
class FakeConversationReader:
    _store: dict[UUID, Conversation] = field(default_factory=dict)

    def add(self, conversation: Conversation) -> Conversation:
        self._store[conversation.id] = conversation
        return conversation

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        return self._store.get(conversation_id)

    async def get_by_pair(self, user_a_id: str, user_b_id: str) -> Conversation | None:
        # yield so concurrent callers interleave like they would against a database
        await asyncio.sleep(0)
        for c in self._store.values():
            if (c.user_a_id, c.user_b_id) == (user_a_id, user_b_id):
                return c
        return None

    async def list_for_user(self, user_id: str, *, limit: int = 50) -> list[Conversation]:
        mine = [c for c in self._store.values() if c.has_participant(user_id)]
        mine.sort(
            key=lambda c: (c.last_message_at is not None, c.last_message_at or c.created_at, c.created_at),
            reverse=True,
        )
        return mine[:limit]


@dataclass
class FakeConversationWriter:
    _reader: FakeConversationReader
    _creates: int = 0

    async def create_if_not_exists(self, conversation: Conversation) -> tuple[Conversation, bool]:
        for c in self._reader._store.values():
            if (c.user_a_id, c.user_b_id) == (conversation.user_a_id, conversation.user_b_id):
                return c, False
        self._reader._store[conversation.id] = conversation
        self._creates += 1
        return conversation, True

    async def touch_last_message(self, conversation_id: UUID, message_id: UUID, ts: datetime) -> None:
        c = self._reader._store.get(conversation_id)
        if c is None:
            return
        if c.last_message_at is None or c.last_message_at < ts:
            self._reader._store[conversation_id] = dataclasses.replace(
                c, last_message_at=ts, last_message_id=message_id,
            )


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    async def list_messages(self, conversation_id: UUID, *, limit: int = 50) -> list[Message]:
        mine = [m for m in self._messages if m.conversation_id == conversation_id]
        mine.sort(key=lambda m: (m.created_at, m.seq or 0))
        return mine[-limit:] if limit else []


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        existing = await self.get_by_client_msg_id(
            message.conversation_id, message.from_user_id, message.client_msg_id,
        )
        if existing is not None:
            return existing, False
        # the store numbers rows in insertion order
        message = dataclasses.replace(message, seq=len(self._reader._messages) + 1)
        self._reader._messages.append(message)
        return message, True

    async def get_by_client_msg_id(
        self, conversation_id: UUID, from_user_id: str, client_msg_id: UUID,
    ) -> Message | None:
        for m in self._reader._messages:
            if (
                m.conversation_id == conversation_id
                and m.from_user_id == from_user_id
                and m.client_msg_id == client_msg_id
            ):
                return m
        return None


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    conversations: FakeConversationReader = field(default_factory=FakeConversationReader)
    conversations_w: FakeConversationWriter | None = None
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    _committed: bool = False
    _commits: int = 0

    def __post_init__(self) -> None:
        if self.conversations_w is None:
            self.conversations_w = FakeConversationWriter(self.conversations)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self._committed = True
        self._commits += 1

    async def rollback(self) -> None:
        pass


class FakeConnection:
    """Scripted realtime connection: frames go in via ``feed``, sent frames are recorded."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed = False
        self.broken = False
        self._inbox: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, raw: str) -> None:
        if self.broken or self.closed:
            raise TransportError("connection broken")
        self.sent.append(json.loads(raw))

    async def recv(self) -> str:
        item = await self._inbox.get()
        if item is None:
            raise TransportError("connection dropped")
        return item

    async def close(self) -> None:
        self.closed = True

    def feed(self, event: str, data: dict) -> None:
        self._inbox.put_nowait(json.dumps({"type": event, "data": data}))

    def feed_raw(self, raw: str) -> None:
        self._inbox.put_nowait(raw)

    def push(self, message: PushedMessage) -> None:
        payload = NewMessageData(conversation_id=message.conversation_id, message=message)
        self.feed("new_message", payload.model_dump(mode="json"))

    def drop(self) -> None:
        self._inbox.put_nowait(None)

    def sent_types(self) -> list[str]:
        return [frame["type"] for frame in self.sent]


class FakeTransport:
    """Hands out FakeConnections; ``on_connect`` runs in the middle of every handshake."""

    def __init__(
        self,
        *,
        fail_next: int = 0,
        on_connect: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self.fail_next = fail_next
        self.on_connect = on_connect
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []

    async def connect(self, url: str) -> FakeConnection:
        self.urls.append(url)
        if self.on_connect is not None:
            await self.on_connect()
        if self.fail_next:
            self.fail_next -= 1
            raise TransportError("handshake refused")
        conn = FakeConnection()
        self.connections.append(conn)
        return conn

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]


async def settle(rounds: int = 20) -> None:
    """Let background tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)
