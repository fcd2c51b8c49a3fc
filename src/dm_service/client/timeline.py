"""Client-side view of one conversation.

A timeline merges three sources into a single list of unique messages:
optimistic entries for the user's own sends, the persisted snapshot fetched
over REST, and live pushes from the realtime channel. Entries are matched on
the server id first and the sender's ``client_msg_id`` second. The list is
ordered by ``created_at``; ties go to the store's ``seq`` for stored messages,
so both participants settle on the same order, and to local arrival otherwise.
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Iterable
from uuid import UUID

from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.content import MessageContent
from dm_service.infrastructure.ws.protocol import PushedMessage

logger = logging.getLogger(__name__)

# a push from ourselves without a correlation id that matches one of our own
# entries within this window is our send coming back
SELF_ECHO_WINDOW = timedelta(seconds=30)


class EntryState(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    LIVE = "live"
    FAILED = "failed"


class LoadState(StrEnum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(slots=True)
class TimelineEntry:
    seq: int
    conversation_id: UUID
    from_user_id: str
    content: MessageContent
    created_at: datetime
    state: EntryState
    message_id: UUID | None = None
    client_msg_id: UUID | None = None
    message: Message | None = None
    error: str | None = None

    @property
    def is_own_unsettled(self) -> bool:
        return self.state in (EntryState.PENDING, EntryState.FAILED)


def _order_key(entry: TimelineEntry) -> tuple[datetime, int, int]:
    stored_seq = entry.message.seq if entry.message is not None else None
    if stored_seq is None:
        return entry.created_at, 1, entry.seq
    return entry.created_at, 0, stored_seq


class Timeline:
    def __init__(self, conversation_id: UUID, self_user_id: str) -> None:
        self.conversation_id = conversation_id
        self.self_user_id = self_user_id
        self.load_state = LoadState.EMPTY
        self.load_error: str | None = None
        self._entries: dict[int, TimelineEntry] = {}
        self._by_id: dict[UUID, int] = {}
        self._by_client: dict[UUID, int] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[TimelineEntry]:
        return sorted(self._entries.values(), key=_order_key)

    def get(self, client_msg_id: UUID) -> TimelineEntry | None:
        seq = self._by_client.get(client_msg_id)
        return self._entries[seq] if seq is not None else None

    def find(self, message_id: UUID) -> TimelineEntry | None:
        seq = self._by_id.get(message_id)
        return self._entries[seq] if seq is not None else None

    def confirmed_messages(self) -> list[Message]:
        return [e.message for e in self.entries() if e.message is not None]

    # -- own sends --

    def add_optimistic(
        self,
        client_msg_id: UUID,
        content: MessageContent,
        created_at: datetime,
    ) -> TimelineEntry:
        existing = self.get(client_msg_id)
        if existing is not None:
            return existing
        return self._insert(
            TimelineEntry(
                seq=next(self._seq),
                conversation_id=self.conversation_id,
                from_user_id=self.self_user_id,
                content=content,
                created_at=created_at,
                state=EntryState.PENDING,
                client_msg_id=client_msg_id,
            )
        )

    def confirm(self, client_msg_id: UUID | None, message: Message) -> TimelineEntry:
        """Replace the optimistic entry for a write with the stored message.

        Without a usable correlation id the caller's most recent pending entry
        is taken instead. When nothing matches, the message is simply merged.
        """
        seq = None
        for key in (client_msg_id, message.client_msg_id):
            if key is not None and key in self._by_client:
                seq = self._by_client[key]
                break
        if seq is None:
            seq = self._latest_own_pending()
        if seq is None:
            return self._merge_persisted(message)
        return self._settle(seq, message)

    def mark_failed(self, client_msg_id: UUID, reason: str | None = None) -> TimelineEntry | None:
        entry = self.get(client_msg_id)
        if entry is None or entry.state != EntryState.PENDING:
            return entry
        entry.state = EntryState.FAILED
        entry.error = reason
        return entry

    def mark_pending(self, client_msg_id: UUID) -> TimelineEntry | None:
        entry = self.get(client_msg_id)
        if entry is None or entry.state != EntryState.FAILED:
            return entry
        entry.state = EntryState.PENDING
        entry.error = None
        return entry

    def discard(self, client_msg_id: UUID) -> bool:
        """Drop an unsent entry. Stored messages cannot be discarded."""
        entry = self.get(client_msg_id)
        if entry is None or not entry.is_own_unsettled:
            return False
        self._remove(entry.seq)
        return True

    # -- remote sources --

    def apply_snapshot(self, messages: Iterable[Message]) -> None:
        for message in messages:
            if message.conversation_id != self.conversation_id:
                continue
            self._merge_persisted(message)

    def apply_push(self, pushed: PushedMessage) -> bool:
        """Merge a live message. Returns True when a new entry was appended."""
        if pushed.conversation_id != self.conversation_id:
            return False

        seq = self._by_id.get(pushed.id) if pushed.id is not None else None
        if seq is None and pushed.client_msg_id is not None:
            candidate = self._by_client.get(pushed.client_msg_id)
            if candidate is not None and self._entries[candidate].from_user_id == pushed.from_user_id:
                seq = candidate
        if seq is not None:
            entry = self._entries[seq]
            if pushed.id is not None and entry.message_id is None:
                entry.message_id = pushed.id
                self._by_id[pushed.id] = seq
            return False

        content = pushed.content.to_content()
        if (
            pushed.client_msg_id is None
            and pushed.from_user_id == self.self_user_id
            and self._is_recent_own(content, pushed.created_at)
        ):
            logger.debug("Dropping echo of own message in %s", self.conversation_id)
            return False

        self._insert(
            TimelineEntry(
                seq=next(self._seq),
                conversation_id=self.conversation_id,
                from_user_id=pushed.from_user_id,
                content=content,
                created_at=pushed.created_at,
                state=EntryState.LIVE,
                message_id=pushed.id,
                client_msg_id=pushed.client_msg_id,
            )
        )
        return True

    # -- internals --

    def _insert(self, entry: TimelineEntry) -> TimelineEntry:
        self._entries[entry.seq] = entry
        self._index(entry)
        return entry

    def _index(self, entry: TimelineEntry) -> None:
        if entry.message_id is not None:
            self._by_id[entry.message_id] = entry.seq
        if entry.client_msg_id is not None:
            self._by_client[entry.client_msg_id] = entry.seq

    def _unindex(self, entry: TimelineEntry) -> None:
        if entry.message_id is not None and self._by_id.get(entry.message_id) == entry.seq:
            del self._by_id[entry.message_id]
        if entry.client_msg_id is not None and self._by_client.get(entry.client_msg_id) == entry.seq:
            del self._by_client[entry.client_msg_id]

    def _remove(self, seq: int) -> None:
        entry = self._entries.pop(seq)
        self._unindex(entry)

    def _merge_persisted(self, message: Message) -> TimelineEntry:
        seq = self._by_id.get(message.id)
        if seq is None:
            candidate = self._by_client.get(message.client_msg_id)
            if candidate is not None and self._entries[candidate].from_user_id == message.from_user_id:
                seq = candidate
        if seq is None:
            return self._insert(
                TimelineEntry(
                    seq=next(self._seq),
                    conversation_id=self.conversation_id,
                    from_user_id=message.from_user_id,
                    content=message.content,
                    created_at=message.created_at,
                    state=EntryState.CONFIRMED,
                    message_id=message.id,
                    client_msg_id=message.client_msg_id,
                    message=message,
                )
            )
        return self._settle(seq, message)

    def _settle(self, seq: int, message: Message) -> TimelineEntry:
        # the same stored message may already sit in another entry
        other = self._by_id.get(message.id)
        if other is not None and other != seq:
            keep, drop = min(seq, other), max(seq, other)
            self._remove(drop)
            seq = keep

        entry = self._entries[seq]
        self._unindex(entry)
        entry.message_id = message.id
        entry.client_msg_id = message.client_msg_id
        entry.from_user_id = message.from_user_id
        entry.content = message.content
        entry.created_at = message.created_at
        entry.state = EntryState.CONFIRMED
        entry.message = message
        entry.error = None
        self._index(entry)
        return entry

    def _latest_own_pending(self) -> int | None:
        pending = [
            e.seq for e in self._entries.values()
            if e.state == EntryState.PENDING and e.from_user_id == self.self_user_id
        ]
        return max(pending) if pending else None

    def _is_recent_own(self, content: MessageContent, at: datetime) -> bool:
        return any(
            e.from_user_id == self.self_user_id
            and e.state != EntryState.LIVE
            and e.content == content
            and abs(e.created_at - at) <= SELF_ECHO_WINDOW
            for e in self._entries.values()
        )
