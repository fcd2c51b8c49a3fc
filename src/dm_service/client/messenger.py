"""Client facade: opening conversations, sending, retrying.

Every send goes down two independent paths at once. The REST write is the
source of truth and decides whether the optimistic entry is confirmed or
failed; the realtime push only shortens the time until the other side sees
the message and may be lost without consequence.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable
from uuid import UUID

from dm_service.application.exceptions import (
    AppError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from dm_service.application.ports.clock import Clock, system_clock
from dm_service.client.api import ChatApiClient
from dm_service.client.cache import TimelineCache
from dm_service.client.delivery import DeliverySession, reconnect_delay
from dm_service.client.session import Session
from dm_service.client.settings import ClientSettings
from dm_service.client.timeline import EntryState, LoadState, Timeline, TimelineEntry
from dm_service.client.transport import RealtimeTransport
from dm_service.domain.entities.conversation import Conversation
from dm_service.domain.value_objects.content import content_from_fields
from dm_service.infrastructure.ws.protocol import PushedMessage

logger = logging.getLogger(__name__)


class Messenger:
    def __init__(
        self,
        session: Session,
        api: ChatApiClient,
        transport: RealtimeTransport,
        *,
        settings: ClientSettings | None = None,
        cache: TimelineCache | None = None,
        clock: Clock = system_clock,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.session = session
        self.settings = settings or ClientSettings()
        self._api = api
        self._cache = cache
        self._clock = clock
        self._sleep = sleep
        self._timelines: dict[UUID, Timeline] = {}
        self.delivery = DeliverySession(
            session,
            transport,
            on_push=self._on_push,
            on_gap=self.refresh,
            settings=self.settings,
        )

    def timeline(self, conversation_id: UUID) -> Timeline:
        timeline = self._timelines.get(conversation_id)
        if timeline is None:
            timeline = Timeline(conversation_id, self.session.user_id)
            self._timelines[conversation_id] = timeline
        return timeline

    async def list_conversations(self, limit: int | None = None) -> list[Conversation]:
        return await self._api.list_conversations(limit)

    async def open_conversation(self, conversation_id: UUID) -> Timeline:
        """Start listening for live messages, then load the persisted snapshot.

        Joining first means a message stored while the snapshot is read shows up
        in the snapshot, as a push, or both; never in neither.

        Raises the last fetch error once the configured attempts are spent;
        the timeline is left in the ``error`` load state in that case.
        """
        timeline = self.timeline(conversation_id)
        if self._cache is not None and timeline.load_state == LoadState.EMPTY:
            timeline.apply_snapshot(self._cache.load(conversation_id))

        await self.delivery.open_conversation(conversation_id)
        await self._load_snapshot(timeline)
        return timeline

    async def refresh(self, conversation_id: UUID) -> None:
        timeline = self._timelines.get(conversation_id)
        if timeline is None:
            return
        try:
            await self._load_snapshot(timeline)
        except AppError as exc:
            logger.warning("Refresh of %s failed: %s", conversation_id, exc.detail)

    async def send(
        self,
        conversation_id: UUID,
        *,
        body: str | None = None,
        media_url: str | None = None,
        media_type: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        file_name: str | None = None,
    ) -> TimelineEntry:
        content = content_from_fields(
            body=body,
            media_url=media_url,
            media_type=media_type,
            latitude=latitude,
            longitude=longitude,
            file_name=file_name,
        )
        timeline = self.timeline(conversation_id)
        entry = timeline.add_optimistic(uuid.uuid4(), content, self._clock.now())
        await self._deliver(timeline, entry)
        return entry

    async def retry(self, conversation_id: UUID, client_msg_id: UUID) -> TimelineEntry:
        timeline = self._timelines.get(conversation_id)
        entry = timeline.get(client_msg_id) if timeline is not None else None
        if entry is None:
            raise NotFoundError("Message not found")
        if entry.state != EntryState.FAILED:
            raise ValidationError("Only failed messages can be retried")
        timeline.mark_pending(client_msg_id)
        await self._deliver(timeline, entry)
        return entry

    def discard(self, conversation_id: UUID, client_msg_id: UUID) -> bool:
        timeline = self._timelines.get(conversation_id)
        return timeline is not None and timeline.discard(client_msg_id)

    async def close(self) -> None:
        await self.delivery.close()

    async def _deliver(self, timeline: Timeline, entry: TimelineEntry) -> None:
        conversation_id = timeline.conversation_id
        client_msg_id = entry.client_msg_id
        persisted, pushed = await asyncio.gather(
            self._api.send_message(conversation_id, entry.content, client_msg_id),
            self.delivery.send_message(conversation_id, client_msg_id, entry.content),
            return_exceptions=True,
        )
        if isinstance(pushed, Exception):
            logger.warning("Realtime push for %s failed: %s", client_msg_id, pushed)

        if isinstance(persisted, BaseException):
            reason = persisted.detail if isinstance(persisted, AppError) else str(persisted)
            timeline.mark_failed(client_msg_id, reason)
            logger.info("Send %s failed: %s", client_msg_id, reason)
            raise persisted

        timeline.confirm(client_msg_id, persisted)
        self._save(timeline)

    async def _load_snapshot(self, timeline: Timeline) -> None:
        conversation_id = timeline.conversation_id
        attempts = max(1, self.settings.FETCH_ATTEMPTS)
        timeline.load_state = LoadState.LOADING
        for attempt in range(1, attempts + 1):
            try:
                messages = await self._api.list_messages(
                    conversation_id, limit=self.settings.FETCH_LIMIT,
                )
            except StoreUnavailableError as exc:
                logger.warning(
                    "Fetching %s failed (attempt %d/%d): %s",
                    conversation_id, attempt, attempts, exc.detail,
                )
                if attempt < attempts:
                    await self._sleep(reconnect_delay(
                        attempt - 1,
                        self.settings.FETCH_RETRY_DELAY,
                        self.settings.FETCH_RETRY_MAX_DELAY,
                    ))
                    continue
                timeline.load_state = LoadState.ERROR
                timeline.load_error = exc.detail
                raise
            except AppError as exc:
                timeline.load_state = LoadState.ERROR
                timeline.load_error = exc.detail
                raise
            timeline.apply_snapshot(messages)
            timeline.load_state = LoadState.READY
            timeline.load_error = None
            self._save(timeline)
            return

    def _save(self, timeline: Timeline) -> None:
        if self._cache is None:
            return
        try:
            self._cache.save(timeline.conversation_id, timeline.confirmed_messages())
        except OSError:
            logger.warning("Could not write cache for %s", timeline.conversation_id, exc_info=True)

    def _on_push(self, pushed: PushedMessage) -> None:
        timeline = self._timelines.get(pushed.conversation_id)
        if timeline is None:
            return
        timeline.apply_push(pushed)
