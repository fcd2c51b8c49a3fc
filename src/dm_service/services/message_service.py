from __future__ import annotations

import logging
import uuid

from dm_service.application.dto.principal import Principal
from dm_service.application.exceptions import NotFoundError, ValidationError
from dm_service.application.policies.permissions import assert_conversation_access
from dm_service.application.ports.clock import Clock, system_clock
from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.content import content_from_fields

logger = logging.getLogger(__name__)


async def append_message(
    conversation_id: uuid.UUID,
    from_user_id: str,
    uow: UnitOfWork,
    *,
    body: str | None = None,
    media_url: str | None = None,
    media_type: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    file_name: str | None = None,
    client_msg_id: uuid.UUID | None = None,
    clock: Clock = system_clock,
) -> tuple[Message, bool]:
    """Persist one message idempotently and bump the conversation's activity.

    Returns (message, created). If a message with the same client_msg_id
    already exists for this sender the existing one is returned with
    created=False. Fan-out is the caller's business.
    """
    content = content_from_fields(
        body=body,
        media_url=media_url,
        media_type=media_type,
        latitude=latitude,
        longitude=longitude,
        file_name=file_name,
    )

    conversation = await uow.conversations.get_by_id(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    if not conversation.has_participant(from_user_id):
        raise ValidationError("Sender is not a participant of this conversation")

    msg = Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        from_user_id=from_user_id,
        to_user_id=conversation.other_participant(from_user_id),
        content=content,
        client_msg_id=client_msg_id or uuid.uuid4(),
        created_at=clock.now(),
    )

    msg, created = await uow.messages_w.create_if_not_exists(msg)

    if created:
        await uow.conversations_w.touch_last_message(conversation_id, msg.id, msg.created_at)
        await uow.commit()
        logger.debug("Stored message %s in conversation %s", msg.id, conversation_id)

    return msg, created


async def list_messages(
    conversation_id: uuid.UUID,
    principal: Principal,
    limit: int,
    uow: UnitOfWork,
) -> list[Message]:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal, conversation)
    return await uow.messages.list_messages(conversation_id, limit=limit)
