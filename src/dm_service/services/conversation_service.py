from __future__ import annotations

import logging
import uuid

from dm_service.application.dto.principal import Principal
from dm_service.application.exceptions import ValidationError
from dm_service.application.policies.permissions import assert_conversation_access
from dm_service.application.ports.clock import Clock, system_clock
from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.conversation import Conversation

logger = logging.getLogger(__name__)


def normalize_pair(user_a_id: str, user_b_id: str) -> tuple[str, str]:
    if user_a_id == user_b_id:
        raise ValidationError("A conversation needs two different users")
    return (user_a_id, user_b_id) if user_a_id < user_b_id else (user_b_id, user_a_id)


async def get_or_create_conversation(
    user_a_id: str,
    user_b_id: str,
    uow: UnitOfWork,
    *,
    clock: Clock = system_clock,
) -> tuple[Conversation, bool]:
    """Return the conversation for the unordered pair, creating it on first use.

    Returns (conversation, created). Concurrent callers for the same pair
    converge on one row through the unique constraint on the normalised pair.
    """
    first, second = normalize_pair(user_a_id, user_b_id)

    existing = await uow.conversations.get_by_pair(first, second)
    if existing is not None:
        return existing, False

    conversation = Conversation(
        id=uuid.uuid4(),
        user_a_id=first,
        user_b_id=second,
        last_message_at=None,
        created_at=clock.now(),
    )
    conversation, created = await uow.conversations_w.create_if_not_exists(conversation)
    if created:
        await uow.commit()
        logger.info("Created conversation %s for %s/%s", conversation.id, first, second)
    return conversation, created


async def get_conversation(
    conversation_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    conversation = await uow.conversations.get_by_id(conversation_id)
    return assert_conversation_access(principal, conversation)


async def list_conversations_for_user(
    principal: Principal,
    limit: int,
    uow: UnitOfWork,
) -> list[Conversation]:
    return await uow.conversations.list_for_user(principal.user_id, limit=limit)
