from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query

from dm_service.api.deps import CurrentPrincipal, UoWDep
from dm_service.api.v1.schemas.conversation import ConversationResponse
from dm_service.config import settings
from dm_service.services import conversation_service

router = APIRouter(prefix="/api/v1/conversations", tags=["conversations"])


@router.get("", response_model=list[ConversationResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    uow: UoWDep,
    limit: int = Query(settings.CONVERSATIONS_PAGE_SIZE, ge=1, le=settings.CONVERSATIONS_MAX_PAGE_SIZE),
) -> list[ConversationResponse]:
    convs = await conversation_service.list_conversations_for_user(principal, limit, uow)
    return [ConversationResponse.model_validate(c, from_attributes=True) for c in convs]


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await conversation_service.get_conversation(conversation_id, principal, uow)
    return ConversationResponse.model_validate(conv, from_attributes=True)
