from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query

from dm_service.api.deps import CurrentPrincipal, UoWDep
from dm_service.api.v1.schemas.message import MessageResponse, SendMessageRequest
from dm_service.config import settings
from dm_service.services import message_service

router = APIRouter(prefix="/api/v1/messages", tags=["messages"])


@router.get("/{conversation_id}", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    limit: int = Query(settings.MESSAGES_PAGE_SIZE, ge=1, le=settings.MESSAGES_MAX_PAGE_SIZE),
) -> list[MessageResponse]:
    messages = await message_service.list_messages(conversation_id, principal, limit, uow)
    return [MessageResponse.from_entity(m) for m in messages]


@router.post("/{conversation_id}", response_model=MessageResponse, status_code=201)
async def send_message(
    conversation_id: UUID,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg, _created = await message_service.append_message(
        conversation_id,
        principal.user_id,
        uow,
        body=body.body,
        media_url=body.media_url,
        media_type=body.media_type,
        latitude=body.latitude,
        longitude=body.longitude,
        file_name=body.file_name,
        client_msg_id=body.client_msg_id,
    )
    return MessageResponse.from_entity(msg)
