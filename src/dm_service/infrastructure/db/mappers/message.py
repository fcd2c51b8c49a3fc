from __future__ import annotations

from typing import Any

from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.content import (
    FileContent,
    ImageContent,
    LocationContent,
    MessageContent,
    TextContent,
)
from dm_service.domain.value_objects.enums import ContentKind, MediaType
from dm_service.infrastructure.db.models.message import MessageModel


def content_to_columns(content: MessageContent) -> dict[str, Any]:
    columns: dict[str, Any] = {
        "kind": content.kind.value,
        "body": None,
        "media_url": None,
        "media_type": None,
        "payload": None,
    }
    if isinstance(content, TextContent):
        columns["body"] = content.body
    elif isinstance(content, ImageContent):
        columns["body"] = content.caption
        columns["media_url"] = content.url
        columns["media_type"] = MediaType.IMAGE.value
    elif isinstance(content, FileContent):
        columns["body"] = content.caption
        columns["media_url"] = content.url
        columns["media_type"] = content.media_type.value
        if content.file_name:
            columns["payload"] = {"file_name": content.file_name}
    else:
        # label (or coordinates) kept in body so rows always carry text or media
        columns["body"] = content.display_text
        columns["payload"] = {
            "latitude": content.latitude,
            "longitude": content.longitude,
            "label": content.label,
        }
    return columns


def columns_to_content(model: MessageModel) -> MessageContent:
    payload = model.payload or {}
    kind = ContentKind(model.kind)
    if kind == ContentKind.IMAGE:
        return ImageContent(url=model.media_url or "", caption=model.body)
    if kind == ContentKind.FILE:
        return FileContent(
            url=model.media_url or "",
            media_type=MediaType(model.media_type or MediaType.FILE),
            caption=model.body,
            file_name=payload.get("file_name"),
        )
    if kind == ContentKind.LOCATION:
        return LocationContent(
            latitude=float(payload["latitude"]),
            longitude=float(payload["longitude"]),
            label=payload.get("label"),
        )
    return TextContent(body=model.body or "")


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        from_user_id=model.from_user_id,
        to_user_id=model.to_user_id,
        content=columns_to_content(model),
        client_msg_id=model.client_msg_id,
        created_at=model.created_at,
        seq=model.seq,
    )


def entity_to_values(entity: Message) -> dict[str, Any]:
    return {
        "id": entity.id,
        "conversation_id": entity.conversation_id,
        "from_user_id": entity.from_user_id,
        "to_user_id": entity.to_user_id,
        "client_msg_id": entity.client_msg_id,
        "created_at": entity.created_at,
        **content_to_columns(entity.content),
    }
