"""Realtime channel wire format: envelopes, event names and message payloads.

Every frame is ``{"type": <event>, "data": {...}}``. The REST schemas reuse
the content models defined here so both paths serialise messages the same way.
"""
from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field

from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.content import (
    FileContent,
    ImageContent,
    LocationContent,
    MessageContent,
    TextContent,
)
from dm_service.domain.value_objects.enums import MediaType


class WsEvent(StrEnum):
    # client → hub
    JOIN_CONVERSATION = "join_conversation"
    LEAVE_CONVERSATION = "leave_conversation"
    SEND_MESSAGE = "send_message"
    PING = "ping"
    # hub → client
    NEW_MESSAGE = "new_message"
    SEND_ACK = "send_ack"
    ERROR = "error"
    PONG = "pong"


class WsInbound(BaseModel):
    """Client → Server."""

    type: str
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str
    data: dict[str, Any] = {}


class TextContentModel(BaseModel):
    kind: Literal["text"] = "text"
    body: str

    def to_content(self) -> TextContent:
        return TextContent(body=self.body)


class ImageContentModel(BaseModel):
    kind: Literal["image"] = "image"
    url: str
    caption: str | None = None

    def to_content(self) -> ImageContent:
        return ImageContent(url=self.url, caption=self.caption)


class FileContentModel(BaseModel):
    kind: Literal["file"] = "file"
    url: str
    media_type: MediaType = MediaType.FILE
    caption: str | None = None
    file_name: str | None = None

    def to_content(self) -> FileContent:
        return FileContent(
            url=self.url,
            media_type=self.media_type,
            caption=self.caption,
            file_name=self.file_name,
        )


class LocationContentModel(BaseModel):
    kind: Literal["location"] = "location"
    latitude: float
    longitude: float
    label: str | None = None

    def to_content(self) -> LocationContent:
        return LocationContent(
            latitude=self.latitude,
            longitude=self.longitude,
            label=self.label,
        )


ContentModel = Annotated[
    Union[TextContentModel, ImageContentModel, FileContentModel, LocationContentModel],
    Field(discriminator="kind"),
]


def content_to_model(content: MessageContent) -> ContentModel:
    if isinstance(content, TextContent):
        return TextContentModel(body=content.body)
    if isinstance(content, ImageContent):
        return ImageContentModel(url=content.url, caption=content.caption)
    if isinstance(content, FileContent):
        return FileContentModel(
            url=content.url,
            media_type=content.media_type,
            caption=content.caption,
            file_name=content.file_name,
        )
    return LocationContentModel(
        latitude=content.latitude,
        longitude=content.longitude,
        label=content.label,
    )


class ConversationRef(BaseModel):
    """Payload of join_conversation / leave_conversation."""

    conversation_id: UUID


class SendMessageData(BaseModel):
    """Payload of send_message: the flat content shape plus correlation ids."""

    conversation_id: UUID
    client_msg_id: UUID | None = None
    id: UUID | None = None
    body: str | None = None
    media_url: str | None = None
    media_type: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    file_name: str | None = None


class PushedMessage(BaseModel):
    """Message as carried by new_message.

    ``id`` is only known when the sender pushes after its write was confirmed;
    ``client_msg_id`` is the sender's correlation key.
    """

    id: UUID | None = None
    client_msg_id: UUID | None = None
    conversation_id: UUID
    from_user_id: str
    content: ContentModel
    created_at: datetime

    @classmethod
    def from_entity(cls, message: Message) -> PushedMessage:
        return cls(
            id=message.id,
            client_msg_id=message.client_msg_id,
            conversation_id=message.conversation_id,
            from_user_id=message.from_user_id,
            content=content_to_model(message.content),
            created_at=message.created_at,
        )


class NewMessageData(BaseModel):
    conversation_id: UUID
    message: PushedMessage


def outbound(event: WsEvent, data: dict[str, Any] | None = None) -> str:
    return WsOutbound(type=event, data=data or {}).model_dump_json()


def error_frame(code: str, **detail: Any) -> str:
    return outbound(WsEvent.ERROR, {"code": code, **detail})
