"""Message content: an explicit tagged union instead of a bag of optional fields.

Rows and wire payloads still carry the flat ``body`` / ``media_url`` /
``media_type`` shape; :func:`content_from_fields` and :func:`content_fields`
convert between the two.
"""
from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from typing import Any, ClassVar, TypeAlias

from dm_service.application.exceptions import ValidationError
from dm_service.domain.value_objects.enums import ContentKind, MediaType


@dataclass(frozen=True, slots=True)
class TextContent:
    body: str

    kind: ClassVar[ContentKind] = ContentKind.TEXT


@dataclass(frozen=True, slots=True)
class ImageContent:
    url: str
    caption: str | None = None

    kind: ClassVar[ContentKind] = ContentKind.IMAGE


@dataclass(frozen=True, slots=True)
class FileContent:
    url: str
    media_type: MediaType = MediaType.FILE
    caption: str | None = None
    file_name: str | None = None

    kind: ClassVar[ContentKind] = ContentKind.FILE


@dataclass(frozen=True, slots=True)
class LocationContent:
    latitude: float
    longitude: float
    label: str | None = None

    kind: ClassVar[ContentKind] = ContentKind.LOCATION

    @property
    def display_text(self) -> str:
        return self.label or f"{self.latitude:.6f},{self.longitude:.6f}"


MessageContent: TypeAlias = TextContent | ImageContent | FileContent | LocationContent


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _guess_media_type(url: str) -> MediaType:
    mime, _ = mimetypes.guess_type(url.split("?", 1)[0])
    if mime:
        if mime.startswith("image/"):
            return MediaType.IMAGE
        if mime.startswith("video/"):
            return MediaType.VIDEO
    return MediaType.FILE


def content_from_fields(
    *,
    body: str | None = None,
    media_url: str | None = None,
    media_type: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    file_name: str | None = None,
) -> MessageContent:
    """Build content from the flat request shape.

    Raises ValidationError when nothing would be sent or a field is malformed.
    """
    body = _clean(body)
    media_url = _clean(media_url)

    if media_url:
        if media_type:
            try:
                resolved = MediaType(media_type)
            except ValueError:
                raise ValidationError(f"Unknown media type: {media_type}") from None
        else:
            resolved = _guess_media_type(media_url)
        if resolved == MediaType.IMAGE:
            return ImageContent(url=media_url, caption=body)
        return FileContent(
            url=media_url,
            media_type=resolved,
            caption=body,
            file_name=_clean(file_name),
        )

    if latitude is not None or longitude is not None:
        if latitude is None or longitude is None:
            raise ValidationError("Location requires both latitude and longitude")
        if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
            raise ValidationError("Location coordinates are out of range")
        return LocationContent(latitude=latitude, longitude=longitude, label=body)

    if body:
        return TextContent(body=body)

    raise ValidationError("Message must have a body or an attachment")


def content_fields(content: MessageContent) -> dict[str, Any]:
    """Flatten content into the request shape accepted by :func:`content_from_fields`."""
    if isinstance(content, TextContent):
        return {"body": content.body}
    if isinstance(content, ImageContent):
        return {
            "body": content.caption,
            "media_url": content.url,
            "media_type": MediaType.IMAGE.value,
        }
    if isinstance(content, FileContent):
        return {
            "body": content.caption,
            "media_url": content.url,
            "media_type": content.media_type.value,
            "file_name": content.file_name,
        }
    return {
        "body": content.label,
        "latitude": content.latitude,
        "longitude": content.longitude,
    }
