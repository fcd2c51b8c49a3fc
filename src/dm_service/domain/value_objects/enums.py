from __future__ import annotations

from enum import StrEnum


class ContentKind(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    LOCATION = "location"


class MediaType(StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"
