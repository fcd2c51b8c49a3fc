from __future__ import annotations

import pytest

from dm_service.application.exceptions import ValidationError
from dm_service.domain.value_objects.content import (
    FileContent,
    ImageContent,
    LocationContent,
    TextContent,
    content_fields,
    content_from_fields,
)
from dm_service.domain.value_objects.enums import MediaType


def test_text_is_stripped():
    assert content_from_fields(body="  hi  ") == TextContent(body="hi")


def test_media_type_guessed_from_url():
    assert content_from_fields(media_url="https://x/a.jpg?size=2") == ImageContent(url="https://x/a.jpg?size=2")
    video = content_from_fields(media_url="https://x/clip.mp4")
    assert isinstance(video, FileContent)
    assert video.media_type == MediaType.VIDEO
    other = content_from_fields(media_url="https://x/report", file_name="report.pdf")
    assert other == FileContent(url="https://x/report", media_type=MediaType.FILE, file_name="report.pdf")


def test_explicit_media_type_wins():
    content = content_from_fields(media_url="https://x/a.bin", media_type="image")
    assert content == ImageContent(url="https://x/a.bin")


def test_unknown_media_type_rejected():
    with pytest.raises(ValidationError):
        content_from_fields(media_url="https://x/a", media_type="hologram")


@pytest.mark.parametrize(
    "latitude, longitude",
    [(10.0, None), (None, 10.0), (91.0, 0.0), (0.0, -181.0)],
)
def test_bad_location_rejected(latitude, longitude):
    with pytest.raises(ValidationError):
        content_from_fields(latitude=latitude, longitude=longitude)


def test_location_label_comes_from_body():
    content = content_from_fields(body="Cafe", latitude=1.5, longitude=2.5)
    assert content == LocationContent(latitude=1.5, longitude=2.5, label="Cafe")
    assert content.display_text == "Cafe"


def test_empty_message_rejected():
    with pytest.raises(ValidationError, match="body or an attachment"):
        content_from_fields(body=" ", media_url="  ")


@pytest.mark.parametrize(
    "content",
    [
        TextContent(body="hi"),
        ImageContent(url="https://x/a.png", caption="cap"),
        FileContent(url="https://x/f", media_type=MediaType.VIDEO, file_name="f.mov"),
        LocationContent(latitude=-33.9, longitude=151.2, label="Sydney"),
    ],
)
def test_content_fields_are_accepted_back(content):
    assert content_from_fields(**content_fields(content)) == content
