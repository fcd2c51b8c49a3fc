from __future__ import annotations

import json
import uuid

import httpx
import pytest

from dm_service.api.v1.schemas.message import MessageResponse
from dm_service.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    StoreUnavailableError,
    ValidationError,
)
from dm_service.client.api import ChatApiClient
from dm_service.client.session import Session
from dm_service.domain.value_objects.content import ImageContent, TextContent
from tests.conftest import ALICE, BOB, make_message

SESSION = Session(user_id=ALICE, token="secret-token", base_url="http://dm.test")


def _client(handler) -> ChatApiClient:
    http = httpx.AsyncClient(base_url=SESSION.base_url, transport=httpx.MockTransport(handler))
    return ChatApiClient(SESSION, http=http)


@pytest.mark.asyncio
async def test_list_messages_parses_entities():
    cid = uuid.uuid4()
    stored = make_message(conversation_id=cid, from_user_id=BOB, to_user_id=ALICE, body="hey")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[MessageResponse.from_entity(stored).model_dump(mode="json")])

    client = _client(handler)
    messages = await client.list_messages(cid, limit=10)
    await client.aclose()

    assert messages == [stored]
    assert seen[0].url.path == f"/api/v1/messages/{cid}"
    assert seen[0].url.params["limit"] == "10"
    assert seen[0].headers["Authorization"] == "Bearer secret-token"


@pytest.mark.asyncio
async def test_send_message_posts_flat_content():
    cid, client_id = uuid.uuid4(), uuid.uuid4()
    content = ImageContent(url="https://cdn.test/a.png", caption="look")
    stored = make_message(conversation_id=cid, content=content, client_msg_id=client_id)
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json=MessageResponse.from_entity(stored).model_dump(mode="json"))

    client = _client(handler)
    message = await client.send_message(cid, content, client_id)

    assert message == stored
    assert bodies == [{
        "client_msg_id": str(client_id),
        "body": "look",
        "media_url": "https://cdn.test/a.png",
        "media_type": "image",
    }]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error",
    [
        (400, ValidationError),
        (422, ValidationError),
        (401, ForbiddenError),
        (403, ForbiddenError),
        (404, NotFoundError),
        (503, PersistenceError),
    ],
)
async def test_send_errors_are_mapped(status, error):
    client = _client(lambda request: httpx.Response(status, json={"detail": "nope"}))

    with pytest.raises(error) as exc_info:
        await client.send_message(uuid.uuid4(), TextContent(body="x"), uuid.uuid4())

    if error is not PersistenceError:
        assert exc_info.value.detail == "nope"


@pytest.mark.asyncio
async def test_read_server_error_is_store_unavailable():
    client = _client(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(StoreUnavailableError) as exc_info:
        await client.list_conversations()

    assert not isinstance(exc_info.value, PersistenceError)


@pytest.mark.asyncio
async def test_network_failure_on_write_is_persistence_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler)

    with pytest.raises(PersistenceError):
        await client.send_message(uuid.uuid4(), TextContent(body="x"), uuid.uuid4())


@pytest.mark.asyncio
async def test_timeout_on_read_is_store_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = _client(handler)

    with pytest.raises(StoreUnavailableError, match="timed out"):
        await client.list_messages(uuid.uuid4())
