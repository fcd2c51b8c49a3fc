"""WebSocket hub tests: two real sockets against the app with the in-process fan-out."""
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import jwt
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from dm_service.api.deps import get_uow, get_uow_factory
from dm_service.api.v1.routers.ws import get_manager
from dm_service.app import create_app
from dm_service.config import settings
from tests.conftest import ALICE, BOB, MALLORY, FakeUoW, make_conversation


def _token(sub: str) -> str:
    return jwt.encode({"sub": sub}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _frame(event: str, **data) -> dict:
    return {"type": event, "data": data}


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


@pytest.fixture
def client(uow):
    app = create_app()

    async def _override():
        yield uow

    @asynccontextmanager
    async def _factory():
        yield uow

    app.dependency_overrides[get_uow] = _override
    app.dependency_overrides[get_uow_factory] = lambda: _factory

    with TestClient(app) as client:
        yield client


@pytest.fixture
def conv(uow):
    return uow.conversations.add(make_conversation())


def _connect(client, user_id):
    return client.websocket_connect(f"/ws?token={_token(user_id)}")


def _roundtrip(ws) -> None:
    """Frames are handled in order, so a pong means everything before it was processed."""
    ws.send_json(_frame("ping"))
    assert ws.receive_json()["type"] == "pong"


def _join(ws, conversation_id) -> None:
    ws.send_json(_frame("join_conversation", conversation_id=str(conversation_id)))
    _roundtrip(ws)


def test_bad_token_is_refused(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws?token=garbage"):
            pass
    assert exc_info.value.code == 4001


def test_message_reaches_joined_peer_not_sender(client, uow, conv):
    client_msg_id = str(uuid.uuid4())
    with _connect(client, ALICE) as alice_ws, _connect(client, BOB) as bob_ws:
        _join(bob_ws, conv.id)
        _join(alice_ws, conv.id)

        resp = client.post(
            f"/api/v1/messages/{conv.id}",
            headers={"Authorization": f"Bearer {_token(ALICE)}"},
            json={"client_msg_id": client_msg_id, "body": "hi"},
        )
        assert resp.status_code == 201
        stored = resp.json()

        alice_ws.send_json(
            _frame(
                "send_message",
                conversation_id=str(conv.id),
                client_msg_id=client_msg_id,
                id=stored["id"],
                body="hi",
            )
        )
        ack = alice_ws.receive_json()
        assert ack == _frame("send_ack", conversation_id=str(conv.id), client_msg_id=client_msg_id)

        pushed = bob_ws.receive_json()
        assert pushed["type"] == "new_message"
        message = pushed["data"]["message"]
        assert message["id"] == stored["id"]
        assert message["client_msg_id"] == client_msg_id
        assert message["from_user_id"] == ALICE
        assert message["content"] == {"kind": "text", "body": "hi"}

        # nothing queued for the sender besides the ack
        _roundtrip(alice_ws)

    assert len(uow.messages._messages) == 1
    assert uow.conversations._store[conv.id].last_message_at is not None


def test_sender_identity_comes_from_token(client, conv):
    with _connect(client, ALICE) as alice_ws, _connect(client, BOB) as bob_ws:
        _join(bob_ws, conv.id)
        _join(alice_ws, conv.id)

        alice_ws.send_json(
            _frame("send_message", conversation_id=str(conv.id), body="hi", from_user_id=BOB)
        )
        alice_ws.receive_json()

        assert bob_ws.receive_json()["data"]["message"]["from_user_id"] == ALICE


def test_join_rejected_for_outsider(client, conv):
    with _connect(client, MALLORY) as ws:
        ws.send_json(_frame("join_conversation", conversation_id=str(conv.id)))
        frame = ws.receive_json()

    assert frame["type"] == "error"
    assert frame["data"]["code"] == "join_rejected"
    assert frame["data"]["conversation_id"] == str(conv.id)


def test_join_rejected_for_unknown_conversation(client):
    with _connect(client, ALICE) as ws:
        ws.send_json(_frame("join_conversation", conversation_id=str(uuid.uuid4())))
        assert ws.receive_json()["data"]["code"] == "join_rejected"


def test_send_without_join_is_refused(client, conv):
    with _connect(client, ALICE) as ws:
        ws.send_json(_frame("send_message", conversation_id=str(conv.id), body="hi"))
        frame = ws.receive_json()

    assert frame["type"] == "error"
    assert frame["data"]["code"] == "not_joined"


def test_empty_send_is_refused(client, conv):
    with _connect(client, ALICE) as ws:
        _join(ws, conv.id)
        ws.send_json(_frame("send_message", conversation_id=str(conv.id), body=" "))
        frame = ws.receive_json()

    assert frame["data"]["code"] == "invalid_data"


def test_invalid_json_reports_error_and_keeps_connection(client):
    with _connect(client, ALICE) as ws:
        ws.send_text("{not json")
        assert ws.receive_json()["data"]["code"] == "invalid_payload"
        _roundtrip(ws)


def test_unknown_frame_types_are_ignored(client):
    with _connect(client, ALICE) as ws:
        ws.send_json(_frame("typing", conversation_id=str(uuid.uuid4())))
        _roundtrip(ws)


def test_leave_drops_interest(client, conv):
    with _connect(client, BOB) as ws:
        _join(ws, conv.id)
        assert len(get_manager().interested(conv.id)) == 1

        ws.send_json(_frame("leave_conversation", conversation_id=str(conv.id)))
        _roundtrip(ws)

        assert get_manager().interested(conv.id) == set()


def test_disconnect_drops_interest(client, conv):
    with _connect(client, BOB) as ws:
        _join(ws, conv.id)

    assert get_manager().interested(conv.id) == set()
