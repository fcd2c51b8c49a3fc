from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from dm_service.application.exceptions import ForbiddenError, NotFoundError, ValidationError
from dm_service.domain.value_objects.content import ImageContent, LocationContent, TextContent
from dm_service.services import message_service
from tests.conftest import ALICE, BOB, MALLORY, T0, FakeUoW, FixedClock, make_conversation, make_message


@pytest.fixture
def uow_with_conversation():
    uow = FakeUoW()
    conv = uow.conversations.add(make_conversation())
    return uow, conv


@pytest.mark.asyncio
async def test_append_message_creates_message(uow_with_conversation):
    uow, conv = uow_with_conversation
    client_msg_id = uuid.uuid4()

    msg, created = await message_service.append_message(
        conv.id, ALICE, uow, body="hello", client_msg_id=client_msg_id, clock=FixedClock(),
    )

    assert created is True
    assert msg.content == TextContent(body="hello")
    assert msg.from_user_id == ALICE
    assert msg.to_user_id == BOB
    assert msg.client_msg_id == client_msg_id
    assert msg.created_at == T0
    assert uow._committed is True


@pytest.mark.asyncio
async def test_append_message_bumps_last_message_at(uow_with_conversation):
    uow, conv = uow_with_conversation

    msg, _ = await message_service.append_message(conv.id, BOB, uow, body="hi", clock=FixedClock())

    stored = await uow.conversations.get_by_id(conv.id)
    assert stored.last_message_at == msg.created_at
    assert stored.last_message_id == msg.id


@pytest.mark.asyncio
async def test_last_message_at_never_moves_backwards(uow_with_conversation):
    uow, conv = uow_with_conversation
    late = FixedClock(start=T0 + timedelta(hours=1))
    early = FixedClock(start=T0)

    later, _ = await message_service.append_message(conv.id, ALICE, uow, body="later", clock=late)
    await message_service.append_message(conv.id, BOB, uow, body="earlier", clock=early)

    stored = await uow.conversations.get_by_id(conv.id)
    assert stored.last_message_at == T0 + timedelta(hours=1)
    assert stored.last_message_id == later.id


@pytest.mark.asyncio
async def test_append_message_idempotent(uow_with_conversation):
    uow, conv = uow_with_conversation
    client_msg_id = uuid.uuid4()

    msg1, created1 = await message_service.append_message(
        conv.id, ALICE, uow, body="hello", client_msg_id=client_msg_id,
    )
    uow._committed = False
    msg2, created2 = await message_service.append_message(
        conv.id, ALICE, uow, body="hello", client_msg_id=client_msg_id,
    )

    assert created1 is True
    assert created2 is False
    assert msg1.id == msg2.id
    assert uow._committed is False
    assert len(uow.messages._messages) == 1


@pytest.mark.asyncio
async def test_same_client_msg_id_from_other_sender_is_a_new_message(uow_with_conversation):
    uow, conv = uow_with_conversation
    client_msg_id = uuid.uuid4()

    await message_service.append_message(conv.id, ALICE, uow, body="a", client_msg_id=client_msg_id)
    _, created = await message_service.append_message(
        conv.id, BOB, uow, body="b", client_msg_id=client_msg_id,
    )

    assert created is True
    assert len(uow.messages._messages) == 2


@pytest.mark.asyncio
async def test_append_message_with_media_and_caption(uow_with_conversation):
    uow, conv = uow_with_conversation

    msg, _ = await message_service.append_message(
        conv.id, ALICE, uow, body="look", media_url="https://cdn.example/cat.png",
    )

    assert msg.content == ImageContent(url="https://cdn.example/cat.png", caption="look")


@pytest.mark.asyncio
async def test_append_message_with_location(uow_with_conversation):
    uow, conv = uow_with_conversation

    msg, _ = await message_service.append_message(
        conv.id, ALICE, uow, latitude=52.52, longitude=13.405,
    )

    assert isinstance(msg.content, LocationContent)
    assert msg.content.display_text == "52.520000,13.405000"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [None, "", "   "])
async def test_empty_message_is_rejected_and_nothing_stored(uow_with_conversation, body):
    uow, conv = uow_with_conversation

    with pytest.raises(ValidationError):
        await message_service.append_message(conv.id, ALICE, uow, body=body)

    assert uow.messages._messages == []
    assert uow._committed is False


@pytest.mark.asyncio
async def test_append_message_unknown_conversation():
    with pytest.raises(NotFoundError):
        await message_service.append_message(uuid.uuid4(), ALICE, FakeUoW(), body="hi")


@pytest.mark.asyncio
async def test_append_message_from_outsider_is_rejected(uow_with_conversation):
    uow, conv = uow_with_conversation

    with pytest.raises(ValidationError):
        await message_service.append_message(conv.id, MALLORY, uow, body="hi")

    assert uow.messages._messages == []


@pytest.mark.asyncio
async def test_list_messages_oldest_first_and_limited(alice, uow_with_conversation):
    uow, conv = uow_with_conversation
    for minute in (3, 1, 2):
        uow.messages._messages.append(
            make_message(
                conversation_id=conv.id,
                body=f"m{minute}",
                created_at=T0 + timedelta(minutes=minute),
            )
        )

    msgs = await message_service.list_messages(conv.id, alice, 2, uow)

    assert [m.content.body for m in msgs] == ["m2", "m3"]


@pytest.mark.asyncio
async def test_list_messages_forbidden_for_outsider(mallory, uow_with_conversation):
    uow, conv = uow_with_conversation

    with pytest.raises(ForbiddenError):
        await message_service.list_messages(conv.id, mallory, 50, uow)


@pytest.mark.asyncio
async def test_same_timestamp_messages_keep_insertion_order(alice, uow_with_conversation):
    uow, conv = uow_with_conversation
    frozen = FixedClock(step=timedelta(0))

    first, _ = await message_service.append_message(conv.id, ALICE, uow, body="first", clock=frozen)
    second, _ = await message_service.append_message(conv.id, BOB, uow, body="second", clock=frozen)

    assert first.created_at == second.created_at
    assert first.seq < second.seq
    msgs = await message_service.list_messages(conv.id, alice, 50, uow)
    assert [m.content.body for m in msgs] == ["first", "second"]
