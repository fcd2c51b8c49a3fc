from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from dm_service.api.deps import UoWFactory, UoWFactoryDep, get_verifier
from dm_service.application.dto.principal import Principal
from dm_service.application.exceptions import AppError
from dm_service.application.ports.bus import FanoutPublisher
from dm_service.application.ports.clock import system_clock
from dm_service.config import settings
from dm_service.domain.value_objects.content import content_from_fields
from dm_service.infrastructure.ws.manager import Connection, ConnectionManager, LocalFanout
from dm_service.infrastructure.ws.protocol import (
    ConversationRef,
    NewMessageData,
    PushedMessage,
    SendMessageData,
    WsEvent,
    WsInbound,
    content_to_model,
    error_frame,
    outbound,
)
from dm_service.services import conversation_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

manager = ConnectionManager()


def get_manager() -> ConnectionManager:
    return manager


def _get_fanout(ws: WebSocket) -> FanoutPublisher:
    fanout = getattr(ws.app.state, "fanout", None)
    return fanout if fanout is not None else LocalFanout(manager)


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws")
async def ws_chat(
    websocket: WebSocket,
    uow_factory: UoWFactoryDep,
    token: str = Query(...),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    conn = await manager.connect(websocket, principal.user_id)

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{conn.connection_id}",
    )
    try:
        await _read_loop(conn, principal, uow_factory, _get_fanout(websocket))
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", conn.connection_id)
    finally:
        heartbeat_task.cancel()
        manager.disconnect(conn.connection_id)


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await ws.send_text(outbound(WsEvent.PONG))
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Heartbeat stopped", exc_info=True)


async def _read_loop(
    conn: Connection,
    principal: Principal,
    uow_factory: UoWFactory,
    fanout: FanoutPublisher,
) -> None:
    ws = conn.ws
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except PydanticValidationError:
            await ws.send_text(error_frame("invalid_payload"))
            continue

        if msg.type == WsEvent.PING:
            await ws.send_text(outbound(WsEvent.PONG))

        elif msg.type == WsEvent.JOIN_CONVERSATION:
            await _handle_join(conn, principal, msg.data, uow_factory)

        elif msg.type == WsEvent.LEAVE_CONVERSATION:
            try:
                ref = ConversationRef.model_validate(msg.data)
            except PydanticValidationError:
                await ws.send_text(error_frame("invalid_data"))
                continue
            manager.leave(conn.connection_id, ref.conversation_id)

        elif msg.type == WsEvent.SEND_MESSAGE:
            await _handle_send(conn, principal, msg.data, fanout)

        else:
            # forward compatible: unknown frames are not errors
            logger.debug("Ignoring WS frame of type %r from %s", msg.type, conn.connection_id)


async def _handle_join(
    conn: Connection,
    principal: Principal,
    data: dict,
    uow_factory: UoWFactory,
) -> None:
    try:
        ref = ConversationRef.model_validate(data)
    except PydanticValidationError:
        await conn.ws.send_text(error_frame("invalid_data"))
        return

    try:
        async with uow_factory() as uow:
            await conversation_service.get_conversation(ref.conversation_id, principal, uow)
    except AppError as exc:
        await conn.ws.send_text(
            error_frame(
                "join_rejected",
                conversation_id=str(ref.conversation_id),
                detail=exc.detail,
            )
        )
        return

    manager.join(conn.connection_id, ref.conversation_id)
    logger.debug("%s joined %s", conn.connection_id, ref.conversation_id)


async def _handle_send(
    conn: Connection,
    principal: Principal,
    data: dict,
    fanout: FanoutPublisher,
) -> None:
    """Relay a just-sent message to the other interested connections.

    Nothing is stored here: the sender persists through the REST endpoint.
    """
    try:
        req = SendMessageData.model_validate(data)
        content = content_from_fields(
            body=req.body,
            media_url=req.media_url,
            media_type=req.media_type,
            latitude=req.latitude,
            longitude=req.longitude,
            file_name=req.file_name,
        )
    except PydanticValidationError as exc:
        await conn.ws.send_text(error_frame("invalid_data", detail=str(exc)))
        return
    except AppError as exc:
        await conn.ws.send_text(error_frame("invalid_data", detail=exc.detail))
        return

    if not manager.is_joined(conn.connection_id, req.conversation_id):
        await conn.ws.send_text(
            error_frame("not_joined", conversation_id=str(req.conversation_id))
        )
        return

    pushed = PushedMessage(
        id=req.id,
        client_msg_id=req.client_msg_id,
        conversation_id=req.conversation_id,
        from_user_id=principal.user_id,
        content=content_to_model(content),
        created_at=system_clock.now(),
    )
    payload = NewMessageData(conversation_id=req.conversation_id, message=pushed)
    await fanout.publish(
        req.conversation_id,
        WsEvent.NEW_MESSAGE,
        payload.model_dump(mode="json"),
        origin=conn.connection_id,
    )

    await conn.ws.send_text(
        outbound(
            WsEvent.SEND_ACK,
            {
                "conversation_id": str(req.conversation_id),
                "client_msg_id": str(req.client_msg_id) if req.client_msg_id else None,
            },
        )
    )
