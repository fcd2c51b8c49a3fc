"""Consumer for social-graph events: opens a conversation when two users connect."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

import redis.asyncio as aioredis

from dm_service.application.exceptions import AppError
from dm_service.application.uow import UnitOfWork
from dm_service.config import settings
from dm_service.infrastructure.bus.redis_streams import RedisStreamConsumer
from dm_service.infrastructure.db.session import AsyncSessionLocal
from dm_service.infrastructure.db.uow import SqlAlchemyUoW
from dm_service.services import conversation_service

logger = logging.getLogger(__name__)

CONNECT_ACCEPTED = "connect_request.accepted"


async def handle_event(event_type: str, fields: dict[str, Any]) -> None:
    """Dispatch a stream event to the appropriate handler."""
    if event_type == CONNECT_ACCEPTED:
        async with AsyncSessionLocal() as session:
            await handle_connect_accepted(fields, SqlAlchemyUoW(session))
    else:
        logger.debug("Ignoring unknown event: %s", event_type)


async def handle_connect_accepted(fields: dict[str, Any], uow: UnitOfWork) -> None:
    """Create (or find) the conversation for a mutually connected pair."""
    from_user_id = fields.get("from_user_id")
    to_user_id = fields.get("to_user_id")
    if not from_user_id or not to_user_id:
        logger.warning("Malformed %s event: %r", CONNECT_ACCEPTED, fields)
        return

    try:
        conv, created = await conversation_service.get_or_create_conversation(
            str(from_user_id), str(to_user_id), uow,
        )
    except AppError as exc:
        logger.warning("Cannot open conversation for %s/%s: %s", from_user_id, to_user_id, exc.detail)
        return

    if created:
        logger.info("Opened conversation %s for %s and %s", conv.id, from_user_id, to_user_id)
    else:
        logger.debug("Conversation %s already exists for %s and %s", conv.id, from_user_id, to_user_id)


async def run_consumer() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    consumer_name = f"consumer-{uuid.uuid4().hex[:8]}"

    consumer = RedisStreamConsumer(
        redis=redis,
        stream=settings.CONNECTION_EVENTS_STREAM,
        group=settings.CONNECTION_EVENTS_GROUP,
        consumer=consumer_name,
        callback=handle_event,
    )
    await consumer.start()
    logger.info("Connection events consumer started (%s)", consumer_name)

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await consumer.stop()
        await redis.aclose()


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run_consumer())


if __name__ == "__main__":
    main()
