"""One-time script: create the Redis Streams consumer group for connection events."""
from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis

from dm_service.config import settings
from dm_service.infrastructure.bus.redis_streams import ensure_group

logger = logging.getLogger(__name__)


async def create_group() -> None:
    r = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        created = await ensure_group(
            r, settings.CONNECTION_EVENTS_STREAM, settings.CONNECTION_EVENTS_GROUP,
        )
        if created:
            logger.info(
                "Created consumer group '%s' on stream '%s'",
                settings.CONNECTION_EVENTS_GROUP,
                settings.CONNECTION_EVENTS_STREAM,
            )
        else:
            logger.info("Consumer group '%s' already exists", settings.CONNECTION_EVENTS_GROUP)
    finally:
        await r.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_group())


if __name__ == "__main__":
    main()
