"""Seed development data: creates the schema, a demo conversation and a few messages."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from dm_service.application.ports.clock import system_clock
from dm_service.infrastructure.db.session import AsyncSessionLocal, create_schema
from dm_service.infrastructure.db.uow import SqlAlchemyUoW
from dm_service.services import conversation_service, message_service

logger = logging.getLogger(__name__)

DEMO_TRAVELER = "demo-user-1"
DEMO_HOST = "test-user-2"


class _ShiftedClock:
    def __init__(self, offset: timedelta) -> None:
        self._offset = offset

    def now(self) -> datetime:
        return system_clock.now() - self._offset


async def seed() -> None:
    await create_schema()

    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        conv, created = await conversation_service.get_or_create_conversation(
            DEMO_TRAVELER, DEMO_HOST, uow,
        )
        if not created:
            logger.info("Conversation %s already seeded", conv.id)
            return

        messages_data = [
            (DEMO_TRAVELER, {"body": "Hi! Is the room in Barcelona free next week?"}),
            (DEMO_HOST, {"body": "Hello! Yes, from Monday to Thursday."}),
            (DEMO_HOST, {
                "body": "The flat",
                "media_url": "https://example.com/stays/barcelona/flat.jpg",
                "media_type": "image",
            }),
            (DEMO_TRAVELER, {"body": "Meet here?", "latitude": 41.3874, "longitude": 2.1686}),
        ]
        for minutes_ago, (sender, fields) in zip(range(len(messages_data), 0, -1), messages_data):
            await message_service.append_message(
                conv.id,
                sender,
                uow,
                clock=_ShiftedClock(timedelta(minutes=minutes_ago)),
                **fields,
            )

        logger.info("Seeded conversation %s with %d messages", conv.id, len(messages_data))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
