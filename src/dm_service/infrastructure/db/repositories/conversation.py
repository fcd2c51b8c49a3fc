from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from dm_service.domain.entities.conversation import Conversation
from dm_service.infrastructure.db.mappers import conversation as mapper
from dm_service.infrastructure.db.models.conversation import ConversationModel


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        result = await self._session.get(ConversationModel, conversation_id)
        return mapper.model_to_entity(result) if result else None

    async def get_by_pair(self, user_a_id: str, user_b_id: str) -> Conversation | None:
        stmt = select(ConversationModel).where(
            ConversationModel.user_a_id == user_a_id,
            ConversationModel.user_b_id == user_b_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_user(
        self,
        user_id: str,
        *,
        limit: int = 50,
    ) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .where(
                or_(
                    ConversationModel.user_a_id == user_id,
                    ConversationModel.user_b_id == user_id,
                )
            )
            .order_by(
                ConversationModel.last_message_at.desc().nullslast(),
                ConversationModel.created_at.desc(),
                ConversationModel.id,
            )
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(
        self, conversation: Conversation
    ) -> tuple[Conversation, bool]:
        """Insert conversation idempotently. Returns (conversation, created_flag)."""
        stmt = (
            pg_insert(ConversationModel)
            .values(
                id=conversation.id,
                user_a_id=conversation.user_a_id,
                user_b_id=conversation.user_b_id,
                last_message_at=conversation.last_message_at,
                created_at=conversation.created_at,
            )
            .on_conflict_do_nothing(constraint="uq_conversation_pair")
            .returning(ConversationModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()

        if row is not None:
            return mapper.model_to_entity(row), True

        # Lost the race, the pair already exists
        existing = await ConversationReaderRepo(self._session).get_by_pair(
            conversation.user_a_id, conversation.user_b_id,
        )
        assert existing is not None
        return existing, False

    async def touch_last_message(
        self,
        conversation_id: UUID,
        message_id: UUID,
        ts: datetime,
    ) -> None:
        # both columns move together under the same guard
        stmt = (
            update(ConversationModel)
            .where(
                ConversationModel.id == conversation_id,
                or_(
                    ConversationModel.last_message_at.is_(None),
                    ConversationModel.last_message_at < ts,
                ),
            )
            .values(last_message_at=ts, last_message_id=message_id)
        )
        await self._session.execute(stmt)
