"""HTTP client for the conversation / message REST endpoints."""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

import httpx
from pydantic import TypeAdapter

from dm_service.api.v1.schemas.conversation import ConversationResponse
from dm_service.api.v1.schemas.message import MessageResponse
from dm_service.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    StoreUnavailableError,
    ValidationError,
)
from dm_service.client.session import Session
from dm_service.client.settings import ClientSettings
from dm_service.domain.entities.conversation import Conversation
from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.content import MessageContent, content_fields

logger = logging.getLogger(__name__)

_messages_adapter = TypeAdapter(list[MessageResponse])
_conversations_adapter = TypeAdapter(list[ConversationResponse])


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return response.text


class ChatApiClient:
    """REST side of the client: snapshot reads and the durable write path."""

    def __init__(
        self,
        session: Session,
        *,
        settings: ClientSettings | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or ClientSettings()
        self.http = http or httpx.AsyncClient(
            base_url=session.base_url,
            timeout=httpx.Timeout(
                self.settings.REQUEST_TIMEOUT,
                connect=self.settings.CONNECT_TIMEOUT,
            ),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def list_conversations(self, limit: int | None = None) -> list[Conversation]:
        params = {"limit": limit} if limit else None
        data = await self._call("GET", "/api/v1/conversations", params=params)
        return [c.to_entity() for c in _conversations_adapter.validate_python(data)]

    async def get_conversation(self, conversation_id: UUID) -> Conversation:
        data = await self._call("GET", f"/api/v1/conversations/{conversation_id}")
        return ConversationResponse.model_validate(data).to_entity()

    async def list_messages(
        self, conversation_id: UUID, limit: int | None = None
    ) -> list[Message]:
        params = {"limit": limit} if limit else None
        data = await self._call("GET", f"/api/v1/messages/{conversation_id}", params=params)
        return [m.to_entity() for m in _messages_adapter.validate_python(data)]

    async def send_message(
        self,
        conversation_id: UUID,
        content: MessageContent,
        client_msg_id: UUID,
    ) -> Message:
        payload = {"client_msg_id": str(client_msg_id), **content_fields(content)}
        data = await self._call(
            "POST",
            f"/api/v1/messages/{conversation_id}",
            json=payload,
            write=True,
        )
        return MessageResponse.model_validate(data).to_entity()

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        write: bool = False,
    ) -> Any:
        unavailable = PersistenceError if write else StoreUnavailableError
        try:
            response = await self.http.request(
                method,
                path,
                params=params,
                json=json,
                headers=self.session.auth_headers,
            )
        except httpx.TimeoutException as exc:
            raise unavailable(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise unavailable(f"{method} {path} failed: {exc}") from exc

        status = response.status_code
        if status in {400, 422}:
            raise ValidationError(_detail(response))
        if status in {401, 403}:
            raise ForbiddenError(_detail(response))
        if status == 404:
            raise NotFoundError(_detail(response))
        if status >= 400:
            logger.warning("%s %s answered %d", method, path, status)
            raise unavailable(f"{method} {path} answered {status}: {_detail(response)}")

        return response.json()
