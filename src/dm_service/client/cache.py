"""On-disk copy of each conversation's confirmed messages.

Lets a timeline render something before the first snapshot arrives. The
cache is a convenience: unreadable files are ignored and rewritten.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from uuid import UUID

from pydantic import TypeAdapter

from dm_service.api.v1.schemas.message import MessageResponse
from dm_service.domain.entities.message import Message

logger = logging.getLogger(__name__)

_adapter = TypeAdapter(list[MessageResponse])


class TimelineCache:
    def __init__(self, directory: Path, *, max_messages: int = 200) -> None:
        self.directory = Path(directory)
        self.max_messages = max_messages

    def _path(self, conversation_id: UUID) -> Path:
        return self.directory / f"{conversation_id}.json"

    def load(self, conversation_id: UUID) -> list[Message]:
        path = self._path(conversation_id)
        if not path.exists():
            return []
        try:
            items = _adapter.validate_json(path.read_bytes())
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable cache file %s", path)
            return []
        return [item.to_entity() for item in items]

    def save(self, conversation_id: UUID, messages: list[Message]) -> None:
        kept = messages[-self.max_messages:] if self.max_messages else messages
        payload = _adapter.dump_json([MessageResponse.from_entity(m) for m in kept])
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(conversation_id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_bytes(payload)
        os.replace(tmp, path)
