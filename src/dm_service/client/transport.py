"""Realtime connection transport. Every failure surfaces as TransportError."""
from __future__ import annotations

import logging
from typing import Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from dm_service.application.exceptions import TransportError

logger = logging.getLogger(__name__)


class RealtimeConnection(Protocol):
    async def send(self, raw: str) -> None: ...

    async def recv(self) -> str: ...

    async def close(self) -> None: ...


class RealtimeTransport(Protocol):
    async def connect(self, url: str) -> RealtimeConnection: ...


class WebsocketsConnection:
    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws

    async def send(self, raw: str) -> None:
        try:
            await self._ws.send(raw)
        except ConnectionClosed as exc:
            raise TransportError(f"send on closed connection ({exc.rcvd})") from exc

    async def recv(self) -> str:
        try:
            frame = await self._ws.recv()
        except ConnectionClosed as exc:
            raise TransportError(f"connection closed ({exc.rcvd})") from exc
        return frame if isinstance(frame, str) else frame.decode()

    async def close(self) -> None:
        await self._ws.close()


class WebsocketsTransport:
    def __init__(self, *, open_timeout: float = 5.0) -> None:
        self._open_timeout = open_timeout

    async def connect(self, url: str) -> RealtimeConnection:
        try:
            ws = await connect(url, open_timeout=self._open_timeout)
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise TransportError(f"handshake failed: {exc}") from exc
        logger.debug("Realtime connection open")
        return WebsocketsConnection(ws)
