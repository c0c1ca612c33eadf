"""Connection endpoints used by the relay registry.

The registry never awaits a send. `WebSocketConnection.send` only enqueues;
a writer coroutine owned by the signaling endpoint drains the queue.
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Any, Protocol
from uuid import uuid4

import orjson
from fastapi import WebSocket, WebSocketDisconnect
from loguru import logger
from starlette.websockets import WebSocketState


class Connection(Protocol):
    """Bidirectional message channel of one participant."""

    connection_id: str

    @property
    def is_open(self) -> bool: ...

    def send(self, message: dict[str, Any]) -> None:
        """Fire-and-forget; silently dropped when the connection is closed."""
        ...

    def close(self) -> None: ...


def new_connection_id() -> str:
    return uuid4().hex[:8]


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class WebSocketConnection:
    """Connection backed by a FastAPI WebSocket and an outbound queue."""

    def __init__(self, websocket: WebSocket, connection_id: str | None = None):
        self.websocket = websocket
        self.connection_id = connection_id or new_connection_id()
        self._outbox: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False

    def __repr__(self) -> str:
        return f"WebSocketConnection({self.connection_id})"

    @property
    def is_open(self) -> bool:
        return not self._closed and self.websocket.application_state == WebSocketState.CONNECTED

    def send(self, message: dict[str, Any]) -> None:
        """Enqueue `message` for the writer.

        Safe to call from any thread or event loop: once the writer runs, sends
        from outside its loop are handed over with `call_soon_threadsafe`.
        """
        if not self.is_open:
            logger.debug("[{}] dropping {} to closed connection", self.connection_id, message.get("type"))
            return
        self._enqueue(message)

    def close(self) -> None:
        """Mark closed and wake the writer so it exits. Queued messages are dropped."""
        if self._closed:
            return
        self._closed = True
        self._enqueue(None)

    def _enqueue(self, item: dict[str, Any] | None) -> None:
        loop = self._loop
        if loop is None or _running_loop() is loop:
            self._outbox.put_nowait(item)
        else:
            loop.call_soon_threadsafe(self._outbox.put_nowait, item)

    async def messages(self) -> AsyncIterator[str | bytes]:
        """Inbound frames in arrival order, until the peer disconnects."""
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.debug("[{}] websocket disconnect code={}", self.connection_id, message.get("code"))
                return

            if message.get("text") is not None:
                yield message["text"]
            elif message.get("bytes") is not None:
                yield message["bytes"]

    async def run_writer(self) -> None:
        """Drain the outbound queue until `close()` is called."""
        self._loop = asyncio.get_running_loop()
        while True:
            message = await self._outbox.get()
            if message is None or self._closed:
                return
            try:
                await self.websocket.send_text(orjson.dumps(message).decode())
            except (WebSocketDisconnect, RuntimeError, OSError) as exc:
                logger.debug("[{}] send failed, closing: {}", self.connection_id, exc)
                self._closed = True
                return
