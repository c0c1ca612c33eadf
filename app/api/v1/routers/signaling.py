"""WebSocket signaling endpoint.

One socket per browser tab. Frames are parsed here; the registry only ever
sees well-formed `SignalMessage`s.
"""

import orjson
from fastapi import APIRouter, Depends, WebSocket
from loguru import logger
from pydantic import ValidationError

from app.api.v1.dependency import get_relay_registry
from app.domain.relay import Participant, RelayRegistry, WebSocketConnection
from app.schemas import InboundType, SignalMessage, error_frame
from app.shared.api.utils import format_error, run_taskgroup
from app.utils.app_errors import AppError, AppErrorCode

router = APIRouter()


class SignalingSession:
    """Reads frames from one connection and feeds them to the registry."""

    def __init__(self, registry: RelayRegistry, connection: WebSocketConnection):
        self.registry = registry
        self.connection = connection
        self.participant = Participant(connection)

    async def run(self) -> None:
        await run_taskgroup(self.read_loop(), self.connection.run_writer())

    async def read_loop(self) -> None:
        try:
            async for raw in self.connection.messages():
                self.handle_frame(raw)
        finally:
            self.registry.on_disconnect_or_close(self.participant)
            self.connection.close()

    def handle_frame(self, raw: str | bytes) -> None:
        try:
            message = SignalMessage.parse_frame(raw)
        except (orjson.JSONDecodeError, ValidationError) as exc:
            logger.warning("[{}] Error processing message: {}", self.participant.participant_id, exc)
            if self.registry.strict:
                self._reply_error(AppError(errcode=AppErrorCode.E_MALFORMED_MESSAGE, errmesg=str(exc)))
            return

        try:
            self.registry.dispatch(self.participant, message)
        except AppError as exc:
            self._reply_error(exc)
            return

        if message.inbound_type == InboundType.DISCONNECT:
            # Explicit leave keeps the socket; the tab may declare a role again.
            left = self.participant
            self.participant = Participant(self.connection)
            logger.info(
                "Participant {} left, connection {} continues as {}",
                left.participant_id,
                self.connection.connection_id,
                self.participant.participant_id,
            )

    def _reply_error(self, exc: AppError) -> None:
        logger.warning(
            "{} {} msg={} caller={}", exc.errcode, exc.erresid, exc.errmesg, exc.caller_info
        )
        self.connection.send(error_frame(exc.errcode, exc.errmesg, exc.erresid))


@router.websocket("/signaling")
async def signaling(
    websocket: WebSocket,
    registry: RelayRegistry = Depends(get_relay_registry),
):
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    logger.info("New client connected: {} {}", connection.connection_id, websocket.client)

    try:
        await SignalingSession(registry, connection).run()
    except Exception as exc:
        logger.error("WebSocket error on {}: {}", connection.connection_id, format_error(exc))
    finally:
        logger.info("Client disconnected: {}", connection.connection_id)
