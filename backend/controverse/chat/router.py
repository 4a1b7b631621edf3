"""Chat router providing the WebSocket endpoint.

This module provides:
    - WebSocket /ws: Real-time chat messaging

Every frame is a JSON object. Clients send ``{event, data, ack}`` and receive
``{event, data}``. See ``coordinator`` for the event names and their effects.

Protocol Flow:
    1. Client connects → Server sends: user-info, message-history
       → Everyone receives: user-count; everyone else: user-joined
    2. Client sends: {event: "user-message", data: {id, text}}
       → Everyone else receives: {event: "message", data: {...}}
    3. Client sends: {event: "ping", ack: 7}
       → Server replies: {event: "pong", data: {ack: 7}}
    4. On disconnect → Everyone else receives: user-left; everyone: user-count

A failure while handling one frame is logged and the connection keeps
reading, so one bad payload cannot take down the session or the room.
"""
import asyncio
import logging

from fastapi import APIRouter, WebSocket
from pydantic import ValidationError

from .coordinator import BroadcastCoordinator
from .schemas import InboundEvent
from .transport import WebSocketTransport

logger = logging.getLogger(__name__)

router = APIRouter()


async def _handle_frame(
    coordinator: BroadcastCoordinator, connection_id: str, raw: str
) -> None:
    try:
        frame = InboundEvent.model_validate_json(raw)
    except ValidationError:
        logger.warning(f"[WS] Dropping malformed frame from {connection_id}: {raw[:100]!r}")
        return

    logger.debug("[WS] %s received: event=%s", connection_id, frame.event)
    try:
        await coordinator.dispatch(connection_id, frame.event, frame.data, frame.ack)
    except Exception:
        logger.exception(f"[WS] Error handling {frame.event!r} from {connection_id}")


@router.websocket("/ws")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for the shared chat room.

    Handles the complete lifecycle for a single client: registration with
    the transport and coordinator, the receive loop, and cleanup on
    disconnect (including abnormal closes).

    Args:
        websocket: The WebSocket connection.
    """
    coordinator: BroadcastCoordinator = websocket.app.state.coordinator
    transport: WebSocketTransport = websocket.app.state.transport

    await websocket.accept()
    connection_id = transport.register(websocket)
    logger.info(f"[WS] Connection accepted: {connection_id} ({len(transport)} open)")

    try:
        await coordinator.handle_connect(connection_id)

        # Main message loop
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"[WS] {connection_id} disconnected (code={message.get('code')})")
                break

            raw = message.get("text")
            if raw is None:
                raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            await _handle_frame(coordinator, connection_id, raw)
    finally:
        transport.unregister(connection_id)
        # Presence cleanup must finish even if this task is being cancelled
        await asyncio.shield(coordinator.handle_disconnect(connection_id))
