"""Outbound event delivery for chat connections.

The coordinator only knows connection ids. A transport turns
"send this event to that id / to everyone / to everyone but that id" into
actual socket writes.
"""
import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

from .schemas import OutboundEvent

logger = logging.getLogger(__name__)


class EventTransport(ABC):
    """Emits named events to connections identified by opaque ids."""

    @abstractmethod
    async def emit(self, connection_id: str, event: str, data: Any = None) -> None:
        """Send an event to a single connection."""

    @abstractmethod
    async def broadcast(
        self, event: str, data: Any = None, exclude: Optional[str] = None
    ) -> None:
        """Send an event to every connection, optionally skipping one."""


class WebSocketTransport(EventTransport):
    """EventTransport over FastAPI WebSockets.

    Broadcasting uses asyncio.gather() for concurrent delivery. Connections
    whose send fails are dropped from the transport; the endpoint's own
    disconnect handling takes care of the participant.
    """

    def __init__(self) -> None:
        self.connections: Dict[str, WebSocket] = {}

    def register(self, websocket: WebSocket) -> str:
        """Track an accepted WebSocket and return its new connection id."""
        connection_id = uuid.uuid4().hex
        self.connections[connection_id] = websocket
        return connection_id

    def unregister(self, connection_id: str) -> None:
        self.connections.pop(connection_id, None)

    def __len__(self) -> int:
        return len(self.connections)

    async def emit(self, connection_id: str, event: str, data: Any = None) -> None:
        websocket = self.connections.get(connection_id)
        if websocket is None:
            return
        frame = OutboundEvent(event=event, data=data).model_dump(mode="json")
        if not await self._safe_send(websocket, frame):
            self._cleanup_connections([connection_id])

    async def broadcast(
        self, event: str, data: Any = None, exclude: Optional[str] = None
    ) -> None:
        targets = [
            (cid, ws) for cid, ws in list(self.connections.items())
            if cid != exclude
        ]
        if not targets:
            return

        frame = OutboundEvent(event=event, data=data).model_dump(mode="json")
        results = await asyncio.gather(
            *[self._safe_send(ws, frame) for _, ws in targets],
            return_exceptions=True
        )

        failed = [
            cid for (cid, _), success in zip(targets, results)
            if success is not True
        ]
        self._cleanup_connections(failed)

    async def _safe_send(self, connection: WebSocket, frame: dict) -> bool:
        try:
            await connection.send_json(frame)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False

    def _cleanup_connections(self, failed: List[str]) -> None:
        for cid in failed:
            if self.connections.pop(cid, None) is not None:
                logger.debug(f"Removed dead connection {cid}")
