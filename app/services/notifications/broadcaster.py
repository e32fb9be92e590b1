"""Real-time call event broadcasting to dashboard clients."""
import json
import logging
from typing import Any, Dict, Set
from fastapi import WebSocket

logger = logging.getLogger(__name__)


class CallEventBroadcaster:
    """Fans call events out to every connected WebSocket client."""

    def __init__(self):
        self._connections: Set[WebSocket] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        self._connections.add(websocket)
        await websocket.accept()
        logger.info(f"[BROADCAST] Client connected ({len(self._connections)} total)")

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections.discard(websocket)
        logger.info(f"[BROADCAST] Client disconnected ({len(self._connections)} total)")

    async def publish(self, event: Dict[str, Any]) -> int:
        """Send an event to all clients; returns how many received it. Never raises."""
        if not self._connections:
            return 0

        payload = json.dumps(event, default=str)
        delivered = 0
        for websocket in list(self._connections):
            try:
                await websocket.send_text(payload)
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"[BROADCAST] Dropping client after send failure - {type(e).__name__}: {str(e)}"
                )
                self._connections.discard(websocket)
        return delivered
