"""WebSocket routes for live pipeline updates."""
from datetime import datetime, timezone
from typing import Any, Dict, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["WebSocket"])


class ConnectionManager:
    """Manages WebSocket connections per request id."""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, request_id: str):
        """Accept and track a new connection."""
        await websocket.accept()
        if request_id not in self.active_connections:
            self.active_connections[request_id] = set()
        self.active_connections[request_id].add(websocket)
        logger.info("WebSocket connected", request_id=request_id)

    def disconnect(self, websocket: WebSocket, request_id: str):
        """Remove a disconnected connection."""
        if request_id in self.active_connections:
            self.active_connections[request_id].discard(websocket)
            if not self.active_connections[request_id]:
                del self.active_connections[request_id]
        logger.info("WebSocket disconnected", request_id=request_id)

    def connection_count(self, request_id: str) -> int:
        return len(self.active_connections.get(request_id, ()))

    async def broadcast_to_request(self, request_id: str, message: dict):
        """Broadcast a message to all connections watching a request."""
        if request_id in self.active_connections:
            disconnected = set()
            for connection in list(self.active_connections[request_id]):
                try:
                    await connection.send_json(message)
                except Exception:
                    disconnected.add(connection)

            # Clean up disconnected
            for conn in disconnected:
                self.active_connections[request_id].discard(conn)

    def update_sink(self, request_id: str):
        """Build a processor ``on_update`` callback that pushes events to this request's watchers."""
        async def on_update(event: str, payload: Dict[str, Any]) -> None:
            await self.broadcast_to_request(request_id, {
                "type": event,
                "request_id": request_id,
                "data": payload,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            })

        return on_update


manager = ConnectionManager()


@router.websocket("/ws/requests/{request_id}")
async def request_updates(websocket: WebSocket, request_id: str):
    """
    Stream status, step, trace, complete and error events for a request.

    Clients may send ``ping`` and receive ``{"type": "pong"}``.
    """
    await manager.connect(websocket, request_id)
    try:
        await websocket.send_json({"type": "connected", "request_id": request_id})
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket, request_id)
