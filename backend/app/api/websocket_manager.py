"""
WebSocket Manager - Tournament event fan-out

Clients connect to /ws/tournaments and receive every tournament event the
engine publishes ({"type": <event>, "data": <payload>}). The manager is a
NotificationEmitter listener; a dead socket is dropped and never fails the
publishing operation.
"""

import json
import logging
from typing import Any, Dict, List
from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: dict):
        """Broadcast message to all connected clients"""
        for connection in self.active_connections[:]:
            try:
                await connection.send_json(message)
            except Exception:
                # Remove dead connections
                logger.debug("Dropping dead websocket connection")
                self.disconnect(connection)

    async def on_event(self, event_name: str, payload: Dict[str, Any]):
        """NotificationEmitter listener"""
        await self.broadcast({"type": event_name, "data": payload})

    async def handle_session(self, websocket: WebSocket):
        """Keep the socket open; clients only listen (PING gets a PONG)."""
        await self.connect(websocket)
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    payload = json.loads(data)
                except ValueError:
                    continue
                if payload.get("action") == "PING":
                    await websocket.send_json({"type": "PONG"})
        except WebSocketDisconnect:
            pass
        finally:
            self.disconnect(websocket)
