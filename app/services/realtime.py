# app/services/realtime.py
"""WebSocket connection manager for live dispatch updates."""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self) -> None:
        self.connections: List[WebSocket] = []
        self.rooms: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the server loop so worker threads can schedule sends on it."""
        self._loop = loop

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.connections.append(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.connections:
            self.connections.remove(websocket)
        for room in list(self.rooms):
            self.rooms[room].discard(websocket)
            if not self.rooms[room]:
                del self.rooms[room]

    def join(self, room: str, websocket: WebSocket) -> None:
        self.rooms[str(room)].add(websocket)
        logger.debug("Socket joined room %s", room)

    def leave(self, room: str, websocket: WebSocket) -> None:
        members = self.rooms.get(str(room))
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[str(room)]

    def emit(self, event: str, data: Any, room: Optional[str] = None, exclude: Optional[WebSocket] = None) -> None:
        """Fire-and-forget broadcast to everyone, or to one room."""
        targets = list(self.rooms.get(str(room), ())) if room is not None else list(self.connections)
        frame = {"event": event, "data": jsonable_encoder(data)}
        for ws in targets:
            if ws is exclude:
                continue
            self._schedule(self._send(ws, frame))

    async def _send(self, websocket: WebSocket, frame: Dict[str, Any]) -> None:
        try:
            await websocket.send_json(frame)
        except Exception:
            logger.info("Dropping socket after failed send of %s", frame.get("event"))
            self.disconnect(websocket)

    def _schedule(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            task = loop.create_task(coro)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif self._loop is not None and self._loop.is_running():
            asyncio.run_coroutine_threadsafe(coro, self._loop)
        else:
            coro.close()
            logger.debug("No running event loop; broadcast dropped")

    async def handle(self, websocket: WebSocket, message: Dict[str, Any]) -> None:
        """Dispatch one client frame."""
        event = message.get("event")
        data = message.get("data")
        room = message.get("room") or (data.get("room_id") if isinstance(data, dict) else None)
        if not room and isinstance(data, str):
            room = data

        if event in ("join-room", "join") and room:
            self.join(room, websocket)
        elif event in ("leave-room", "leave") and room:
            self.leave(room, websocket)
        elif event == "update-ambulance-location":
            self.emit("ambulance-location-updated", data, exclude=websocket)
        elif event == "emergency-request":
            self.emit("new-emergency", data)
        elif event == "send-message" and room:
            self.emit("new-message", data, room=room)
        else:
            logger.debug("Ignoring socket event %r", event)

    async def close(self) -> None:
        for ws in list(self.connections):
            try:
                await ws.close()
            except Exception:
                logger.debug("Error closing socket", exc_info=True)
        self.connections.clear()
        self.rooms.clear()
