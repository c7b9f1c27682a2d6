# app/routes/realtime/router.py
"""WebSocket endpoint relaying live dispatch events."""
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws")
async def dispatch_ws(websocket: WebSocket):
    manager = websocket.app.state.services.realtime
    await manager.connect(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                logger.debug("Ignoring non-JSON socket frame")
                continue
            if isinstance(message, dict):
                await manager.handle(websocket, message)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
