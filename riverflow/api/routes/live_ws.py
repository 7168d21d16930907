# riverflow/api/routes/live_ws.py
from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from riverflow.services.messages import PongMessage

log = logging.getLogger("hub")

router = APIRouter()


@router.websocket("/ws/live")
async def live_feed(websocket: WebSocket):
    hub = websocket.app.state.runtime.hub
    await hub.register(websocket)
    try:
        while True:
            text = await websocket.receive_text()
            if text.strip().lower() == "ping":
                await hub.send(websocket, PongMessage())
    except WebSocketDisconnect:
        log.debug("subscriber disconnected")
    finally:
        hub.unregister(websocket)
