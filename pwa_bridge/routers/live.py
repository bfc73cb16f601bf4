"""Live connection for the PWA chat widget."""

import uuid

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from pwa_bridge.dependencies import Bridge, get_bridge
from pwa_bridge.logging_config import LoggerAdapter, get_logger
from pwa_bridge.schemas.live import ClientMessageEvent, InitEvent, client_event_adapter
from pwa_bridge.services.errors import ValidationError
from pwa_bridge.services.identity import require_identity

logger = get_logger("live")

router = APIRouter()


@router.websocket("/ws")
async def live_connection(websocket: WebSocket, bridge: Bridge = Depends(get_bridge)):
    await websocket.accept()
    connection_id = uuid.uuid4().hex
    sessions = bridge.router.sessions
    sessions.connect(connection_id, websocket)
    log = LoggerAdapter(logger, {"connection_id": connection_id})
    log.info("PWA connected")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                event = client_event_adapter.validate_json(raw)
            except PayloadError as e:
                log.warning("Invalid frame from PWA", context={"errors": e.error_count()})
                await websocket.send_json({"event": "error", "data": {"error": "invalid_event", "detail": e.errors()[0]["msg"]}})
                continue

            if isinstance(event, InitEvent):
                try:
                    identity = require_identity(event.data.email, event.data.seller_slug)
                except ValidationError as e:
                    await websocket.send_json({"event": "error", "data": {"error": "invalid_identity", "detail": e.message}})
                    continue
                room = sessions.register(connection_id, identity)
                log.info("PWA identified", context={"room": room})
                await websocket.send_json({"event": "joined", "data": {"room": room}})

            elif isinstance(event, ClientMessageEvent):
                await bridge.router.on_client_message(connection_id, event.data.text)

    except WebSocketDisconnect:
        pass
    finally:
        sessions.unregister(connection_id)
        log.info("PWA disconnected")
