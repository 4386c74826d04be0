"""WebSocket endpoint — one long-lived connection per browser tab.

Learn: Clients connect to /ws with no room in the URL. The socket is
registered unbound; a `join` frame binds it to a room, `leave` or the
room closing unbinds it, and a dropped transport counts as an implicit
leave. Everything in between is the dispatcher's job:

    receive ─► MessageDispatcher.dispatch ─► engine ─► broadcaster

Frames from one socket are handled strictly in arrival order: the loop
awaits each dispatch before reading the next frame.
"""

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from askroom.realtime.connection import WebSocketConnection
from askroom.realtime.dispatch import MessageDispatcher
from askroom.realtime.registry import ConnectionRegistry

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/ws")
async def room_websocket(websocket: WebSocket):
    """Accept a peer and pump its frames through the dispatcher until it leaves."""
    registry: ConnectionRegistry = websocket.app.state.registry
    dispatcher: MessageDispatcher = websocket.app.state.dispatcher

    await websocket.accept()
    connection = WebSocketConnection(websocket)
    registry.register(connection)
    structlog.contextvars.bind_contextvars(connection_id=connection.id)
    logger.info("askroom.ws_connected", connections=len(registry))

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            # Text or binary; parse_envelope answers anything else with an error frame.
            await dispatcher.dispatch(connection, message.get("text") or message.get("bytes") or "")
    except WebSocketDisconnect as e:
        logger.info("askroom.ws_disconnected", code=e.code)
    finally:
        connection.mark_closed()
        await dispatcher.handle_disconnect(connection)
        structlog.contextvars.unbind_contextvars("connection_id")
