"""Connection abstraction — what the registry and broadcaster send to.

Learn: The broadcaster only needs three things from a peer connection:
a stable id, whether it is still open, and a way to send one text frame.
WebSocketConnection adapts Starlette's WebSocket to that; tests use a
plain in-memory double with the same shape.
"""

import uuid
from typing import Protocol

from starlette.websockets import WebSocket, WebSocketState


class Connection(Protocol):
    id: str

    @property
    def is_open(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...


class WebSocketConnection:
    """A live Starlette WebSocket as a broadcast target."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.id = uuid.uuid4().hex
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        self._closed = True

    async def send_text(self, data: str) -> None:
        try:
            await self.websocket.send_text(data)
        except Exception:
            self._closed = True
            raise

    def __repr__(self) -> str:
        return f"<WebSocketConnection {self.id[:8]}>"
