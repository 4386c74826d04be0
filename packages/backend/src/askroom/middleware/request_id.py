"""Request ID middleware — unique ID per HTTP request for tracing.

Learn: Every request gets a UUID, either from the incoming
X-Request-ID header or auto-generated. The ID and this process's
server_id are bound to structlog's contextvars so they appear in every
log entry for that request; with several servers behind a load
balancer, server_id tells you which one answered. WebSocket traffic
skips this middleware (BaseHTTPMiddleware is HTTP-only); the socket
endpoint binds its own connection_id.
"""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate a unique request ID."""

    def __init__(self, app, server_id: str = ""):
        super().__init__(app)
        self.server_id = server_id

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            server_id=self.server_id,
        )

        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Server-ID"] = self.server_id
        return response
