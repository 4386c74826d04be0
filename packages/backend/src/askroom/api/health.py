"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and its
two dependencies (session store, broadcast fabric) answer. A load
balancer should stop routing sockets to a process reporting "degraded".
"""

from fastapi import APIRouter, Request

from askroom import __version__
from askroom.errors import UnavailableError

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and dependency connectivity."""
    state = request.app.state
    checks = {
        "server": "ok",
        "version": __version__,
        "serverId": state.settings.server_id,
        "connections": len(state.registry),
        "rooms": state.registry.room_count(),
    }

    try:
        await state.store.ping()
        checks["store"] = "ok"
    except UnavailableError as e:
        checks["store"] = f"error: {e.message}"

    try:
        await state.fabric.ping()
        checks["fabric"] = "ok"
    except UnavailableError as e:
        checks["fabric"] = f"error: {e.message}"

    healthy = checks["store"] == "ok" and checks["fabric"] == "ok"
    return {"status": "healthy" if healthy else "degraded", **checks}
