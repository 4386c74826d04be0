"""API route aggregation.

All routers registered here get mounted in main.py under /api/v1.

Learn: The HTTP surface is read-only. Every room mutation goes through
the WebSocket protocol, so it's serialized with that room's broadcasts.
"""

from fastapi import APIRouter

from askroom.api.health import router as health_router
from askroom.api.rooms import router as rooms_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(rooms_router, tags=["rooms"])
