"""Room API routes — read-only views for dashboards and the CLI.

Learn: Same snapshots the WebSocket protocol sends (camelCase, question
ids as `_id`), served over plain HTTP so operators can look at a room
without joining it.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from askroom.errors import NotFoundError, UnavailableError
from askroom.schemas.room import RoomRead, RoomStatus, RoomSummary
from askroom.services.session_engine import SessionEngine

router = APIRouter()


def _engine(request: Request) -> SessionEngine:
    return request.app.state.engine


@router.get("/rooms", response_model=list[RoomSummary])
async def list_rooms(
    status: Optional[RoomStatus] = Query(None),
    engine: SessionEngine = Depends(_engine),
):
    """List rooms, optionally filtered by status."""
    try:
        return await engine.list_rooms(status)
    except UnavailableError as e:
        raise HTTPException(status_code=503, detail=e.message)


@router.get("/rooms/{room_id}", response_model=RoomRead)
async def get_room(room_id: str, engine: SessionEngine = Depends(_engine)):
    """Full snapshot of one room."""
    try:
        return await engine.get_session(room_id.strip().upper())
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except UnavailableError as e:
        raise HTTPException(status_code=503, detail=e.message)
