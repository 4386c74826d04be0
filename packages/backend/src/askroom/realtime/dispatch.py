"""Message dispatcher — WebSocket frame → engine → broadcast.

Learn: The request boundary. For every inbound frame:
1. Parse the envelope and validate the payload for its type
2. Call the session engine
3. Answer the requester directly (sessionCreated, sessionJoined,
   sessionData, success) and/or fan the change out to the room
   (questionAdded, questionUpdated, attendeeJoined/Left, sessionClosed)

Anything that goes wrong becomes ONE `error` frame to the requester only.
Other peers never see another peer's failure, and no failure closes
the connection.

Room mutations run under the engine's per-room lock together with
their broadcast, so within this process a room's events are published in
the order their writes committed.
"""

from typing import Any, Awaitable, Callable

import structlog

from askroom.errors import NotFoundError, RoomError, UnavailableError
from askroom.events import types as ev
from askroom.realtime.broadcaster import RoomBroadcaster
from askroom.realtime.connection import Connection
from askroom.realtime.registry import ConnectionRegistry
from askroom.schemas.messages import (
    ClosePayload,
    CreatePayload,
    GetSessionPayload,
    InboundPayload,
    JoinPayload,
    LeavePayload,
    MarkQuestionPayload,
    QuestionPayload,
    VotePayload,
    make_event,
    parse_envelope,
    parse_payload,
)
from askroom.services.session_engine import QuestionResult, SessionEngine

logger = structlog.get_logger()

Handler = Callable[[Connection, Any], Awaitable[None]]


def error_event(message: str, code: str = "ERROR") -> dict[str, Any]:
    return make_event(ev.ERROR, {"message": message, "code": code})


class MessageDispatcher:
    """Routes inbound frames to handlers; owns the error boundary."""

    def __init__(
        self,
        engine: SessionEngine,
        registry: ConnectionRegistry,
        broadcaster: RoomBroadcaster,
    ):
        self.engine = engine
        self.registry = registry
        self.broadcaster = broadcaster
        # type → (payload model, handler, generic failure message)
        self._routes: dict[str, tuple[type[InboundPayload] | None, Handler, str]] = {
            ev.CREATE: (CreatePayload, self._create, "Failed to create session"),
            ev.JOIN: (JoinPayload, self._join, "Failed to join session"),
            ev.GET_SESSION: (GetSessionPayload, self._get_session, "Failed to get session data"),
            ev.QUESTION: (QuestionPayload, self._question, "Failed to add question"),
            ev.VOTE: (VotePayload, self._vote, "Failed to vote on question"),
            ev.MARK_QUESTION: (MarkQuestionPayload, self._mark_question, "Failed to mark question"),
            ev.LEAVE: (LeavePayload, self._leave, "Failed to leave session"),
            ev.CLOSE: (ClosePayload, self._close, "Failed to close session"),
            ev.PING: (None, self._ping, "Failed to answer ping"),
        }

    # ─── Entry points ─────────────────────────────────────

    async def dispatch(self, connection: Connection, raw: str | bytes) -> None:
        """Handle one inbound frame. Never raises."""
        try:
            envelope = parse_envelope(raw)
        except RoomError as e:
            await self._reply_error(connection, e)
            return

        route = self._routes.get(envelope.type)
        if route is None:
            logger.info("askroom.unknown_message_type", message_type=envelope.type)
            await self.broadcaster.send_direct(
                connection, error_event("Unknown message type", "INVALID_ARGUMENT")
            )
            return

        model, handler, failure_message = route
        try:
            payload = parse_payload(model, envelope.payload) if model else envelope.payload
            await handler(connection, payload)
        except RoomError as e:
            await self._reply_error(connection, e)
        except Exception:
            logger.exception("askroom.handler_error", message_type=envelope.type)
            await self.broadcaster.send_direct(connection, error_event(failure_message))

    async def handle_disconnect(self, connection: Connection) -> None:
        """Transport closed: forget the socket, implicit leave, tell the room."""
        binding = self.registry.unregister(connection)
        if binding is None:
            return
        try:
            async with self.engine.room_lock(binding.room_id):
                if self.registry.peer_bound(binding.room_id, binding.peer.id):
                    # Same peer still has another tab open here.
                    logger.debug("askroom.disconnect_peer_still_bound", room_id=binding.room_id)
                    return
                change = await self.engine.leave_room(binding.room_id, binding.peer.id)
                if change.changed:
                    await self.broadcaster.deliver(
                        binding.room_id,
                        make_event(ev.ATTENDEE_LEFT, {
                            "attendee": binding.peer.to_wire(),
                            "attendees": [a.to_wire() for a in change.room.attendees],
                        }),
                    )
        except NotFoundError:
            pass  # room already closed and purged
        except UnavailableError as e:
            logger.warning(
                "askroom.disconnect_leave_failed",
                room_id=binding.room_id,
                error=e.message,
            )

    async def _reply_error(self, connection: Connection, error: RoomError) -> None:
        await self.broadcaster.send_direct(connection, error_event(error.message, error.code))

    # ─── Handlers ─────────────────────────────────────────

    async def _create(self, connection: Connection, payload: CreatePayload) -> None:
        room = await self.engine.create_room(payload.session_name, payload.owner)
        await self.broadcaster.send_direct(
            connection, make_event(ev.SESSION_CREATED, {"session": room.to_wire()})
        )

    async def _join(self, connection: Connection, payload: JoinPayload) -> None:
        async with self.engine.room_lock(payload.room_id):
            change = await self.engine.join_room(payload.room_id, payload.attendee)
            self.registry.bind(connection, payload.room_id, payload.attendee)
            await self.broadcaster.send_direct(
                connection, make_event(ev.SESSION_JOINED, {"session": change.room.to_wire()})
            )
            if change.changed:
                await self.broadcaster.deliver(
                    payload.room_id,
                    make_event(ev.ATTENDEE_JOINED, {
                        "attendee": payload.attendee.to_wire(),
                        "attendees": [a.to_wire() for a in change.room.attendees],
                    }),
                    exclude=connection,
                )

    async def _get_session(self, connection: Connection, payload: GetSessionPayload) -> None:
        room = await self.engine.get_session(payload.room_id)
        await self.broadcaster.send_direct(
            connection, make_event(ev.SESSION_DATA, {"session": room.to_wire()})
        )

    async def _question(self, connection: Connection, payload: QuestionPayload) -> None:
        async with self.engine.room_lock(payload.room_id):
            result = await self.engine.ask_question(
                payload.room_id,
                payload.question_text,
                payload.author_id,
                payload.author_name,
            )
            await self._deliver_question(payload.room_id, ev.QUESTION_ADDED, result)

    async def _vote(self, connection: Connection, payload: VotePayload) -> None:
        async with self.engine.room_lock(payload.room_id):
            result = await self.engine.toggle_vote(
                payload.room_id, payload.question_id, payload.voter_id
            )
            await self._deliver_question(payload.room_id, ev.QUESTION_UPDATED, result)

    async def _mark_question(self, connection: Connection, payload: MarkQuestionPayload) -> None:
        async with self.engine.room_lock(payload.room_id):
            result = await self.engine.mark_question(
                payload.room_id, payload.question_id, payload.action, payload.user_id
            )
            await self._deliver_question(payload.room_id, ev.QUESTION_UPDATED, result)

    async def _deliver_question(self, room_id: str, event_type: str, result: QuestionResult) -> None:
        await self.broadcaster.deliver(
            room_id,
            make_event(event_type, {
                "question": result.question.to_wire(),
                "session": result.room.to_wire(),
            }),
        )

    async def _leave(self, connection: Connection, payload: LeavePayload) -> None:
        async with self.engine.room_lock(payload.room_id):
            change = await self.engine.leave_room(payload.room_id, payload.attendee_id)
            binding = self.registry.binding_for(connection)
            # Only drop the binding this frame is actually about.
            owns_binding = binding is not None and (binding.room_id, binding.peer.id) == (
                payload.room_id, payload.attendee_id
            )
            if owns_binding:
                self.registry.unbind(connection)
            await self.broadcaster.send_direct(
                connection, make_event(ev.SUCCESS, {"message": "Left session successfully"})
            )
            if change.changed:
                attendee = binding.peer.to_wire() if owns_binding else {"id": payload.attendee_id}
                await self.broadcaster.deliver(
                    payload.room_id,
                    make_event(ev.ATTENDEE_LEFT, {
                        "attendee": attendee,
                        "attendees": [a.to_wire() for a in change.room.attendees],
                    }),
                    exclude=connection,
                )

    async def _close(self, connection: Connection, payload: ClosePayload) -> None:
        async with self.engine.room_lock(payload.room_id):
            binding = self.registry.binding_for(connection)
            change = await self.engine.close_room(payload.room_id, payload.owner_id)
            if change.changed:
                await self.broadcaster.deliver(
                    payload.room_id,
                    make_event(ev.SESSION_CLOSED, {
                        "roomId": payload.room_id,
                        "message": "Session has been closed by the owner",
                    }),
                )
            if binding is None or binding.room_id != payload.room_id or not change.changed:
                await self.broadcaster.send_direct(
                    connection, make_event(ev.SUCCESS, {"message": "Session closed successfully"})
                )

    async def _ping(self, connection: Connection, payload: dict) -> None:
        await self.broadcaster.send_direct(connection, make_event(ev.PONG, {}))
