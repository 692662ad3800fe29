"""Socket.IO server: room channels and the live drag path.

Browsers connect with ``auth={"token": ...}``, join a room channel and
receive payload-free ``*_invalidate`` events whenever the store commits
a change. They re-fetch over REST (or from the ``room_join`` snapshot)
instead of applying deltas.
"""

import functools
import logging
import typing as t

import socketio
from fastapi import FastAPI
from pydantic import ValidationError
from socketio import exceptions as sio_exceptions

from jigsync.auth import CurrentUser
from jigsync.config import Settings
from jigsync.exceptions import (
    JigsyncError,
    NotAuthenticated,
    PieceNotFound,
    UnprocessableContent,
)
from jigsync.notifications import room_channel
from jigsync.schemas import MemberResponse, PieceResponse, ProgressResponse, RoomResponse
from jigsync.socket_events import (
    PieceMove,
    RoomJoin,
    RoomJoinResponse,
    RoomLeave,
    RoomLeaveResponse,
)

log = logging.getLogger(__name__)

Handler = t.Callable[..., t.Awaitable[dict]]


def create_sio(settings: Settings) -> socketio.AsyncServer:
    """Create the Socket.IO server.

    With ``redis_url`` set, an ``AsyncRedisManager`` relays emits between
    server processes.
    """
    client_manager = None
    if settings.redis_url is not None:
        client_manager = socketio.AsyncRedisManager(settings.redis_url)
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins="*",
        client_manager=client_manager,
    )


def _problem_response(handler: Handler) -> Handler:
    """Turn raised ``JigsyncError`` into an ``{"error": problem}`` ack."""

    @functools.wraps(handler)
    async def wrapper(sid: str, data: t.Any = None) -> dict:
        try:
            return await handler(sid, data)
        except ValidationError as e:
            return {"error": UnprocessableContent(str(e)).to_problem().model_dump()}
        except JigsyncError as e:
            return {"error": e.to_problem().model_dump()}

    return wrapper


def register_handlers(sio: socketio.AsyncServer, app: FastAPI) -> None:
    """Attach event handlers that reach the store through ``app.state``."""

    async def _user(sid: str) -> CurrentUser:
        session = await sio.get_session(sid)
        if "user" not in session:
            raise NotAuthenticated("Socket session has no user")
        return CurrentUser.model_validate(session["user"])

    @sio.on("connect")
    async def on_connect(sid: str, environ: dict, auth: dict | None = None) -> bool:
        """Handle Socket.IO connection with JWT validation."""
        token = auth.get("token") if isinstance(auth, dict) else None
        user = app.state.auth.current_user(token)
        if user is None:
            raise sio_exceptions.ConnectionRefusedError("Missing or invalid token")
        await sio.save_session(sid, {"user": user.model_dump(), "room_id": None})
        log.debug("Socket %s connected as %s", sid, user.id)
        return True

    @sio.on("disconnect")
    async def on_disconnect(sid: str, *args: t.Any) -> None:
        # Membership stays active; presence is not cleaned up on disconnect.
        log.debug("Socket %s disconnected", sid)

    @sio.on(RoomJoin.event_name())
    @_problem_response
    async def room_join(sid: str, data: t.Any) -> dict:
        """Enter the room channel, upsert membership and return a snapshot."""
        request = RoomJoin.model_validate(data)
        user = await _user(sid)
        store = app.state.store

        await store.join_room(request.room_id, user.id, user.email)
        room = await store.get_room(request.room_id)
        pieces = await store.list_pieces(request.room_id)
        members = await store.list_active_members(request.room_id)

        session = await sio.get_session(sid)
        previous = session.get("room_id")
        if previous is not None and previous != request.room_id:
            await sio.leave_room(sid, room_channel(previous))
        await sio.enter_room(sid, room_channel(request.room_id))
        session["room_id"] = request.room_id
        await sio.save_session(sid, session)

        return RoomJoinResponse(
            room=RoomResponse.from_room(room),
            pieces=[PieceResponse.model_validate(piece) for piece in pieces],
            members=[MemberResponse.model_validate(member) for member in members],
            progress=ProgressResponse.from_pieces(pieces),
        ).model_dump(mode="json")

    @sio.on(RoomLeave.event_name())
    @_problem_response
    async def room_leave(sid: str, data: t.Any) -> dict:
        """Leave the room channel. Membership is left as it is."""
        request = RoomLeave.model_validate(data)
        await sio.leave_room(sid, room_channel(request.room_id))
        session = await sio.get_session(sid)
        if session.get("room_id") == request.room_id:
            session["room_id"] = None
            await sio.save_session(sid, session)
        return RoomLeaveResponse(room_id=request.room_id).model_dump()

    @sio.on(PieceMove.event_name())
    @_problem_response
    async def piece_move(sid: str, data: t.Any) -> dict:
        """Apply one frame of a drag gesture."""
        request = PieceMove.model_validate(data)
        user = await _user(sid)
        store = app.state.store

        piece = await store.get_piece(request.piece_id)
        if piece.room_id != request.room_id:
            raise PieceNotFound(
                f"Piece {request.piece_id} not found in room {request.room_id}"
            )
        piece = await store.move_piece(request.piece_id, user.id, request.x, request.y)
        return PieceResponse.model_validate(piece).model_dump(mode="json")
