"""Pydantic models for Socket.IO events.

Event names are derived from class names in snake_case:
- RoomJoin -> "room_join"
- PiecesInvalidate -> "pieces_invalidate"
"""

import re

from pydantic import BaseModel

from jigsync.schemas import MemberResponse, PieceResponse, ProgressResponse, RoomResponse


class SocketEvent(BaseModel):
    @classmethod
    def event_name(cls) -> str:
        return re.sub(r"(?<!^)(?=[A-Z])", "_", cls.__name__).lower()


# =============================================================================
# Request Models (client -> server)
# =============================================================================


class RoomJoin(SocketEvent):
    """Join a room for real-time updates."""

    room_id: str


class RoomLeave(SocketEvent):
    """Leave current room."""

    room_id: str


class PieceMove(SocketEvent):
    """One frame of a drag gesture."""

    room_id: str
    piece_id: str
    x: float
    y: float


# =============================================================================
# Response Models (server -> client, for RPC calls)
# =============================================================================


class RoomJoinResponse(SocketEvent):
    """Snapshot sent back to a client entering a room."""

    room: RoomResponse
    pieces: list[PieceResponse]
    members: list[MemberResponse]
    progress: ProgressResponse


class RoomLeaveResponse(SocketEvent):
    room_id: str


# =============================================================================
# Broadcast Models (server -> clients)
# =============================================================================


class PiecesInvalidate(SocketEvent):
    """Broadcast when any piece of the room changed."""

    room_id: str


class MembersInvalidate(SocketEvent):
    """Broadcast when room membership changed."""

    room_id: str


class RoomInvalidate(SocketEvent):
    """Broadcast when the room itself was created or deleted."""

    room_id: str
