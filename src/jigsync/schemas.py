from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

from jigsync.puzzle import PuzzleConfig, is_complete, progress

if TYPE_CHECKING:
    from jigsync.models import Piece, Room

T = TypeVar("T")


class CollectionResponse(BaseModel, Generic[T]):
    """Non-paginated collection envelope."""

    items: list[T]


# =============================================================================
# Room Schemas
# =============================================================================


class RoomSummary(BaseModel):
    """Response of the upload entry point and of room listings."""

    id: str
    name: str
    image_url: str
    puzzle_config: PuzzleConfig

    @classmethod
    def from_room(cls, room: Room) -> RoomSummary:
        return cls(
            id=room.id,
            name=room.name,
            image_url=room.image_url,
            puzzle_config=room.config,
        )


class RoomResponse(RoomSummary):
    """Room details."""

    created_by: str
    created_at: datetime

    @classmethod
    def from_room(cls, room: Room) -> RoomResponse:
        return cls(
            id=room.id,
            name=room.name,
            image_url=room.image_url,
            puzzle_config=room.config,
            created_by=room.created_by,
            created_at=room.created_at,
        )


# =============================================================================
# Piece Schemas
# =============================================================================


class PieceResponse(BaseModel):
    id: str
    room_id: str
    piece_index: int
    current_x: float
    current_y: float
    target_x: float
    target_y: float
    is_placed: bool
    rotation: float
    last_moved_by: str | None = None
    updated_at: datetime

    model_config = {"from_attributes": True}


class PieceMoveRequest(BaseModel):
    """Request body for PATCH /rooms/{room_id}/pieces/{piece_id}."""

    x: float = Field(allow_inf_nan=False)
    y: float = Field(allow_inf_nan=False)


class ProgressResponse(BaseModel):
    placed: int
    total: int
    progress: float
    completed: bool

    @classmethod
    def from_pieces(cls, pieces: Sequence[Piece]) -> ProgressResponse:
        return cls(
            placed=sum(1 for piece in pieces if piece.is_placed),
            total=len(pieces),
            progress=progress(pieces),
            completed=is_complete(pieces),
        )


class PiecesResponse(BaseModel):
    items: list[PieceResponse]
    progress: ProgressResponse


# =============================================================================
# Membership Schemas
# =============================================================================


class MemberResponse(BaseModel):
    room_id: str
    user_id: str
    email: str | None = None
    is_active: bool
    joined_at: datetime

    model_config = {"from_attributes": True}


class StatusResponse(BaseModel):
    status: Literal["ok"] = "ok"
