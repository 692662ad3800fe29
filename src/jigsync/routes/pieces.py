"""Piece REST API endpoints.

Moves are last-writer-wins: a PATCH overwrites whatever position was
stored before, even if another user moved the same piece in between.
"""

from fastapi import APIRouter

from jigsync.dependencies import CurrentUserDep, StoreDep
from jigsync.exceptions import (
    NotAuthenticated,
    PieceNotFound,
    RoomNotFound,
    problem_responses,
)
from jigsync.schemas import (
    PieceMoveRequest,
    PieceResponse,
    PiecesResponse,
    ProgressResponse,
)

router = APIRouter(prefix="/v1/rooms/{room_id}", tags=["pieces"])


@router.get("/pieces", responses=problem_responses(RoomNotFound))
async def list_pieces(store: StoreDep, room_id: str) -> PiecesResponse:
    """All pieces of a room ordered by index, with the room's progress."""
    pieces = await store.list_pieces(room_id)
    return PiecesResponse(
        items=[PieceResponse.model_validate(piece) for piece in pieces],
        progress=ProgressResponse.from_pieces(pieces),
    )


@router.patch(
    "/pieces/{piece_id}",
    responses=problem_responses(NotAuthenticated, PieceNotFound),
)
async def move_piece(
    store: StoreDep,
    current_user: CurrentUserDep,
    room_id: str,
    piece_id: str,
    request: PieceMoveRequest,
) -> PieceResponse:
    """Move a piece; placement is recomputed from the new position."""
    piece = await store.get_piece(piece_id)
    if piece.room_id != room_id:
        raise PieceNotFound(f"Piece {piece_id} not found in room {room_id}")
    piece = await store.move_piece(piece_id, current_user.id, request.x, request.y)
    return PieceResponse.model_validate(piece)


@router.get("/progress", responses=problem_responses(RoomNotFound))
async def get_progress(store: StoreDep, room_id: str) -> ProgressResponse:
    pieces = await store.list_pieces(room_id)
    return ProgressResponse.from_pieces(pieces)
