"""Room REST API endpoints.

Handles the image upload entry point that seeds a room, room listing,
deletion, reset and membership.
"""

from typing import Annotated

from fastapi import APIRouter, File, Form, Response, UploadFile, status

from jigsync.dependencies import CurrentUserDep, LifecycleDep, OptionalUserDep, StoreDep
from jigsync.exceptions import (
    Forbidden,
    InvalidPayload,
    NotAuthenticated,
    PersistenceFailure,
    RoomNotFound,
    StorageFailure,
    problem_responses,
)
from jigsync.schemas import (
    CollectionResponse,
    MemberResponse,
    PieceResponse,
    PiecesResponse,
    ProgressResponse,
    RoomResponse,
    RoomSummary,
)

router = APIRouter(prefix="/v1/rooms", tags=["rooms"])


# =============================================================================
# Room CRUD
# =============================================================================


@router.post(
    "",
    response_model=RoomSummary,
    status_code=status.HTTP_201_CREATED,
    responses=problem_responses(
        NotAuthenticated, InvalidPayload, StorageFailure, PersistenceFailure
    ),
)
async def create_room(
    lifecycle: LifecycleDep,
    current_user: OptionalUserDep,
    file: Annotated[UploadFile | None, File()] = None,
    name: Annotated[str | None, Form()] = None,
    difficulty: Annotated[str | None, Form()] = None,
) -> RoomSummary:
    """Upload an image and create a puzzle room from it.

    Unknown or missing ``difficulty`` values create an easy room.
    Authentication is checked before the form is looked at.
    """
    if current_user is None:
        raise NotAuthenticated("Unauthorized")
    payload = None
    if file is not None:
        # One byte past the limit is enough for the size check to reject it
        limit = lifecycle.max_upload_bytes
        payload = await file.read() if limit is None else await file.read(limit + 1)
    room = await lifecycle.create_room(
        user=current_user,
        name=name,
        payload=payload,
        content_type=file.content_type if file is not None else None,
        difficulty=difficulty,
        filename=file.filename if file is not None else None,
    )
    return RoomSummary.from_room(room)


@router.get("")
async def list_rooms(store: StoreDep) -> CollectionResponse[RoomSummary]:
    """List all rooms, newest first."""
    rooms = await store.list_rooms()
    return CollectionResponse(items=[RoomSummary.from_room(room) for room in rooms])


@router.get("/{room_id}", responses=problem_responses(RoomNotFound))
async def get_room(store: StoreDep, room_id: str) -> RoomResponse:
    room = await store.get_room(room_id)
    return RoomResponse.from_room(room)


@router.delete(
    "/{room_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=problem_responses(NotAuthenticated, Forbidden, RoomNotFound),
)
async def delete_room(
    lifecycle: LifecycleDep, current_user: CurrentUserDep, room_id: str
) -> Response:
    """Delete a room with all its pieces and memberships. Owner only."""
    await lifecycle.delete_room(current_user, room_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{room_id}/reset",
    responses=problem_responses(NotAuthenticated, RoomNotFound),
)
async def reset_room(
    store: StoreDep, current_user: CurrentUserDep, room_id: str
) -> PiecesResponse:
    """Scatter all pieces again.

    Clients are expected to confirm with the user before calling this.
    """
    pieces = await store.reset_room(room_id, current_user.id)
    return PiecesResponse(
        items=[PieceResponse.model_validate(piece) for piece in pieces],
        progress=ProgressResponse.from_pieces(pieces),
    )


# =============================================================================
# Membership
# =============================================================================


@router.post(
    "/{room_id}/members",
    responses=problem_responses(NotAuthenticated, RoomNotFound),
)
async def join_room(
    store: StoreDep, current_user: CurrentUserDep, room_id: str
) -> MemberResponse:
    """Join a room, or mark an earlier membership active again."""
    membership = await store.join_room(room_id, current_user.id, current_user.email)
    return MemberResponse.model_validate(membership)


@router.delete(
    "/{room_id}/members/me",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=problem_responses(NotAuthenticated),
)
async def leave_room(
    store: StoreDep, current_user: CurrentUserDep, room_id: str
) -> Response:
    await store.leave_room(room_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{room_id}/members", responses=problem_responses(RoomNotFound))
async def list_members(store: StoreDep, room_id: str) -> CollectionResponse[MemberResponse]:
    """List active members of a room."""
    members = await store.list_active_members(room_id)
    return CollectionResponse(
        items=[MemberResponse.model_validate(member) for member in members]
    )
