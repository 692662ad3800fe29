"""Authoritative piece state of every room.

All writes to rooms, pieces and memberships go through
``SessionStateStore``. Each mutation commits first and then publishes a
payload-free ``ChangeNotice`` so subscribers can re-fetch.

Concurrent moves of the same piece are not merged: the write committed
last overwrites position, placement and actor of the earlier one. There
are no locks or version checks on pieces.
"""

import contextlib
import dataclasses
import logging
import random
from collections.abc import AsyncIterator, Callable

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from jigsync.exceptions import Forbidden, PersistenceFailure, PieceNotFound, RoomNotFound
from jigsync.models import Piece, Room, RoomMembership, utcnow
from jigsync.notifications import ChangeNotice, NotificationBus, Table
from jigsync.puzzle import (
    DEFAULT_TOLERANCE,
    PuzzleConfig,
    generate_pieces,
    is_placed,
    scatter_position,
)

log = logging.getLogger(__name__)

SessionMaker = Callable[[], contextlib.AbstractAsyncContextManager[AsyncSession]]


class SessionStateStore:
    """Room, piece and membership persistence with change notifications.

    Parameters
    ----------
    session_maker : SessionMaker
        Factory of async SQLModel sessions.
    bus : NotificationBus
        Receives one notice per committed mutation.
    tolerance : float
        Placement tolerance handed to ``puzzle.is_placed``.
    rng : random.Random | None
        Source of scatter positions for creation and reset.
    """

    def __init__(
        self,
        session_maker: SessionMaker,
        bus: NotificationBus,
        tolerance: float = DEFAULT_TOLERANCE,
        rng: random.Random | None = None,
    ):
        self.session_maker = session_maker
        self.bus = bus
        self.tolerance = tolerance
        self.rng = rng


    @contextlib.asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator[AsyncSession]:
        """Open a session whose database errors surface as ``PersistenceFailure``.

        The session is rolled back before the error propagates, so a failed
        mutation never leaves partial rows behind.
        """
        async with self.session_maker() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                log.error("Could not %s: %s", action, e)
                raise PersistenceFailure(f"Could not {action}: {e}") from e

    async def _notify(self, room_id: str, *tables: Table) -> None:
        for table in tables:
            await self.bus.publish(ChangeNotice(table=table, room_id=room_id))

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_room(self, room_id: str) -> Room:
        async with self._session(f"read room {room_id}") as session:
            room = await session.get(Room, room_id)
        if room is None:
            raise RoomNotFound(f"Room with id {room_id} not found")
        return room

    async def list_rooms(self) -> list[Room]:
        """All rooms, newest first."""
        async with self._session("list rooms") as session:
            result = await session.exec(select(Room).order_by(col(Room.created_at).desc()))
            return list(result.all())

    async def get_piece(self, piece_id: str) -> Piece:
        async with self._session(f"read piece {piece_id}") as session:
            piece = await session.get(Piece, piece_id)
        if piece is None:
            raise PieceNotFound(f"Piece with id {piece_id} not found")
        return piece

    async def list_pieces(self, room_id: str) -> list[Piece]:
        """Pieces of a room ordered by grid index."""
        async with self._session(f"list pieces of room {room_id}") as session:
            if await session.get(Room, room_id) is None:
                raise RoomNotFound(f"Room with id {room_id} not found")
            result = await session.exec(
                select(Piece)
                .where(Piece.room_id == room_id)
                .order_by(col(Piece.piece_index))
            )
            return list(result.all())

    async def list_active_members(self, room_id: str) -> list[RoomMembership]:
        async with self._session(f"list members of room {room_id}") as session:
            if await session.get(Room, room_id) is None:
                raise RoomNotFound(f"Room with id {room_id} not found")
            result = await session.exec(
                select(RoomMembership)
                .where(RoomMembership.room_id == room_id)
                .where(col(RoomMembership.is_active).is_(True))
                .order_by(col(RoomMembership.joined_at))
            )
            return list(result.all())

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_room(
        self,
        name: str,
        image_url: str,
        config: PuzzleConfig,
        owner: str,
        image_key: str | None = None,
    ) -> Room:
        """Insert a room together with its full piece set.

        Room and pieces are committed in a single transaction. If any
        insert fails nothing is kept, so a room is never visible without
        its pieces.

        Raises
        ------
        PersistenceFailure
            If the transaction could not be committed.
        """
        room = Room(
            name=name,
            image_url=image_url,
            image_key=image_key,
            rows=config.rows,
            cols=config.cols,
            difficulty=config.difficulty,
            created_by=owner,
        )
        pieces = [
            Piece(room_id=room.id, **dataclasses.asdict(seed))
            for seed in generate_pieces(config, self.rng)
        ]
        async with self._session(f"create room '{name}'") as session:
            session.add(room)
            session.add_all(pieces)
            await session.commit()
            await session.refresh(room)

        log.info(
            "Created room %s '%s' (%s, %d pieces) for %s",
            room.id,
            room.name,
            config.difficulty.value,
            len(pieces),
            owner,
        )
        await self._notify(room.id, "room", "piece")
        return room

    async def move_piece(self, piece_id: str, actor_id: str, x: float, y: float) -> Piece:
        """Move a piece and recompute its placement.

        The previous position is overwritten unconditionally.
        """
        async with self._session(f"move piece {piece_id}") as session:
            piece = await session.get(Piece, piece_id)
            if piece is None:
                raise PieceNotFound(f"Piece with id {piece_id} not found")
            piece.current_x = x
            piece.current_y = y
            piece.is_placed = is_placed(piece, self.tolerance)
            piece.last_moved_by = actor_id
            piece.updated_at = utcnow()
            session.add(piece)
            await session.commit()
            await session.refresh(piece)

        log.debug(
            "Piece %s moved to (%.1f, %.1f) by %s, placed=%s",
            piece_id,
            x,
            y,
            actor_id,
            piece.is_placed,
        )
        await self._notify(piece.room_id, "piece")
        return piece

    async def reset_room(self, room_id: str, actor_id: str) -> list[Piece]:
        """Scatter every piece of the room again in one commit.

        Confirmation is the caller's concern; this always resets.
        """
        async with self._session(f"reset room {room_id}") as session:
            if await session.get(Room, room_id) is None:
                raise RoomNotFound(f"Room with id {room_id} not found")
            result = await session.exec(
                select(Piece)
                .where(Piece.room_id == room_id)
                .order_by(col(Piece.piece_index))
            )
            pieces = list(result.all())
            now = utcnow()
            for piece in pieces:
                piece.current_x, piece.current_y = scatter_position(self.rng)
                piece.is_placed = False
                piece.rotation = 0.0
                piece.last_moved_by = actor_id
                piece.updated_at = now
                session.add(piece)
            await session.commit()
            for piece in pieces:
                await session.refresh(piece)

        log.info("Room %s reset by %s", room_id, actor_id)
        await self._notify(room_id, "piece")
        return pieces

    async def delete_room(self, room_id: str, actor_id: str) -> Room:
        """Delete a room with its pieces and memberships.

        Raises
        ------
        RoomNotFound
            If the room does not exist.
        Forbidden
            If ``actor_id`` is not the room owner.
        """
        async with self._session(f"delete room {room_id}") as session:
            room = await session.get(Room, room_id)
            if room is None:
                raise RoomNotFound(f"Room with id {room_id} not found")
            if room.created_by != actor_id:
                raise Forbidden("Only the room owner can delete this room")
            await session.execute(delete(Piece).where(col(Piece.room_id) == room_id))
            await session.execute(
                delete(RoomMembership).where(col(RoomMembership.room_id) == room_id)
            )
            await session.delete(room)
            await session.commit()

        log.info("Room %s deleted by %s", room_id, actor_id)
        await self._notify(room_id, "room", "piece", "roommembership")
        return room

    async def join_room(
        self, room_id: str, user_id: str, email: str | None = None
    ) -> RoomMembership:
        """Mark ``user_id`` as an active member, creating the row if needed.

        Concurrent joins of the same user are safe: whichever insert loses
        the race falls back to updating the row the winner created.
        """
        key = (room_id, user_id)
        async with self._session(f"join room {room_id}") as session:
            if await session.get(Room, room_id) is None:
                raise RoomNotFound(f"Room with id {room_id} not found")
            membership = await session.get(RoomMembership, key)
            if membership is None:
                session.add(RoomMembership(room_id=room_id, user_id=user_id, email=email))
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    membership = await session.get(
                        RoomMembership, key, populate_existing=True
                    )
                    if membership is None:
                        raise
            if membership is not None:
                membership.is_active = True
                if email is not None:
                    membership.email = email
                session.add(membership)
                await session.commit()
            membership = await session.get(RoomMembership, key, populate_existing=True)
            if membership is None:
                raise RoomNotFound(f"Room with id {room_id} not found")

        log.debug("User %s joined room %s", user_id, room_id)
        await self._notify(room_id, "roommembership")
        return membership

    async def leave_room(self, room_id: str, user_id: str) -> None:
        """Mark a membership inactive. Unknown memberships are ignored."""
        async with self._session(f"leave room {room_id}") as session:
            membership = await session.get(RoomMembership, (room_id, user_id))
            if membership is None or not membership.is_active:
                return
            membership.is_active = False
            session.add(membership)
            await session.commit()

        log.debug("User %s left room %s", user_id, room_id)
        await self._notify(room_id, "roommembership")
