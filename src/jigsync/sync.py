"""Per-user view of a room that follows the store.

``SyncClient`` joins a room, loads room, pieces and active members, and
subscribes to the room's change notices. Every notice triggers a full
re-fetch of the affected collection rather than a delta update. If a
re-fetch fails the last known-good state stays in place.
"""

import dataclasses
import logging
import typing as t
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError

from jigsync import puzzle
from jigsync.auth import CurrentUser
from jigsync.exceptions import JigsyncError, RoomNotFound
from jigsync.models import Piece, Room, RoomMembership
from jigsync.notifications import ChangeNotice, LocalBus, Subscription
from jigsync.store import SessionStateStore

log = logging.getLogger(__name__)


@dataclasses.dataclass
class SyncClient:
    """Synchronized view of one room for one user.

    Use as an async context manager::

        async with SyncClient(store, bus, room_id, user) as client:
            await client.drag(piece_id, [(60, 60), (120, 55), (150, 50)])
            print(client.progress)
    """

    store: SessionStateStore
    bus: LocalBus
    room_id: str
    user: CurrentUser
    on_change: t.Callable[["SyncClient"], None] | None = None

    room: Room | None = dataclasses.field(default=None, init=False)
    pieces: list[Piece] = dataclasses.field(default_factory=list, init=False)
    members: list[RoomMembership] = dataclasses.field(default_factory=list, init=False)
    progress: float = dataclasses.field(default=0.0, init=False)
    closed_remotely: bool = dataclasses.field(default=False, init=False)
    _subscriptions: list[Subscription] = dataclasses.field(default_factory=list, init=False)

    @property
    def is_open(self) -> bool:
        return bool(self._subscriptions)

    @property
    def is_complete(self) -> bool:
        return puzzle.is_complete(self.pieces)

    async def open(self) -> "SyncClient":
        """Join the room, load the initial state and start listening.

        Errors from the initial load propagate; there is no earlier state
        to fall back to.
        """
        await self.store.join_room(self.room_id, self.user.id, self.user.email)
        self.room = await self.store.get_room(self.room_id)
        self._set_pieces(await self.store.list_pieces(self.room_id))
        self.members = await self.store.list_active_members(self.room_id)

        self._subscriptions = [
            self.bus.subscribe("piece", self.room_id, self._on_pieces_changed),
            self.bus.subscribe("roommembership", self.room_id, self._on_members_changed),
            self.bus.subscribe("room", self.room_id, self._on_room_changed),
        ]
        log.debug("User %s opened room %s", self.user.id, self.room_id)
        return self

    async def close(self) -> None:
        """Stop listening. Membership is left as it is."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    async def __aenter__(self) -> "SyncClient":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # Local gestures
    # =========================================================================

    async def drag(self, piece_id: str, path: Iterable[tuple[float, float]]) -> Piece:
        """Move a piece through every point of a drag gesture.

        Each intermediate point is written so other users see the motion,
        not only the drop.

        Raises
        ------
        ValueError
            If ``path`` is empty.
        """
        piece = None
        for x, y in path:
            piece = await self.store.move_piece(piece_id, self.user.id, x, y)
        if piece is None:
            raise ValueError("A drag needs at least one point")
        return piece

    async def drop(self, piece_id: str, x: float, y: float) -> Piece:
        return await self.store.move_piece(piece_id, self.user.id, x, y)

    async def reset(self) -> list[Piece]:
        return await self.store.reset_room(self.room_id, self.user.id)

    # =========================================================================
    # Notification handlers
    # =========================================================================

    def _set_pieces(self, pieces: list[Piece]) -> None:
        self.pieces = pieces
        self.progress = puzzle.progress(pieces)

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    async def _on_pieces_changed(self, notice: ChangeNotice) -> None:
        try:
            pieces = await self.store.list_pieces(notice.room_id)
        except (JigsyncError, SQLAlchemyError) as e:
            log.warning("Keeping stale pieces for room %s: %s", notice.room_id, e)
            return
        self._set_pieces(pieces)
        self._changed()

    async def _on_members_changed(self, notice: ChangeNotice) -> None:
        try:
            members = await self.store.list_active_members(notice.room_id)
        except (JigsyncError, SQLAlchemyError) as e:
            log.warning("Keeping stale members for room %s: %s", notice.room_id, e)
            return
        self.members = members
        self._changed()

    async def _on_room_changed(self, notice: ChangeNotice) -> None:
        try:
            self.room = await self.store.get_room(notice.room_id)
        except RoomNotFound:
            log.info("Room %s was deleted", notice.room_id)
            self.closed_remotely = True
            await self.close()
        except (JigsyncError, SQLAlchemyError) as e:
            log.warning("Keeping stale room for %s: %s", notice.room_id, e)
            return
        self._changed()
