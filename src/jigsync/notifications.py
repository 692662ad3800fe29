"""Room-scoped change notifications.

A notice only says "table T of room R changed". It never carries row
data: subscribers re-query the store instead of applying deltas, which
keeps them correct when notices arrive late, twice or out of order.
"""

import dataclasses
import inspect
import logging
import typing as t
from collections import defaultdict

from jigsync.socket_events import MembersInvalidate, PiecesInvalidate, RoomInvalidate

if t.TYPE_CHECKING:
    import socketio

log = logging.getLogger(__name__)

Table = t.Literal["room", "piece", "roommembership"]
TABLES: tuple[Table, ...] = ("room", "piece", "roommembership")


@dataclasses.dataclass(frozen=True)
class ChangeNotice:
    table: Table
    room_id: str


Callback = t.Callable[[ChangeNotice], t.Awaitable[None] | None]


def room_channel(room_id: str) -> str:
    """Get Socket.IO room channel name."""
    return f"room:{room_id}"


@dataclasses.dataclass
class Subscription:
    """Handle returned by ``subscribe``; call ``unsubscribe`` to stop delivery."""

    bus: "LocalBus"
    key: tuple[Table, str]
    callback: Callback
    active: bool = True

    def unsubscribe(self) -> None:
        if self.active:
            self.bus._remove(self)
            self.active = False


class NotificationBus(t.Protocol):
    async def publish(self, notice: ChangeNotice) -> None: ...

    def subscribe(self, table: Table, room_id: str, callback: Callback) -> Subscription: ...


class LocalBus:
    """In-process fan-out to every subscriber of ``(table, room_id)``.

    Callbacks run in publish order. A failing callback is logged and does
    not stop delivery to the remaining subscribers.
    """

    def __init__(self) -> None:
        self._subscribers: dict[tuple[Table, str], list[Subscription]] = defaultdict(list)

    def subscribe(self, table: Table, room_id: str, callback: Callback) -> Subscription:
        if table not in TABLES:
            raise ValueError(f"Unknown table '{table}'")
        subscription = Subscription(bus=self, key=(table, room_id), callback=callback)
        self._subscribers[subscription.key].append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.key, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscribers.pop(subscription.key, None)

    def subscriber_count(self, table: Table, room_id: str) -> int:
        return len(self._subscribers.get((table, room_id), []))

    async def publish(self, notice: ChangeNotice) -> None:
        log.debug("Publishing %s change for room %s", notice.table, notice.room_id)
        for subscription in list(self._subscribers.get((notice.table, notice.room_id), [])):
            try:
                result = subscription.callback(notice)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception(
                    "Subscriber failed on %s change for room %s",
                    notice.table,
                    notice.room_id,
                )


class SocketIOBus(LocalBus):
    """LocalBus that also tells connected browsers to re-fetch.

    With an ``AsyncRedisManager`` attached to the server the emit reaches
    clients connected to every server process.
    """

    EVENTS = {
        "room": RoomInvalidate,
        "piece": PiecesInvalidate,
        "roommembership": MembersInvalidate,
    }

    def __init__(self, sio: "socketio.AsyncServer") -> None:
        super().__init__()
        self.sio = sio

    async def publish(self, notice: ChangeNotice) -> None:
        await super().publish(notice)
        event = self.EVENTS[notice.table](room_id=notice.room_id)
        await self.sio.emit(
            event.event_name(),
            event.model_dump(),
            room=room_channel(notice.room_id),
        )
