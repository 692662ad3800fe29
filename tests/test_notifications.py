"""Tests for the change notification buses."""

import asyncio

import pytest

from conftest import MockSioServer, wait_for
from jigsync.notifications import ChangeNotice, LocalBus, SocketIOBus, room_channel


def test_room_channel():
    assert room_channel("abc") == "room:abc"


def test_subscribe_rejects_unknown_table():
    with pytest.raises(ValueError):
        LocalBus().subscribe("users", "r1", lambda notice: None)


@pytest.mark.asyncio
async def test_publish_reaches_only_matching_subscribers():
    bus = LocalBus()
    pieces_r1, pieces_r2, rooms_r1 = [], [], []
    bus.subscribe("piece", "r1", pieces_r1.append)
    bus.subscribe("piece", "r2", pieces_r2.append)
    bus.subscribe("room", "r1", rooms_r1.append)

    await bus.publish(ChangeNotice(table="piece", room_id="r1"))

    assert pieces_r1 == [ChangeNotice(table="piece", room_id="r1")]
    assert pieces_r2 == []
    assert rooms_r1 == []


@pytest.mark.asyncio
async def test_publish_awaits_async_callbacks():
    bus = LocalBus()
    seen = []

    async def callback(notice):
        await asyncio.sleep(0)
        seen.append(notice.table)

    bus.subscribe("roommembership", "r1", callback)
    await bus.publish(ChangeNotice(table="roommembership", room_id="r1"))

    assert seen == ["roommembership"]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others(caplog):
    bus = LocalBus()
    seen = []

    def broken(notice):
        raise RuntimeError("boom")

    bus.subscribe("piece", "r1", broken)
    bus.subscribe("piece", "r1", seen.append)

    await bus.publish(ChangeNotice(table="piece", room_id="r1"))

    assert len(seen) == 1
    assert "Subscriber failed" in caplog.text


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    bus = LocalBus()
    seen = []
    subscription = bus.subscribe("piece", "r1", seen.append)

    subscription.unsubscribe()
    subscription.unsubscribe()
    await bus.publish(ChangeNotice(table="piece", room_id="r1"))

    assert seen == []
    assert bus.subscriber_count("piece", "r1") == 0


@pytest.mark.asyncio
async def test_socketio_bus_emits_payload_free_invalidate():
    sio = MockSioServer()
    bus = SocketIOBus(sio)
    local = []
    bus.subscribe("piece", "r1", local.append)

    await bus.publish(ChangeNotice(table="piece", room_id="r1"))
    await bus.publish(ChangeNotice(table="roommembership", room_id="r1"))
    await bus.publish(ChangeNotice(table="room", room_id="r1"))

    assert len(local) == 1
    assert sio.emitted == [
        {"event": "pieces_invalidate", "data": {"room_id": "r1"}, "room": "room:r1"},
        {"event": "members_invalidate", "data": {"room_id": "r1"}, "room": "room:r1"},
        {"event": "room_invalidate", "data": {"room_id": "r1"}, "room": "room:r1"},
    ]


@pytest.mark.asyncio
async def test_wait_for_resolves_on_next_notice():
    bus = LocalBus()

    waiter = asyncio.create_task(wait_for(bus, "piece", "r1"))
    await asyncio.sleep(0)
    await bus.publish(ChangeNotice(table="piece", room_id="r1"))

    assert await waiter == ChangeNotice(table="piece", room_id="r1")
    assert bus.subscriber_count("piece", "r1") == 0


@pytest.mark.asyncio
async def test_wait_for_times_out():
    with pytest.raises(asyncio.TimeoutError):
        await wait_for(LocalBus(), "piece", "r1", timeout=0.01)
