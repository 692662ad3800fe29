"""Tests for the piece and progress REST endpoints."""

import asyncio

import pytest

from conftest import auth_header, upload_room


@pytest.fixture
def room_factory(http_client, tokens):
    async def _create(difficulty="easy"):
        response = await upload_room(http_client, tokens["alice"], difficulty=difficulty)
        assert response.status_code == 201
        return response.json()

    return _create


async def _pieces(http_client, room_id):
    response = await http_client.get(f"/v1/rooms/{room_id}/pieces")
    assert response.status_code == 200
    return response.json()["items"]


@pytest.mark.asyncio
async def test_list_pieces_ordered(http_client, room_factory):
    room = await room_factory("easy")

    response = await http_client.get(f"/v1/rooms/{room['id']}/pieces")

    body = response.json()
    assert [p["piece_index"] for p in body["items"]] == list(range(12))
    assert body["progress"] == {"placed": 0, "total": 12, "progress": 0.0, "completed": False}


@pytest.mark.asyncio
async def test_move_piece_onto_target(http_client, tokens, room_factory):
    room = await room_factory("easy")
    piece = (await _pieces(http_client, room["id"]))[5]

    response = await http_client.patch(
        f"/v1/rooms/{room['id']}/pieces/{piece['id']}",
        json={"x": 150.0, "y": 150.0},
        headers=auth_header(tokens["bob"]),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["is_placed"] is True
    assert body["last_moved_by"] == "user-bob"

    progress = (await http_client.get(f"/v1/rooms/{room['id']}/progress")).json()
    assert progress["placed"] == 1
    assert progress["progress"] == pytest.approx(100.0 / 12)


@pytest.mark.asyncio
async def test_move_piece_requires_auth(http_client, room_factory):
    room = await room_factory()
    piece = (await _pieces(http_client, room["id"]))[0]

    response = await http_client.patch(
        f"/v1/rooms/{room['id']}/pieces/{piece['id']}", json={"x": 1.0, "y": 2.0}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_move_piece_in_other_room(http_client, tokens, room_factory):
    room_a = await room_factory()
    room_b = await room_factory()
    piece = (await _pieces(http_client, room_a["id"]))[0]

    response = await http_client.patch(
        f"/v1/rooms/{room_b['id']}/pieces/{piece['id']}",
        json={"x": 1.0, "y": 2.0},
        headers=auth_header(tokens["alice"]),
    )

    assert response.status_code == 404
    assert response.json()["type"] == "/v1/problems/piece-not-found"


@pytest.mark.asyncio
async def test_move_piece_invalid_body(http_client, tokens, room_factory):
    room = await room_factory()
    piece = (await _pieces(http_client, room["id"]))[0]

    response = await http_client.patch(
        f"/v1/rooms/{room['id']}/pieces/{piece['id']}",
        json={"x": "left"},
        headers=auth_header(tokens["alice"]),
    )

    assert response.status_code == 422
    assert response.headers["content-type"] == "application/problem+json"
    assert response.json()["kind"] == "validation"


@pytest.mark.asyncio
async def test_concurrent_moves_do_not_merge(http_client, tokens, room_factory):
    """Two simultaneous moves leave exactly one of them in place."""
    room = await room_factory()
    piece = (await _pieces(http_client, room["id"]))[0]
    url = f"/v1/rooms/{room['id']}/pieces/{piece['id']}"

    await asyncio.gather(
        http_client.patch(url, json={"x": 50.0, "y": 50.0}, headers=auth_header(tokens["alice"])),
        http_client.patch(url, json={"x": 400.0, "y": 300.0}, headers=auth_header(tokens["bob"])),
    )

    stored = next(p for p in await _pieces(http_client, room["id"]) if p["id"] == piece["id"])
    outcome = (stored["current_x"], stored["current_y"], stored["last_moved_by"], stored["is_placed"])
    assert outcome in {
        (50.0, 50.0, "user-alice", True),
        (400.0, 300.0, "user-bob", False),
    }


@pytest.mark.asyncio
async def test_progress_unknown_room(http_client):
    response = await http_client.get("/v1/rooms/missing/progress")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_move_emits_pieces_invalidate(app, http_client, tokens, room_factory):
    room = await room_factory()
    piece = (await _pieces(http_client, room["id"]))[0]
    emitted = app.state.bus.sio.emitted
    emitted.clear()

    await http_client.patch(
        f"/v1/rooms/{room['id']}/pieces/{piece['id']}",
        json={"x": 10.0, "y": 10.0},
        headers=auth_header(tokens["alice"]),
    )

    assert emitted == [
        {
            "event": "pieces_invalidate",
            "data": {"room_id": room["id"]},
            "room": f"room:{room['id']}",
        }
    ]
