import asyncio
import random
import typing as t
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from jigsync.app import create_app
from jigsync.auth import CurrentUser, JWTAuthProvider
from jigsync.config import Settings
from jigsync.database import create_engine_for_url, init_database, lifespan
from jigsync.lifecycle import RoomLifecycleManager
from jigsync.notifications import ChangeNotice, LocalBus, Table
from jigsync.object_store import InMemoryObjectStore
from jigsync.puzzle import generate_config
from jigsync.store import SessionStateStore

TEST_SECRET = "test-secret"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def wait_for(
    bus: LocalBus, table: Table, room_id: str, timeout: float = 1.0
) -> ChangeNotice:
    """Wait for the next notice on ``(table, room_id)``."""
    loop = asyncio.get_running_loop()
    future: asyncio.Future[ChangeNotice] = loop.create_future()

    def _resolve(notice: ChangeNotice) -> None:
        if not future.done():
            future.set_result(notice)

    subscription = bus.subscribe(table, room_id, _resolve)
    try:
        return await asyncio.wait_for(future, timeout)
    finally:
        subscription.unsubscribe()


class MockSioServer:
    """Records emits instead of sending them."""

    def __init__(self) -> None:
        self.emitted: list[dict[str, t.Any]] = []

    async def emit(self, event: str, data: t.Any = None, room: str | None = None, **kwargs):
        self.emitted.append({"event": event, "data": data, "room": room})


# =============================================================================
# Core fixtures (no HTTP)
# =============================================================================


@pytest_asyncio.fixture(name="session_maker")
async def session_maker_fixture() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Fresh in-memory database for each test."""
    engine = create_engine_for_url("sqlite+aiosqlite://")
    try:
        await init_database(engine)
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture(name="bus")
def bus_fixture() -> LocalBus:
    return LocalBus()


@pytest.fixture(name="store")
def store_fixture(session_maker, bus: LocalBus) -> SessionStateStore:
    return SessionStateStore(session_maker, bus, rng=random.Random(1234))


@pytest.fixture(name="object_store")
def object_store_fixture() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture(name="lifecycle")
def lifecycle_fixture(
    store: SessionStateStore, object_store: InMemoryObjectStore
) -> RoomLifecycleManager:
    return RoomLifecycleManager(store, object_store)


@pytest.fixture
def alice() -> CurrentUser:
    return CurrentUser(id="user-alice", email="alice@example.com")


@pytest.fixture
def bob() -> CurrentUser:
    return CurrentUser(id="user-bob", email="bob@example.com")


@pytest.fixture
def make_room(store: SessionStateStore, alice: CurrentUser):
    """Factory creating a room directly in the store."""

    async def _make_room(difficulty: str = "easy", owner: CurrentUser | None = None):
        return await store.create_room(
            name="Test Room",
            image_url="memory://objects/test.png",
            config=generate_config(difficulty),
            owner=(owner or alice).id,
        )

    return _make_room


# =============================================================================
# HTTP fixtures
# =============================================================================


@pytest.fixture(name="settings")
def settings_fixture(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        media_path=tmp_path / "media",
        auth_secret=TEST_SECRET,
        redis_url=None,
    )


@pytest.fixture(name="tokens")
def tokens_fixture(alice: CurrentUser, bob: CurrentUser) -> dict[str, str]:
    provider = JWTAuthProvider(TEST_SECRET)
    return {
        "alice": provider.issue_token(alice.id, alice.email),
        "bob": provider.issue_token(bob.id, bob.email),
    }


@pytest_asyncio.fixture(name="app")
async def app_fixture(settings: Settings, object_store: InMemoryObjectStore):
    app = create_app(settings, object_store=object_store)
    async with lifespan(app):
        yield app


@pytest_asyncio.fixture(name="http_client")
async def http_client_fixture(app) -> AsyncIterator[AsyncClient]:
    app.state.bus.sio = MockSioServer()
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client


async def upload_room(
    client: AsyncClient,
    token: str | None,
    difficulty: str | None = "easy",
    name: str | None = "Sunset",
    payload: bytes = PNG_BYTES,
    content_type: str = "image/png",
):
    """POST a multipart upload to the room entry point."""
    data = {}
    if name is not None:
        data["name"] = name
    if difficulty is not None:
        data["difficulty"] = difficulty
    return await client.post(
        "/v1/rooms",
        data=data,
        files={"file": ("sunset.png", payload, content_type)},
        headers=auth_header(token) if token else {},
    )
