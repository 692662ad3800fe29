"""Async database setup and application lifespan management.

Uses app.state pattern to store resources:
- settings: Settings instance
- engine / session_maker: async SQLModel database access
- bus: SocketIOBus fanning change notices out to subscribers and browsers
- store: SessionStateStore
- object_store: ObjectStore for uploaded images
- auth: AuthProvider
- lifecycle: RoomLifecycleManager
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

import jigsync.models  # noqa: F401 - registers Room, Piece, RoomMembership
from jigsync.auth import JWTAuthProvider
from jigsync.config import Settings
from jigsync.lifecycle import RoomLifecycleManager
from jigsync.notifications import SocketIOBus
from jigsync.object_store import FilesystemObjectStore
from jigsync.store import SessionStateStore

log = logging.getLogger(__name__)


def _is_sqlite(database_url: str) -> bool:
    """Check if database is SQLite (sync or async)."""
    return database_url.startswith(("sqlite://", "sqlite+aiosqlite://"))


def _is_sqlite_memory(database_url: str) -> bool:
    return _is_sqlite(database_url) and database_url.split("://", 1)[1] in ("", "/:memory:")


def create_engine_for_url(database_url: str) -> AsyncEngine:
    """Create an async engine; in-memory SQLite shares one connection."""
    if _is_sqlite_memory(database_url):
        return create_async_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(database_url)


def _apply_sqlite_locking(app: FastAPI) -> None:
    """Apply locking wrapper to session_maker for SQLite databases.

    Wraps the existing app.state.session_maker with an asyncio.Lock so that
    concurrent writes are serialized.
    """
    base_maker = app.state.session_maker
    db_lock = asyncio.Lock()

    @contextlib.asynccontextmanager
    async def locked_session_maker():
        async with db_lock, base_maker() as session:
            yield session

    app.state.session_maker = locked_session_maker


async def init_database(engine: AsyncEngine) -> None:
    """Create all tables.

    Idempotent - safe to call multiple times (CREATE TABLE IF NOT EXISTS).
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """FastAPI lifespan context manager for all application resources."""
    settings: Settings = app.state.settings
    settings.log_summary()

    engine = create_engine_for_url(settings.database_url)
    app.state.engine = engine
    app.state.session_maker = async_sessionmaker(
        engine, class_=SQLModelAsyncSession, expire_on_commit=False
    )

    try:
        if settings.init_db_on_startup:
            await init_database(engine)

        if _is_sqlite(settings.database_url):
            _apply_sqlite_locking(app)

        app.state.bus = SocketIOBus(app.state.sio)
        app.state.store = SessionStateStore(
            app.state.session_maker,
            app.state.bus,
            tolerance=settings.placement_tolerance,
        )
        if getattr(app.state, "object_store", None) is None:
            app.state.object_store = FilesystemObjectStore(
                settings.media_path, settings.media_url
            )
        app.state.auth = JWTAuthProvider(
            settings.auth_secret, settings.token_ttl_seconds
        )
        app.state.lifecycle = RoomLifecycleManager(
            app.state.store,
            app.state.object_store,
            max_upload_bytes=settings.max_upload_bytes,
        )

        yield
    finally:
        await engine.dispose()
