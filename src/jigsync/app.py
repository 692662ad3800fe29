import socketio
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.staticfiles import StaticFiles

from jigsync.config import Settings, get_settings
from jigsync.database import lifespan
from jigsync.exceptions import (
    JigsyncError,
    UnprocessableContent,
    problem_exception_handler,
    problem_json,
)
from jigsync.object_store import ObjectStore
from jigsync.routes.pieces import router as pieces_router
from jigsync.routes.rooms import router as rooms_router
from jigsync.routes.utility import router as utility_router
from jigsync.socketio import create_sio, register_handlers


async def _validation_exception_handler(
    _request: Request, exc: Exception
) -> JSONResponse:
    """Convert FastAPI validation errors to RFC 9457 problem detail."""
    assert isinstance(exc, RequestValidationError)
    detail = "; ".join(
        f"{'.'.join(str(x) for x in e['loc'])}: {e['msg']}" for e in exc.errors()
    )
    return problem_json(UnprocessableContent(detail).to_problem())


def create_app(
    settings: Settings | None = None, object_store: ObjectStore | None = None
) -> FastAPI:
    """Build the FastAPI app with its Socket.IO server.

    Parameters
    ----------
    settings : Settings | None
        Defaults to ``get_settings()``.
    object_store : ObjectStore | None
        Image store; defaults to a filesystem store under
        ``settings.media_path`` served at ``settings.media_url``.
    """
    settings = settings or get_settings()
    app = FastAPI(title="jigsync API", lifespan=lifespan)
    app.state.settings = settings
    app.state.object_store = object_store

    app.add_exception_handler(JigsyncError, problem_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)

    app.include_router(rooms_router)
    app.include_router(pieces_router)
    app.include_router(utility_router)

    # Uploaded images, when they are served by this process
    if object_store is None and settings.media_url.startswith("/"):
        settings.media_path.mkdir(parents=True, exist_ok=True)
        app.mount(
            settings.media_url,
            StaticFiles(directory=settings.media_path),
            name="media",
        )

    sio = create_sio(settings)
    register_handlers(sio, app)
    app.state.sio = sio
    return app


def create_socket_app(settings: Settings | None = None) -> socketio.ASGIApp:
    """ASGI entry point serving both Socket.IO and the REST API."""
    app = create_app(settings)
    return socketio.ASGIApp(app.state.sio, other_asgi_app=app)
