"""FastAPI dependencies for the store, lifecycle manager and authentication.

All resources are accessed from request.app.state, set up in
``jigsync.database.lifespan``.
"""

from typing import Annotated

from fastapi import Depends, Header, Request

from jigsync.auth import AuthProvider, CurrentUser, bearer_token
from jigsync.exceptions import NotAuthenticated
from jigsync.lifecycle import RoomLifecycleManager
from jigsync.store import SessionStateStore


def get_store(request: Request) -> SessionStateStore:
    """Get the session state store from app.state."""
    return request.app.state.store


StoreDep = Annotated[SessionStateStore, Depends(get_store)]


def get_lifecycle(request: Request) -> RoomLifecycleManager:
    """Get the room lifecycle manager from app.state."""
    return request.app.state.lifecycle


LifecycleDep = Annotated[RoomLifecycleManager, Depends(get_lifecycle)]


def get_auth_provider(request: Request) -> AuthProvider:
    return request.app.state.auth


def current_optional_user(
    provider: Annotated[AuthProvider, Depends(get_auth_provider)],
    authorization: Annotated[str | None, Header()] = None,
) -> CurrentUser | None:
    """Resolve the caller, or None when no valid token was sent."""
    return provider.current_user(bearer_token(authorization))


def current_user(
    user: Annotated[CurrentUser | None, Depends(current_optional_user)],
) -> CurrentUser:
    """Resolve the caller or raise ``NotAuthenticated``."""
    if user is None:
        raise NotAuthenticated("Missing or invalid bearer token")
    return user


OptionalUserDep = Annotated[CurrentUser | None, Depends(current_optional_user)]
CurrentUserDep = Annotated[CurrentUser, Depends(current_user)]
