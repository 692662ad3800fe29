"""JWT authentication for jigsync.

Identity is owned by an external provider. The server only verifies
HS256 bearer tokens signed with the shared ``JIGSYNC_AUTH_SECRET``:
``sub`` carries the user id and ``email`` the address shown to other
room members.
"""

import logging
import time
import typing as t
import uuid
from abc import ABC, abstractmethod

import jwt
from pydantic import BaseModel

log = logging.getLogger(__name__)

ALGORITHM = "HS256"


class CurrentUser(BaseModel):
    """Caller identity as seen by the core."""

    id: str
    email: str | None = None


class AuthProvider(ABC):
    """Resolves a bearer token to a caller identity."""

    @abstractmethod
    def current_user(self, token: str | None) -> CurrentUser | None:
        """Return the caller, or None if the token is missing or invalid."""


class JWTAuthProvider(AuthProvider):
    """Verifies HS256 tokens with a shared secret.

    Parameters
    ----------
    secret : str
        Shared signing secret.
    ttl_seconds : int
        Lifetime of tokens created by ``issue_token``.
    """

    def __init__(self, secret: str, ttl_seconds: int = 7 * 24 * 3600):
        self.secret = secret
        self.ttl_seconds = ttl_seconds

    def issue_token(self, user_id: str, email: str | None = None) -> str:
        """Create a signed token for ``user_id``.

        Used by the CLI and the tests; production tokens come from the
        identity provider.
        """
        now = int(time.time())
        payload: dict[str, t.Any] = {
            "sub": user_id,
            "iat": now,
            "exp": now + self.ttl_seconds,
            "jti": str(uuid.uuid4()),
        }
        if email is not None:
            payload["email"] = email
        token = jwt.encode(payload, self.secret, algorithm=ALGORITHM)
        log.info("Issued token for user %s", user_id)
        return token

    def current_user(self, token: str | None) -> CurrentUser | None:
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            log.debug("Rejected expired token")
            return None
        except jwt.InvalidTokenError as e:
            log.debug("Rejected invalid token: %s", e)
            return None
        return CurrentUser(id=str(payload["sub"]), email=payload.get("email"))


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None
