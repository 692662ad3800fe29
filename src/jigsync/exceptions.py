"""jigsync exception classes and RFC 9457 problem responses.

Every error the core raises is a ``JigsyncError`` subclass. The ``kind``
attribute groups them into the five categories callers distinguish:
``unauthorized``, ``validation``, ``storage``, ``persistence`` and
``not_found``.
"""

import typing as t

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

Kind = t.Literal["unauthorized", "validation", "storage", "persistence", "not_found"]


class Problem(BaseModel):
    """RFC 9457 problem detail body."""

    type: str
    title: str
    status: int
    detail: str | None = None
    kind: Kind


class JigsyncError(Exception):
    """Base exception for all jigsync errors."""

    kind: t.ClassVar[Kind]
    status: t.ClassVar[int] = 500
    title: t.ClassVar[str] = "Internal error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.title
        super().__init__(self.detail)

    @classmethod
    def slug(cls) -> str:
        name = cls.__name__
        return "".join(f"-{c.lower()}" if c.isupper() else c for c in name).lstrip("-")

    def to_problem(self) -> Problem:
        return Problem(
            type=f"/v1/problems/{self.slug()}",
            title=self.title,
            status=self.status,
            detail=self.detail,
            kind=self.kind,
        )


class NotAuthenticated(JigsyncError):
    """Raised when no valid caller identity is present."""

    kind = "unauthorized"
    status = 401
    title = "Not authenticated"


class Forbidden(JigsyncError):
    """Raised when the caller is known but not allowed to act."""

    kind = "unauthorized"
    status = 403
    title = "Forbidden"


class InvalidPayload(JigsyncError):
    """Raised when a request is rejected before any side effect."""

    kind = "validation"
    status = 400
    title = "Invalid payload"


class UnprocessableContent(JigsyncError):
    kind = "validation"
    status = 422
    title = "Unprocessable content"


class StorageFailure(JigsyncError):
    """Raised when the object store could not accept an upload."""

    kind = "storage"
    status = 502
    title = "Storage failure"


class PersistenceFailure(JigsyncError):
    """Raised when a database write failed and was rolled back."""

    kind = "persistence"
    status = 500
    title = "Persistence failure"


class RoomNotFound(JigsyncError):
    kind = "not_found"
    status = 404
    title = "Room not found"


class PieceNotFound(JigsyncError):
    kind = "not_found"
    status = 404
    title = "Piece not found"


def problem_responses(*errors: type[JigsyncError]) -> dict[int | str, dict[str, t.Any]]:
    """Build the ``responses`` argument of a route from the errors it may raise."""
    responses: dict[int | str, dict[str, t.Any]] = {}
    for error in errors:
        entry = responses.setdefault(
            error.status, {"model": Problem, "description": error.title}
        )
        if entry["description"] != error.title:
            entry["description"] = f"{entry['description']} / {error.title}"
    return responses


def problem_json(problem: Problem) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )


async def problem_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Convert a ``JigsyncError`` into a problem+json response."""
    assert isinstance(exc, JigsyncError)
    return problem_json(exc.to_problem())
