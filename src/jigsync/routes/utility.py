"""Utility endpoints."""

from fastapi import APIRouter

from jigsync import __version__
from jigsync.schemas import StatusResponse

router = APIRouter(prefix="/v1", tags=["utility"])


@router.get("/health")
async def health() -> StatusResponse:
    return StatusResponse()


@router.get("/version")
async def version() -> dict[str, str]:
    return {"version": __version__}
