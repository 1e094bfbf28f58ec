"""Health endpoint."""

from fastapi import APIRouter

from taskauth.models.auth import EnvelopeResponse

router = APIRouter()


@router.get("/health", response_model_exclude_none=True)
async def health_check() -> EnvelopeResponse:
    """Liveness check. Does not touch the database or Redis."""
    return EnvelopeResponse(status=200, data="ok")
