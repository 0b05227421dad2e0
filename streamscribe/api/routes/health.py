"""
Health and status endpoints.
"""

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from streamscribe import __version__

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "streamscribe"}


@router.get("/ready")
async def readiness_check(request: Request) -> JSONResponse:
    """
    Readiness check - returns 200 only once a model is loaded.

    Returns:
        200: Transcriber loaded
        503: Model still loading (or failed to load)
    """
    transcriber = getattr(request.app.state, "transcriber", None)
    if transcriber is None:
        return JSONResponse(content={"status": "loading"}, status_code=503)

    return JSONResponse(
        content={"status": "ready", "busy": transcriber.is_busy},
        status_code=200,
    )


@router.get("/api/status")
async def get_status(request: Request) -> dict[str, Any]:
    """Server version and transcriber state."""
    transcriber = getattr(request.app.state, "transcriber", None)
    status: dict[str, Any] = {
        "status": "running",
        "version": __version__,
        "loaded": transcriber is not None,
    }
    if transcriber is not None:
        status["busy"] = transcriber.is_busy
        status["config"] = transcriber.config.to_dict()
    return status
