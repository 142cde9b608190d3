"""Liveness and readiness endpoints."""

from fastapi import APIRouter, HTTPException, Request
from starlette import status

from core.database import check_db_connection
from core.ratelimit import limiter
from core.telemetry import SERVICE_NAME
from schemas import HealthResponse, ReadyResponse
from services.content_service import get_all_journeys, journeys_dir_exists

router = APIRouter(tags=["health"])


def _unavailable(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness. Touches neither the database nor journey content."""
    return HealthResponse(status="healthy", service=SERVICE_NAME)


@router.get(
    "/ready",
    response_model=ReadyResponse,
    responses={
        503: {
            "description": "Startup unfinished, DB unreachable or content missing",
            "content": {
                "application/json": {"example": {"detail": "Database unavailable"}}
            },
        }
    },
)
@limiter.limit("30/minute")
async def ready(request: Request) -> ReadyResponse:
    """Readiness endpoint.

    Returns 200 only when:
    - Startup initialization has completed successfully
    - The database is reachable
    - The journeys content directory exists (parent validation reads it)
    """
    init_error = getattr(request.app.state, "init_error", None)
    if init_error:
        raise _unavailable(f"Initialization failed: {init_error}")

    if not getattr(request.app.state, "init_done", False):
        raise _unavailable("Starting")

    try:
        await check_db_connection(request.app.state.engine)
    except Exception as e:
        raise _unavailable("Database unavailable") from e

    if not journeys_dir_exists():
        raise _unavailable("Journey content unavailable")

    return ReadyResponse(
        status="ready", service=SERVICE_NAME, journeys=len(get_all_journeys())
    )
