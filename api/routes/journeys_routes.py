"""Public journey endpoints.

Anonymous readers only ever see the public subtree of a journey. A hidden
journey and a nonexistent one return the same 404.
"""

from fastapi import APIRouter, HTTPException, Request

from core.database import DbSession
from core.ratelimit import PUBLIC_READ_LIMIT, limiter
from core.wide_event import set_wide_event_fields
from schemas import PublicJourney
from services.visibility_service import (
    VisibilityCache,
    get_public_journey_by_slug,
    get_public_journeys,
)

router = APIRouter(prefix="/api/journeys", tags=["journeys"])


@router.get("", response_model=list[PublicJourney], summary="List public journeys")
@limiter.limit(PUBLIC_READ_LIMIT)
async def list_public_journeys(request: Request, db: DbSession) -> list[PublicJourney]:
    journeys = await get_public_journeys(db)
    set_wide_event_fields(public_journey_count=len(journeys))
    return journeys


@router.get(
    "/{slug}",
    response_model=PublicJourney,
    summary="Get a public journey",
    responses={404: {"description": "Journey not found"}},
)
@limiter.limit(PUBLIC_READ_LIMIT)
async def get_public_journey(
    request: Request, slug: str, db: DbSession
) -> PublicJourney:
    """Public projection of one journey: public milestones, objectives and edges."""
    cache: VisibilityCache = {}
    journey = await get_public_journey_by_slug(db, slug, cache)
    if journey is None:
        raise HTTPException(status_code=404, detail="Journey not found")
    return journey
