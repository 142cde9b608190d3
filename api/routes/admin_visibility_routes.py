"""Admin endpoints for journey visibility moderation.

All endpoints require the admin token and an X-Admin-User-Id header.
"""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Request, Response
from starlette import status

from core.auth import AdminUserId
from core.database import DbSession
from core.ratelimit import ADMIN_BATCH_LIMIT, ADMIN_WRITE_LIMIT, limiter
from schemas import (
    AuditLogEntry,
    AuditLogQuery,
    JourneyVisibilityDetails,
    VisibilityBatchRequest,
    VisibilityBatchResponse,
    VisibilityChangeLogEntry,
    VisibilityOverview,
    VisibilitySettingData,
    VisibilityUpdateRequest,
)
from services.audit_log_service import query_audit_logs, query_visibility_change_logs
from services.visibility_service import (
    InvalidEntityTypeError,
    ParentNotFoundError,
    get_journey_visibility_details,
    get_visibility_overview,
    parse_entity_type,
    remove_visibility,
    update_visibility,
    update_visibility_batch,
)

router = APIRouter(prefix="/api/admin/visibility", tags=["admin"])

_AUTH_RESPONSES: dict[int | str, dict] = {
    401: {"description": "Missing or invalid admin token"},
    403: {"description": "Missing X-Admin-User-Id header"},
}


@router.get(
    "/overview",
    response_model=VisibilityOverview,
    summary="Visibility of every journey",
    responses=_AUTH_RESPONSES,
)
async def overview_endpoint(
    admin_user_id: AdminUserId, db: DbSession
) -> VisibilityOverview:
    return await get_visibility_overview(db)


@router.get(
    "/journeys/{slug}",
    response_model=JourneyVisibilityDetails,
    summary="Milestone and objective visibility for one journey",
    responses={**_AUTH_RESPONSES, 404: {"description": "Journey not found"}},
)
async def journey_details_endpoint(
    slug: str, admin_user_id: AdminUserId, db: DbSession
) -> JourneyVisibilityDetails:
    details = await get_journey_visibility_details(db, slug)
    if details is None:
        raise HTTPException(status_code=404, detail="Journey not found")
    return details


@router.put(
    "",
    response_model=VisibilitySettingData,
    summary="Set the visibility of one entity",
    responses={**_AUTH_RESPONSES, 404: {"description": "Parent not found"}},
)
@limiter.limit(ADMIN_WRITE_LIMIT)
async def update_visibility_endpoint(
    request: Request,
    body: VisibilityUpdateRequest,
    admin_user_id: AdminUserId,
    db: DbSession,
) -> VisibilitySettingData:
    """Set the direct flag. Children are not touched; they stay hidden
    behind a private ancestor and reappear when it is made public again.
    """
    try:
        return await update_visibility(
            db,
            admin_user_id,
            body.entity_type,
            body.entity_id,
            body.is_public,
            body.parent_journey_slug,
            body.parent_milestone_id,
            content_public=body.content_public,
        )
    except ParentNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e


@router.put(
    "/batch",
    response_model=VisibilityBatchResponse,
    summary="Set the visibility of many entities of one type",
    responses={**_AUTH_RESPONSES, 404: {"description": "Parent not found"}},
)
@limiter.limit(ADMIN_BATCH_LIMIT)
async def update_visibility_batch_endpoint(
    request: Request,
    body: VisibilityBatchRequest,
    admin_user_id: AdminUserId,
    db: DbSession,
) -> VisibilityBatchResponse:
    try:
        settings = await update_visibility_batch(
            db, admin_user_id, body.entity_type, body.updates
        )
    except ParentNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e

    return VisibilityBatchResponse(settings=settings, updated_count=len(settings))


@router.delete(
    "/{entity_type}/{entity_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reset an entity to default-private",
    responses={
        **_AUTH_RESPONSES,
        404: {"description": "No visibility setting for this entity"},
        422: {"description": "Unknown entity type"},
    },
)
@limiter.limit(ADMIN_WRITE_LIMIT)
async def remove_visibility_endpoint(
    request: Request,
    entity_type: str,
    entity_id: str,
    admin_user_id: AdminUserId,
    db: DbSession,
) -> Response:
    try:
        parsed_type = parse_entity_type(entity_type)
    except InvalidEntityTypeError as e:
        raise HTTPException(status_code=422, detail=e.message) from e

    removed = await remove_visibility(db, admin_user_id, parsed_type, entity_id)
    if not removed:
        raise HTTPException(
            status_code=404, detail="No visibility setting for this entity"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/audit-logs",
    response_model=list[VisibilityChangeLogEntry],
    summary="Visibility change history, newest first",
    responses=_AUTH_RESPONSES,
)
async def visibility_audit_logs_endpoint(
    filters: Annotated[AuditLogQuery, Query()],
    admin_user_id: AdminUserId,
    db: DbSession,
) -> list[VisibilityChangeLogEntry]:
    return await query_visibility_change_logs(db, filters)


@router.get(
    "/audit-logs/all",
    response_model=list[AuditLogEntry],
    summary="Admin audit history of every action, newest first",
    responses=_AUTH_RESPONSES,
)
async def audit_logs_endpoint(
    filters: Annotated[AuditLogQuery, Query()],
    admin_user_id: AdminUserId,
    db: DbSession,
) -> list[AuditLogEntry]:
    return await query_audit_logs(db, filters)
