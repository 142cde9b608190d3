"""Admin authentication for the visibility API.

Admin requests carry the shared ADMIN_API_TOKEN as a bearer token and name
the acting admin in X-Admin-User-Id. The actor id is what ends up in
updated_by and in the audit log; identity is asserted by the trusted admin
front end, not verified here.
"""

import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from core.config import get_settings
from core.wide_event import set_wide_event_fields

ADMIN_USER_HEADER = "X-Admin-User-Id"


def _extract_bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def _token_matches(token: str) -> bool:
    expected = get_settings().admin_api_token
    if not expected:
        # Only reachable with DEBUG=true; admin API stays closed.
        return False
    return hmac.compare_digest(token.encode(), expected.encode())


def require_admin(
    request: Request,
    x_admin_user_id: Annotated[
        str | None, Header(alias=ADMIN_USER_HEADER, max_length=255)
    ] = None,
) -> str:
    """Raises 401 without a valid token, 403 without an actor id.

    Sets request.state.user_id so rate limits are keyed per admin.
    """
    token = _extract_bearer_token(request)
    if token is None or not _token_matches(token):
        set_wide_event_fields(auth_error="invalid_admin_token")
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    admin_user_id = (x_admin_user_id or "").strip()
    if not admin_user_id:
        set_wide_event_fields(auth_error="missing_admin_user_id")
        raise HTTPException(
            status_code=403, detail=f"{ADMIN_USER_HEADER} header required"
        )

    request.state.user_id = admin_user_id
    set_wide_event_fields(admin_user_id=admin_user_id)
    return admin_user_id


AdminUserId = Annotated[str, Depends(require_admin)]
