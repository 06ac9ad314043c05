"""Authentication dependencies for routes.

Authentication itself is performed by the upstream gateway, which forwards
the verified user id in a trusted header (``AUTH_USER_HEADER``, default
``X-User-Id``). This module only reads that header.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from core.config import get_settings
from core.wide_event import set_wide_event_fields

MAX_USER_ID_LENGTH = 255


def get_user_id_from_request(req: Request) -> str | None:
    """Get authenticated user ID, or None."""
    header_name = get_settings().auth_user_header
    user_id = req.headers.get(header_name, "").strip()
    if not user_id or len(user_id) > MAX_USER_ID_LENGTH:
        return None
    return user_id


def require_auth(request: Request) -> str:
    """Raises 401 if not authenticated. Sets request.state.user_id."""
    user_id = get_user_id_from_request(request)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    request.state.user_id = user_id
    set_wide_event_fields(user_id=user_id)
    return user_id


UserId = Annotated[str, Depends(require_auth)]
