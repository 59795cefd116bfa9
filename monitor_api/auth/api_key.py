"""Transport-level request guards: API key and caller identity headers.

Authentication itself happens upstream; these headers are trusted as set
by the authenticating proxy.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Header, HTTPException, Request

from .authorization import Caller

logger = logging.getLogger(__name__)


def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """Validate the API key when MONITOR_API_KEY is set.

    Without a configured key every request is let through (development).
    """
    expected = request.app.state.settings.api_key
    if not expected:
        return

    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")

    if not hmac.compare_digest(x_api_key, expected):
        logger.warning("[AUTH] Invalid API key attempt on %s", request.url.path)
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_caller(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_role: str | None = Header(default=None, alias="X-User-Role"),
) -> Caller:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return Caller.from_raw(x_user_id.strip(), x_user_role)
