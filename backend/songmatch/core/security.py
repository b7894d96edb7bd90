from __future__ import annotations

import logging
import secrets

from fastapi import HTTPException, Request, status

from .config import Settings, get_settings

logger = logging.getLogger("security")


def app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def verify_service_token(request: Request) -> None:
    expected = app_settings(request).service_token
    if not expected:
        # No token configured: open access for local development, warn once per app.
        if not getattr(request.app.state, "service_token_warning", False):
            logger.warning("SONGMATCH_SERVICE_TOKEN is not set; recommendation routes are unauthenticated")
            request.app.state.service_token_warning = True
        return

    provided = request.headers.get("X-Service-Token", "")
    if not provided or not secrets.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid service token")
