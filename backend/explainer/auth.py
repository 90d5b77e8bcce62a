"""Identity forwarded by the hosted auth proxy in front of the API.

The proxy verifies the session and passes the identity through as headers.
When ``AUTH_PROXY_SECRET`` is configured, requests must also carry the shared
secret so the headers cannot be forged by clients that bypass the proxy.
"""
from __future__ import annotations

import secrets

from fastapi import Depends, Request
from sqlmodel import Session

from .database import get_session
from .errors import ApiError
from .models import User
from .project_service import sync_user

USER_ID_HEADER = "X-User-Id"
USER_EMAIL_HEADER = "X-User-Email"
PROXY_SECRET_HEADER = "X-Auth-Proxy-Secret"


def get_current_user(request: Request, session: Session = Depends(get_session)) -> User:
    expected_secret = request.app.state.settings.auth_proxy_secret
    if expected_secret:
        provided = request.headers.get(PROXY_SECRET_HEADER, "")
        if not secrets.compare_digest(provided.encode("utf-8"), expected_secret.encode("utf-8")):
            raise ApiError(401, "Unauthorized")

    external_id = request.headers.get(USER_ID_HEADER, "").strip()
    if not external_id:
        raise ApiError(401, "Unauthorized")
    email = request.headers.get(USER_EMAIL_HEADER, "").strip()
    return sync_user(session, external_id, email)
