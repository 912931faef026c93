"""
Anonymous Day Pass session cookie.

The cookie carries only an opaque session id; the pass itself lives in
anonymous_daypasses. Its lifetime matches the Day Pass duration.
"""

import uuid
from typing import Optional

from fastapi import Request, Response

from panelpass.config.settings import get_settings
from panelpass.entitlements.policy import DAYPASS_COOKIE_MAX_AGE_SECONDS


def generate_session_id() -> str:
    return str(uuid.uuid4())


def get_session_id(request: Request) -> Optional[str]:
    """Session id from the Day Pass cookie, if any."""
    return request.cookies.get(get_settings().daypass_cookie_name) or None


def set_session_cookie(response: Response, session_id: str) -> None:
    """
    Attach the Day Pass cookie to a response.

    Production cookies are Secure, HttpOnly and SameSite=Strict; elsewhere
    SameSite=Lax so plain-HTTP development works.
    """
    settings = get_settings()
    if settings.is_production:
        response.set_cookie(
            key=settings.daypass_cookie_name,
            value=session_id,
            max_age=DAYPASS_COOKIE_MAX_AGE_SECONDS,
            path="/",
            secure=True,
            httponly=True,
            samesite="strict",
        )
    else:
        response.set_cookie(
            key=settings.daypass_cookie_name,
            value=session_id,
            max_age=DAYPASS_COOKIE_MAX_AGE_SECONDS,
            path="/",
            samesite="lax",
        )
