"""Participant session identification"""

from typing import Optional
from fastapi import Request, Response
from config.settings import Settings

SESSION_HEADER = "X-Session-Id"
COOKIE_MAX_AGE = 24 * 60 * 60  # 24 hours

def session_id_from_request(request: Request, settings: Settings) -> Optional[str]:
    """Session token from the header, falling back to the cookie"""
    return request.headers.get(SESSION_HEADER) or request.cookies.get(settings.SESSION_COOKIE_NAME)

def set_session_cookie(response: Response, session_id: str, settings: Settings):
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_id,
        max_age=COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
    )
