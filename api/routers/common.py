"""Response envelope and cookie helpers shared by the onboarding routers."""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from config import Settings
from services.sessions import CookieInstruction


def success(
    data: Any = None,
    message: str = "OK",
    status_code: int = 200,
    cookie: CookieInstruction | None = None,
) -> JSONResponse:
    """{"success": true, "message", "data"} with an optional Set-Cookie."""
    body: dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    response = JSONResponse(status_code=status_code, content=body)
    if cookie is not None:
        cookie.apply(response)
    return response


def session_id_from(request: Request, settings: Settings) -> str | None:
    return request.cookies.get(settings.ONBOARDING_SESSION_COOKIE_NAME) or None
