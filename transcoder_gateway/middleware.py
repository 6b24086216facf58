from urllib.parse import urlparse

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from transcoder_gateway.configs import settings

EXEMPT_PATHS = frozenset({"/health"})


def request_origin(request: Request) -> str:
    """The request's Origin header, or the origin part of its Referer."""
    origin = request.headers.get("origin")
    if origin:
        return origin
    referer = request.headers.get("referer")
    if referer:
        parsed = urlparse(referer)
        if parsed.scheme and parsed.netloc:
            return f"{parsed.scheme}://{parsed.netloc}"
    return ""


def is_origin_allowed(origin: str, allowed_origins: list[str]) -> bool:
    if not allowed_origins or "*" in allowed_origins:
        return True
    return origin in allowed_origins


class OriginAllowListMiddleware(BaseHTTPMiddleware):
    """Middleware that rejects requests whose origin is not in the allow-list."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        if not is_origin_allowed(request_origin(request), settings.allowed_origins):
            return JSONResponse(status_code=403, content={"error": "Origin not allowed"})

        return await call_next(request)
