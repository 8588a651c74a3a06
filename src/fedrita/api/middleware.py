import re
import time
import logging
from uuid import uuid4
from fastapi import Request
from fastapi.responses import JSONResponse
from fedrita.config import settings

logger = logging.getLogger("fedrita.api")

_SESSION_ID = re.compile(r"^[0-9a-f]{32}$")

async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or uuid4().hex
    request.state.request_id = rid
    response = await call_next(request)
    response.headers["x-request-id"] = rid
    return response

async def enforce_body_size(request: Request, call_next):
    limit_mb = settings.security.max_upload_mb
    declared = request.headers.get("content-length")
    if declared:
        try:
            size = int(declared)
        except ValueError:
            logger.warning(
                "Ignoring malformed Content-Length",
                extra={"content_length": declared, "path": request.url.path},
            )
            size = 0
        if size > limit_mb * 1024 * 1024:
            return JSONResponse(
                status_code=413,
                content={
                    "error": "request_too_large",
                    "detail": f"Max upload size is {limit_mb}MB",
                    "request_id": getattr(request.state, "request_id", None),
                },
            )
    return await call_next(request)

async def attach_browser_session(request: Request, call_next):
    """
    Every browser gets an opaque session id (cookie, or header for API clients)
    selecting its auth context. Unknown or malformed ids are replaced.
    """
    cookie_name = settings.security.session_cookie
    presented = request.cookies.get(cookie_name) or request.headers.get(settings.security.session_header)
    sid = presented if presented and _SESSION_ID.match(presented) else uuid4().hex
    request.state.session_id = sid
    response = await call_next(request)
    if request.cookies.get(cookie_name) != sid:
        response.set_cookie(
            cookie_name,
            sid,
            httponly=True,
            samesite="lax",
            secure=settings.security.cookie_secure,
            max_age=settings.security.context_ttl_seconds,
        )
    return response

async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        status = getattr(response, "status_code", "error")
        logger.info(
            "request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "request_id": getattr(request.state, "request_id", None),
                "session_id": getattr(request.state, "session_id", None),
            },
        )
