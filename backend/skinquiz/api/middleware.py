import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0

SESSIONS_PREFIX = "/api/v1/sessions/"
# Responses under these carry answers or results
PRIVATE_PREFIXES = ("/api/v1/sessions", "/api/v1/consultation")

PRIVACY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


def session_id_from_path(path: str) -> Optional[str]:
    """`abc123` for /api/v1/sessions/abc123/answers, None for any other path"""
    if not path.startswith(SESSIONS_PREFIX):
        return None
    return path[len(SESSIONS_PREFIX):].split("/", 1)[0] or None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per call, tagged with the request id and, if any, the session"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request.state.request_id = request_id

        session_id = session_id_from_path(request.url.path)
        tag = f"{request_id}/{session_id}" if session_id else request_id
        call = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[{tag}] {call} failed after {time.perf_counter() - started:.3f}s")
            raise

        elapsed = time.perf_counter() - started
        level = logging.WARNING if elapsed > SLOW_REQUEST_SECONDS else logging.INFO
        logger.log(level, f"[{tag}] {call} -> {response.status_code} in {elapsed:.3f}s")

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"
        return response


class PrivacyHeadersMiddleware(BaseHTTPMiddleware):
    """Consultation answers are personal; keep them out of shared caches"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers.update(PRIVACY_HEADERS)
        if request.url.path.startswith(PRIVATE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
        return response


def setup_middleware(app: FastAPI) -> None:
    from ..config import settings

    # Added first so it wraps everything else
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Response-Time"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(PrivacyHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
