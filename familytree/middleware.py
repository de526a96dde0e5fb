"""Request logging middleware.

Writes one ``METHOD path -> status (ms)`` line per API call. Static asset
paths are passed through without logging.
"""

from __future__ import annotations

import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger(__name__)

# Paths that are served without a log line.
_QUIET_PATHS: list[re.Pattern[str]] = [
    re.compile(r"^/uploads/"),
    re.compile(r"^/static/"),
    re.compile(r"^/favicon\.ico$"),
]


def _is_quiet(path: str) -> bool:
    for pat in _QUIET_PATHS:
        if pat.search(path):
            return True
    return False


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that logs each API request with its status and timing."""

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if _is_quiet(path):
            return await call_next(request)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log.exception("%s %s -> unhandled error", request.method, path)
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        log.info("%s %s -> %s (%.1f ms)", request.method, path, response.status_code, elapsed_ms)
        return response
