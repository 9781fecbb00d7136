"""Request/response logging middleware"""

import logging
import time
from collections.abc import Iterable
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 5.0
# Health checks hit these every few seconds
QUIET_PATHS = ("/health/live", "/health/ready")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per API call with the caller identity the proxy forwarded"""

    def __init__(self, app, quiet_paths: Iterable[str] = QUIET_PATHS):
        super().__init__(app)
        self.quiet_paths = frozenset(quiet_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.quiet_paths:
            return await call_next(request)

        started = time.perf_counter()
        response: Response = await call_next(request)
        elapsed = round(time.perf_counter() - started, 4)

        context = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "process_time": elapsed,
            "caller_id": request.headers.get("X-User-Id"),
            "caller_role": request.headers.get("X-User-Role"),
        }
        if response.status_code >= 500:
            logger.error("Request failed", extra=context)
        elif elapsed > SLOW_REQUEST_SECONDS:
            logger.warning("Slow request detected", extra=context)
        else:
            logger.info("Request completed", extra=context)

        response.headers["X-Process-Time"] = str(elapsed)
        return response
