"""
NoteWise Backend — Request Logging Middleware
==============================================

What:  One access-log line per HTTP request with status and duration.
Who:   Applied to every request, inside RequestIDMiddleware so the line
       carries the request ID.

Log line:
    POST /api/analyze 200 1834.2ms [a1b2c3d4] from 10.0.0.7

    Level follows the status: 5xx → ERROR, 4xx → WARNING, else INFO.
    The same fields are attached as `extra` for structured handlers.

Never logged: request bodies (note content is user data) and the
Authorization header.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from notewise.middleware.request_id import request_id_var

logger = logging.getLogger("notewise.access")

# Probed every few seconds by the load balancer.
QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
