"""
NoteWise Backend — Request ID Middleware
=========================================

What:  Assigns a correlation ID to every request and echoes it in X-Request-ID.
How:   Reuses the caller's X-Request-ID when present, otherwise generates a
       short UUID; stores it in a ContextVar for loggers and error handlers.
Who:   Applied to every request; read by RequestLoggingMiddleware and by the
       exception handlers in main.py (the `request_id` field of the error
       envelope).

The scheduler that triggers the notification job can pass its own run ID in
X-Request-ID, which ties the job's log lines to the scheduler's run.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 64


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Sets `request_id_var` and `request.state.request_id` for each request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get(REQUEST_ID_HEADER, "").strip()
        rid = supplied[:MAX_REQUEST_ID_LENGTH] or str(uuid.uuid4())[:8]

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
