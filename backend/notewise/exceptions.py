"""
NoteWise Backend — Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for the analysis and notification pipelines.
How:   Each exception carries a user-safe message and an optional context dict.
       Global exception handlers (registered in main.py) turn them into the
       `{success: false, error, timestamp}` JSON envelope with the right status.
Who:   Raised by services and route dependencies; caught by global handlers
       or, for UpstreamError, by AnalysisService itself.

Exception Hierarchy:
    NoteWiseError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized
    ├── RateLimitExceededError   → 429 Too Many Requests (+ Retry-After)
    ├── UpstreamError            → absorbed by AnalysisService (local fallback)
    │   └── CircuitBreakerOpenError
    ├── StoreError               → 500, fatal to the notification job
    ├── DispatchError            → 500, fatal to the notification job
    └── ConfigurationError       → 500
"""

from typing import Any, Dict, Optional


class NoteWiseError(Exception):
    """
    Base exception for all NoteWise application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only for 4xx errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NoteWiseError):
    """
    Raised when an analysis request fails shape or length validation.

    HTTP:    400 Bad Request
    When:    Missing content or type, unknown type, content over 10,000 characters.
    Raised before the rate limiter or the AI call is touched.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(NoteWiseError):
    """Missing, malformed or rejected bearer token. HTTP 401."""

    def __init__(
        self,
        message: str = "Unauthorized",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(NoteWiseError):
    """
    Raised when a caller exceeds the per-caller request window.

    HTTP:    429 Too Many Requests, with a Retry-After header.
    Never retried by the server; the caller should wait `retry_after` seconds.
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class UpstreamError(NoteWiseError):
    """
    The AI completion call failed: network error, timeout, missing API key,
    or a response that is not the expected JSON object.

    Never surfaced to the caller of the analysis endpoint; AnalysisService
    catches it and serves the local analysis instead.
    """

    def __init__(
        self,
        message: str = "AI analysis service is unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CircuitBreakerOpenError(UpstreamError):
    """
    Raised when the Gemini circuit breaker is OPEN.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for recovery_time seconds)
        → After recovery_time → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI service is temporarily unavailable due to repeated failures. "
            f"Retrying in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class StoreError(NoteWiseError):
    """
    A store query failed (notes window, profile lookup).

    HTTP:    500 Internal Server Error
    Fatal to the notification job; there is no partial-window retry.
    The message never includes SQL or driver details; those go to `context`.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DispatchError(NoteWiseError):
    """
    The push provider rejected a batch (non-2xx) or could not be reached.

    HTTP:    500 Internal Server Error
    Fatal to the notification job. Per-item failures reported inside a 2xx
    response are NOT DispatchErrors; they only lower the sent count.
    """

    def __init__(
        self,
        message: str = "Failed to send notifications",
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["status_code"] = status_code
        super().__init__(message=message, context=ctx)
        self.status_code = status_code


class ConfigurationError(NoteWiseError):
    """A required setting (e.g. Supabase URL) is missing at call time. HTTP 500."""

    def __init__(
        self,
        message: str = "Server is not configured correctly",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
