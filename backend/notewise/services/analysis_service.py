"""
NoteWise Backend — Analysis Service (Request Orchestrator)
===========================================================

What:  Runs one analysis request: validate → rate limit → AI → local fallback.
How:   Composes RateLimiter, a ContentAnalyzer (Gemini) and LocalAnalyzer.
Who:   Called by the POST /api/analyze route handler with the caller id that
       the auth dependency resolved.

Orchestration Flow:
    ┌──────────┐    ┌────────────┐    ┌──────────────┐    ┌──────────┐
    │ Validate │───▶│ Rate Limit │───▶│  Gemini API  │───▶│  Clamp   │
    │ (schema) │    │ (per user) │    │  (optional)  │    │  & Dedup │
    └──────────┘    └────────────┘    └──────┬───────┘    └──────────┘
                                             │ any failure      ▲
                                             ▼                  │
                                      ┌──────────────┐          │
                                      │ LocalAnalyzer│──────────┘
                                      └──────────────┘

    Validation failures never touch the limiter or the AI provider.
    AI failures are logged and never reach the caller; the response does not
    say which path produced it.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from notewise.config import settings
from notewise.exceptions import RateLimitExceededError, ValidationError
from notewise.schemas.analysis import AnalysisRequest, AnalysisResult
from notewise.services.llm_base import ContentAnalyzer
from notewise.services.local_analyzer import LocalAnalyzer
from notewise.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def validate_payload(payload: Any) -> AnalysisRequest:
    """
    Converts a decoded JSON body into an AnalysisRequest.

    Raises:
        ValidationError: with the first problem found, phrased for the client.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    try:
        request = AnalysisRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise _translate_validation_error(e) from e

    if not request.content.strip():
        raise ValidationError("Missing required field: content", field="content")
    return request


def _translate_validation_error(error: PydanticValidationError) -> ValidationError:
    first = error.errors()[0]
    field = str(first["loc"][0]) if first.get("loc") else None
    kind = first.get("type", "")

    if kind == "missing":
        return ValidationError(f"Missing required field: {field}", field=field)
    if kind == "string_too_long" and field == "content":
        return ValidationError("Content too long (max 10,000 characters)", field=field)
    if kind == "enum" and field == "type":
        return ValidationError(
            f"Unsupported content type: {first.get('input')!r}",
            field=field,
            context={"allowed": ["text", "url", "file", "image"]},
        )
    if field in ("imageUrl", "image_ref"):
        return ValidationError("Invalid imageUrl: must be an absolute https URL", field="imageUrl")
    return ValidationError(f"Invalid field '{field}': {first.get('msg')}", field=field)


class AnalysisService:
    """
    Business logic for the analysis endpoint.

    Holds the process-wide RateLimiter, so exactly one instance should exist
    per process (see main.create_app).
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        ai_analyzer: Optional[ContentAnalyzer] = None,
        local_analyzer: Optional[LocalAnalyzer] = None,
        retry_after: Optional[int] = None,
    ):
        self.rate_limiter = rate_limiter
        self.ai_analyzer = ai_analyzer
        self.local_analyzer = local_analyzer or LocalAnalyzer()
        self.retry_after = retry_after or settings.rate_limit_window

    async def analyze(self, caller_id: str, payload: Dict[str, Any]) -> AnalysisResult:
        """
        Analyze one piece of content for an authenticated caller.

        Raises:
            ValidationError: malformed payload (before any side effect).
            RateLimitExceededError: caller is over the per-window cap.
        """
        request = validate_payload(payload)

        if not self.rate_limiter.admit(caller_id):
            raise RateLimitExceededError(retry_after=self.retry_after)

        result: Optional[AnalysisResult] = None
        if self.ai_analyzer is not None:
            try:
                result = await self.ai_analyzer.run(request)
            except Exception as e:
                logger.warning(
                    "AI analysis failed for caller %s (%s), using local analysis: %s",
                    caller_id,
                    type(e).__name__,
                    getattr(e, "message", str(e)),
                )

        if result is None:
            result = self.local_analyzer.run(request)
            path = "local"
        else:
            path = "ai"

        logger.info(
            "Analyzed %s content (%d chars) for caller %s via %s path",
            request.content_type.value,
            len(request.content),
            caller_id,
            path,
        )
        return AnalysisResult.bounded(result.title, result.summary, result.tags)
