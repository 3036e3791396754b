"""
NoteWise Backend — Analysis Request/Response Schemas
=====================================================

What:  Pydantic models for the analysis endpoint's contract.
Who:   AnalysisService (validation), the analyzers (results), route handlers
       (response envelopes).

Wire format:
    Request:  {"content": "...", "type": "text|url|file|image", "imageUrl": "..."}
    Response: {"success": true, "data": {"title", "summary", "tags"}, "timestamp"}
    Error:    {"success": false, "error": "...", "code": "...", "timestamp": ...}
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

MAX_CONTENT_LENGTH = 10_000
MAX_TITLE_LENGTH = 100
MAX_SUMMARY_LENGTH = 500
MAX_TAGS = 10

_HTTP_URL = TypeAdapter(HttpUrl)


class ContentType(str, Enum):
    TEXT = "text"
    URL = "url"
    FILE = "file"
    IMAGE = "image"


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class AnalysisRequest(BaseModel):
    """
    One piece of user content to analyze.

    `image_ref` is only used for vision analysis, i.e. when
    `content_type == image`. Empty content is representable here (the local
    analyzer handles it); AnalysisService rejects it at the endpoint.
    """
    content: str = Field(
        max_length=MAX_CONTENT_LENGTH,
        description="Raw note content (max 10,000 characters)",
    )
    content_type: ContentType = Field(alias="type", description="Kind of content")
    image_ref: Optional[str] = Field(
        default=None,
        alias="imageUrl",
        description="Public URL of the image (image content only)",
    )

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("image_ref")
    @classmethod
    def validate_image_ref(cls, v: Optional[str]) -> Optional[str]:
        """Blank → None; anything else must be an absolute https URL."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        try:
            url = _HTTP_URL.validate_python(v)
        except PydanticValidationError as e:
            raise ValueError("must be an absolute https URL") from e
        if url.scheme != "https" or not url.host:
            raise ValueError("must be an absolute https URL")
        return v

    @property
    def wants_vision(self) -> bool:
        return self.content_type == ContentType.IMAGE and bool(self.image_ref)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


def dedupe_tags(tags: Iterable[str], limit: int = MAX_TAGS) -> List[str]:
    """Strips tags, drops empties and duplicates (first occurrence wins), keeps `limit`."""
    seen = set()
    result: List[str] = []
    for tag in tags:
        cleaned = str(tag).strip()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        result.append(cleaned)
        if len(result) == limit:
            break
    return result


class AnalysisResult(BaseModel):
    """
    Structured summary of one piece of content.

    Bounds are hard invariants: title ≤ 100, summary ≤ 500, ≤ 10 distinct tags.
    Produced once per request, returned to the caller, never persisted.
    """
    title: str = Field(max_length=MAX_TITLE_LENGTH, description="Short title")
    summary: str = Field(max_length=MAX_SUMMARY_LENGTH, description="2-4 sentence summary")
    tags: List[str] = Field(
        default_factory=list,
        max_length=MAX_TAGS,
        description="Searchable keywords, deduplicated",
    )

    model_config = {"frozen": True}

    @classmethod
    def bounded(cls, title: str, summary: str, tags: Iterable[str]) -> "AnalysisResult":
        """Builds a result, cutting every field down to its bound."""
        return cls(
            title=_truncate(title, MAX_TITLE_LENGTH),
            summary=_truncate(summary, MAX_SUMMARY_LENGTH),
            tags=dedupe_tags(tags),
        )


class AnalysisResponse(BaseModel):
    """Success envelope returned by POST /api/analyze."""
    success: bool = Field(default=True)
    data: AnalysisResult
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ErrorResponse(BaseModel):
    """
    Error envelope shared by every endpoint.

    Fields:
        error: Human-readable description
        code: Machine-readable error code (e.g. "validation_error")
        details: Optional extra context (e.g. which field failed validation)
        request_id: Correlation ID for tracing this error in server logs
    """
    success: bool = Field(default=False)
    error: str = Field(description="Human-readable error description")
    code: str = Field(description="Machine-readable error code")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HealthResponse(BaseModel):
    """Health check response showing service and dependency status."""
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    gemini: str = Field(
        description="Gemini API status: available, unavailable, circuit_open, not_configured"
    )
    uptime_seconds: float = Field(description="Seconds since service started")
