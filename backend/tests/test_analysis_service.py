"""
NoteWise Backend — Analysis Service Unit Tests
===============================================

What:  validate → rate limit → AI → local fallback orchestration.
How:   Fake AI analyzer (AsyncMock) and a real RateLimiter.

What we test:
    ✅ Validation failures have no limiter or AI side effects
    ✅ 11th request in a window → RateLimitExceededError(retry_after=60)
    ✅ Any AI failure yields exactly the LocalAnalyzer result
    ✅ AI results are clamped and deduplicated
"""

from unittest.mock import AsyncMock

import pytest

from notewise.exceptions import RateLimitExceededError, UpstreamError, ValidationError
from notewise.schemas.analysis import AnalysisRequest, AnalysisResult
from notewise.services.analysis_service import AnalysisService, validate_payload
from notewise.services.local_analyzer import LocalAnalyzer
from notewise.services.rate_limiter import RateLimiter

AI_RESULT = AnalysisResult(title="AI Title", summary="AI summary.", tags=["ai"])


def make_service(ai_result=AI_RESULT, ai_error=None):
    ai = AsyncMock()
    if ai_error is not None:
        ai.run.side_effect = ai_error
    else:
        ai.run.return_value = ai_result
    limiter = RateLimiter(max_requests=10, window_seconds=60)
    return AnalysisService(rate_limiter=limiter, ai_analyzer=ai, retry_after=60), ai, limiter


class TestValidation:

    @pytest.mark.parametrize(
        "payload, message",
        [
            ({"type": "text"}, "Missing required field: content"),
            ({"content": "hello"}, "Missing required field: type"),
            ({"content": "", "type": "text"}, "Missing required field: content"),
            ({"content": "x" * 10_001, "type": "text"}, "Content too long (max 10,000 characters)"),
        ],
    )
    def test_invalid_payloads(self, payload, message):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload(payload)
        assert exc_info.value.message == message

    def test_unknown_type(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload({"content": "hello", "type": "video"})
        assert exc_info.value.field == "type"
        assert "Unsupported content type" in exc_info.value.message

    def test_non_object_body(self):
        with pytest.raises(ValidationError):
            validate_payload(["content", "type"])

    def test_exactly_max_length_is_accepted(self):
        request = validate_payload({"content": "x" * 10_000, "type": "text"})
        assert len(request.content) == 10_000

    def test_wire_names_are_accepted(self):
        request = validate_payload(
            {"content": "pic", "type": "image", "imageUrl": "https://cdn.test/a.png"}
        )
        assert request.image_ref == "https://cdn.test/a.png"
        assert request.wants_vision

    @pytest.mark.parametrize(
        "image_url",
        [
            "http://169.254.169.254/latest/meta-data/iam",
            "file:///etc/passwd",
            "ftp://cdn.test/a.png",
            "not a url",
            "/storage/a.png",
        ],
    )
    def test_image_url_must_be_https(self, image_url):
        with pytest.raises(ValidationError) as exc_info:
            validate_payload({"content": "pic", "type": "image", "imageUrl": image_url})
        assert exc_info.value.field == "imageUrl"
        assert exc_info.value.message == "Invalid imageUrl: must be an absolute https URL"

    def test_blank_image_url_means_no_image(self):
        request = validate_payload({"content": "pic", "type": "image", "imageUrl": "  "})
        assert request.image_ref is None
        assert not request.wants_vision

    @pytest.mark.asyncio
    async def test_rejected_image_url_has_no_side_effects(self):
        service, ai, limiter = make_service()

        with pytest.raises(ValidationError):
            await service.analyze(
                "user-1", {"content": "pic", "type": "image", "imageUrl": "http://10.0.0.7/x"}
            )

        ai.run.assert_not_awaited()
        assert "user-1" not in limiter._windows


class TestAnalysisService:

    @pytest.mark.asyncio
    async def test_validation_failure_has_no_side_effects(self):
        service, ai, limiter = make_service()

        with pytest.raises(ValidationError):
            await service.analyze("user-1", {"content": "x" * 10_001, "type": "text"})

        ai.run.assert_not_awaited()
        assert "user-1" not in limiter._windows

    @pytest.mark.asyncio
    async def test_eleventh_request_is_rate_limited(self):
        service, ai, _ = make_service()
        payload = {"content": "hello world", "type": "text"}

        for _ in range(10):
            await service.analyze("user-1", payload)
        with pytest.raises(RateLimitExceededError) as exc_info:
            await service.analyze("user-1", payload)

        assert exc_info.value.retry_after == 60
        assert ai.run.await_count == 10

    @pytest.mark.asyncio
    async def test_ai_result_is_returned(self):
        service, _, _ = make_service()
        result = await service.analyze("user-1", {"content": "hello world", "type": "text"})
        assert result == AI_RESULT

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [UpstreamError("Gemini API key is not configured"), RuntimeError("boom"), TimeoutError()],
    )
    async def test_ai_failure_falls_back_to_local_result(self, error):
        service, _, _ = make_service(ai_error=error)
        payload = {"content": "Quarterly budget review. Cut travel costs!", "type": "text"}

        result = await service.analyze("user-1", payload)

        expected = LocalAnalyzer().run(AnalysisRequest.model_validate(payload))
        assert result == expected

    @pytest.mark.asyncio
    async def test_without_ai_analyzer_uses_local(self):
        service = AnalysisService(rate_limiter=RateLimiter(), ai_analyzer=None)
        result = await service.analyze("user-1", {"content": "hello there", "type": "text"})
        assert result.title == "Hello there"

    @pytest.mark.asyncio
    async def test_ai_result_is_deduplicated(self):
        noisy = AnalysisResult.model_construct(title="T", summary="S", tags=["a", "a", "b"])
        service, _, _ = make_service(ai_result=noisy)

        result = await service.analyze("user-1", {"content": "hello", "type": "text"})
        assert result.tags == ["a", "b"]
