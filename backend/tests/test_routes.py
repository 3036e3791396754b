"""
NoteWise Backend — HTTP Route Tests
====================================

What:  The FastAPI app end to end through ASGITransport, with the auth
       verifier faked and the AI analyzer / notification job replaced on
       `app.state`.

What we test:
    ✅ 401 / 400 / 429 / 200 responses and the shared envelopes
    ✅ Retry-After: 60 on rate limiting
    ✅ OPTIONS preflight always answers "ok", browser preflights included
    ✅ Job trigger: summary body, token protection, 500 envelope
"""

from unittest.mock import AsyncMock

import pytest

from conftest import CALLER_ID, VALID_TOKEN
from notewise.config import settings
from notewise.exceptions import DispatchError, UpstreamError
from notewise.schemas.analysis import AnalysisResult
from notewise.schemas.notification import JobSummary
from notewise.services.analysis_service import AnalysisService
from notewise.services.rate_limiter import RateLimiter

AUTH = {"Authorization": f"Bearer {VALID_TOKEN}"}


@pytest.fixture
def ai_analyzer():
    analyzer = AsyncMock()
    analyzer.run.return_value = AnalysisResult(
        title="Trip Plan", summary="Flights and hotels for July.", tags=["travel"]
    )
    return analyzer


@pytest.fixture
def analysis_app(app, ai_analyzer):
    app.state.analysis_service = AnalysisService(
        rate_limiter=RateLimiter(max_requests=10, window_seconds=60),
        ai_analyzer=ai_analyzer,
        retry_after=60,
    )
    return app


class TestAnalyzeRoute:

    @pytest.mark.asyncio
    async def test_missing_token_is_401(self, analysis_app, test_client, ai_analyzer):
        response = await test_client.post("/api/analyze", json={"content": "hi", "type": "text"})

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "unauthorized"
        assert "timestamp" in body
        ai_analyzer.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_token_is_401(self, analysis_app, test_client):
        response = await test_client.post(
            "/api/analyze",
            json={"content": "hi", "type": "text"},
            headers={"Authorization": "Bearer forged"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_non_bearer_scheme_is_401(self, analysis_app, test_client):
        response = await test_client.post(
            "/api/analyze",
            json={"content": "hi", "type": "text"},
            headers={"Authorization": f"Basic {VALID_TOKEN}"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_success_envelope(self, analysis_app, test_client, ai_analyzer):
        response = await test_client.post(
            "/api/analyze", json={"content": "Plan the July trip", "type": "text"}, headers=AUTH
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"] == {
            "title": "Trip Plan",
            "summary": "Flights and hotels for July.",
            "tags": ["travel"],
        }
        assert "timestamp" in body
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_ai_failure_is_invisible(self, analysis_app, test_client, ai_analyzer):
        ai_analyzer.run.side_effect = UpstreamError("timeout")

        response = await test_client.post(
            "/api/analyze", json={"content": "buy milk", "type": "text"}, headers=AUTH
        )

        assert response.status_code == 200
        assert response.json()["data"]["title"] == "Buy milk"

    @pytest.mark.asyncio
    async def test_oversized_content_is_400(self, analysis_app, test_client, ai_analyzer):
        response = await test_client.post(
            "/api/analyze", json={"content": "x" * 10_001, "type": "text"}, headers=AUTH
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Content too long (max 10,000 characters)"
        assert body["code"] == "validation_error"
        ai_analyzer.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_type_is_400(self, analysis_app, test_client):
        response = await test_client.post("/api/analyze", json={"content": "hi"}, headers=AUTH)
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required field: type"

    @pytest.mark.asyncio
    async def test_non_json_body_is_400(self, analysis_app, test_client):
        response = await test_client.post(
            "/api/analyze",
            content=b"not json",
            headers={**AUTH, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_eleventh_request_is_429_with_retry_after(self, analysis_app, test_client):
        payload = {"content": "hello", "type": "text"}
        for _ in range(10):
            response = await test_client.post("/api/analyze", json=payload, headers=AUTH)
            assert response.status_code == 200

        response = await test_client.post("/api/analyze", json=payload, headers=AUTH)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json()["code"] == "rate_limit_exceeded"

    @pytest.mark.asyncio
    async def test_rate_limit_is_keyed_by_caller(self, analysis_app, test_client):
        for _ in range(10):
            await test_client.post("/api/analyze", json={"content": "a", "type": "text"}, headers=AUTH)
        assert CALLER_ID in analysis_app.state.analysis_service.rate_limiter._windows

    @pytest.mark.asyncio
    async def test_options_preflight(self, test_client):
        response = await test_client.options("/api/analyze")
        assert response.status_code == 200
        assert response.text == "ok"

    @pytest.mark.asyncio
    async def test_browser_preflight_with_extra_headers(self, test_client):
        requested = "authorization, content-type, x-request-id, x-client-info, apikey"
        response = await test_client.options(
            "/api/analyze",
            headers={
                "Origin": "https://app.example",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": requested,
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        allowed = response.headers["access-control-allow-headers"].lower()
        assert "x-request-id" in allowed
        assert "authorization" in allowed


class TestJobRoute:

    @pytest.mark.asyncio
    async def test_trigger_returns_summary(self, app, test_client):
        app.state.notification_job = AsyncMock()
        app.state.notification_job.run.return_value = JobSummary(
            message="Successfully sent 3 notifications to 3 users",
            notes_found=5,
            users_with_tokens=4,
            eligible_users=3,
            notifications_prepared=3,
            notifications_sent=3,
        )

        response = await test_client.post("/api/jobs/daily-notifications")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["notesFound"] == 5
        assert body["usersWithTokens"] == 4
        assert body["eligibleUsers"] == 3
        assert body["notificationsPrepared"] == 3
        assert body["notificationsSent"] == 3

    @pytest.mark.asyncio
    async def test_job_failure_is_500_envelope(self, app, test_client):
        app.state.notification_job = AsyncMock()
        app.state.notification_job.run.side_effect = DispatchError(
            "Failed to send notifications", status_code=502
        )

        response = await test_client.post("/api/jobs/daily-notifications")

        assert response.status_code == 500
        body = response.json()
        assert body == {
            "success": False,
            "error": "Failed to send notifications",
            "code": "dispatch_error",
            "details": None,
            "request_id": response.headers["X-Request-ID"],
            "timestamp": body["timestamp"],
        }

    @pytest.mark.asyncio
    async def test_trigger_token_is_enforced_when_configured(self, app, test_client, monkeypatch):
        monkeypatch.setattr(settings, "job_trigger_token", "cron-secret")
        app.state.notification_job = AsyncMock()
        app.state.notification_job.run.return_value = JobSummary(message="ok")

        denied = await test_client.post("/api/jobs/daily-notifications")
        wrong = await test_client.post(
            "/api/jobs/daily-notifications", headers={"Authorization": "Bearer nope"}
        )
        allowed = await test_client.post(
            "/api/jobs/daily-notifications", headers={"Authorization": "Bearer cron-secret"}
        )

        assert denied.status_code == 401
        assert wrong.status_code == 401
        assert allowed.status_code == 200
        assert app.state.notification_job.run.await_count == 1
