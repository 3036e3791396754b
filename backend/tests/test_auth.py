"""
NoteWise Backend — Supabase Auth Verifier Unit Tests
=====================================================
"""

import httpx
import pytest

from notewise.exceptions import AuthenticationError, ConfigurationError, UpstreamError
from notewise.services.auth import SupabaseAuthVerifier

SUPABASE_URL = "https://project.supabase.test"


def verifier_for(handler, **kwargs):
    kwargs.setdefault("supabase_url", SUPABASE_URL)
    kwargs.setdefault("service_key", "service-key")
    return SupabaseAuthVerifier(transport=httpx.MockTransport(handler), **kwargs)


class TestSupabaseAuthVerifier:

    @pytest.mark.asyncio
    async def test_valid_token_returns_user_id(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["apikey"] = request.headers["apikey"]
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json={"id": "user-123", "email": "a@b.test"})

        user_id = await verifier_for(handler).verify("jwt-token")

        assert user_id == "user-123"
        assert seen == {
            "url": f"{SUPABASE_URL}/auth/v1/user",
            "apikey": "service-key",
            "auth": "Bearer jwt-token",
        }

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        verifier = verifier_for(lambda request: httpx.Response(401, json={"msg": "invalid JWT"}))
        with pytest.raises(AuthenticationError):
            await verifier.verify("expired")

    @pytest.mark.asyncio
    async def test_reply_without_id(self):
        verifier = verifier_for(lambda request: httpx.Response(200, json={}))
        with pytest.raises(AuthenticationError):
            await verifier.verify("token")

    @pytest.mark.asyncio
    async def test_unreachable_auth_service(self):
        def refuse(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(UpstreamError):
            await verifier_for(refuse).verify("token")

    @pytest.mark.asyncio
    async def test_missing_configuration(self):
        verifier = verifier_for(lambda request: httpx.Response(200), supabase_url="")
        with pytest.raises(ConfigurationError):
            await verifier.verify("token")

    @pytest.mark.asyncio
    async def test_trailing_slash_is_ignored(self):
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(200, json={"id": "u"})

        await verifier_for(handler, supabase_url=SUPABASE_URL + "/").verify("t")
        assert urls == [f"{SUPABASE_URL}/auth/v1/user"]
