"""
NoteWise Backend — Bearer Token Verification
=============================================

What:  Resolves a Supabase access token into the caller's user id.
How:   GET {SUPABASE_URL}/auth/v1/user with the service key as `apikey` and
       the caller's token as Bearer; the response body's `id` is the caller id.
Who:   The `get_caller_id` route dependency (routes/analyze.py).

Outcomes:
    200 with an id        → caller id
    any other response    → AuthenticationError (401)
    network failure       → UpstreamError (500; not the caller's fault)
    URL/key not set       → ConfigurationError (500)
"""

import logging
from typing import Optional

import httpx

from notewise.config import settings
from notewise.exceptions import AuthenticationError, ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)


class SupabaseAuthVerifier:
    def __init__(
        self,
        supabase_url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.supabase_url = (supabase_url if supabase_url is not None else settings.supabase_url).rstrip("/")
        self.service_key = service_key if service_key is not None else settings.supabase_service_key
        self.timeout = timeout or settings.auth_timeout_seconds
        self._transport = transport

    async def verify(self, token: str) -> str:
        """
        Return the user id owning `token`.

        Raises:
            AuthenticationError: token empty, rejected, or the reply has no id.
            UpstreamError: the auth service could not be reached.
            ConfigurationError: SUPABASE_URL or SUPABASE_SERVICE_KEY is unset.
        """
        if not token:
            raise AuthenticationError("Missing bearer token")
        if not self.supabase_url or not self.service_key:
            raise ConfigurationError(
                "Authentication is not configured",
                context={"missing": "SUPABASE_URL/SUPABASE_SERVICE_KEY"},
            )

        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {token}",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(f"{self.supabase_url}/auth/v1/user", headers=headers)
        except httpx.HTTPError as e:
            logger.error("Auth service unreachable: %s", str(e))
            raise UpstreamError(
                "Authentication service is unavailable",
                context={"error_type": type(e).__name__},
            ) from e

        if response.status_code != 200:
            logger.info("Token rejected by auth service (status %d)", response.status_code)
            raise AuthenticationError("Unauthorized")

        try:
            user_id = response.json().get("id")
        except (ValueError, AttributeError):
            user_id = None
        if not user_id:
            raise AuthenticationError("Unauthorized")
        return str(user_id)
