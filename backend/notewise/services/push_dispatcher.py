"""
NoteWise Backend — Expo Push Dispatcher
========================================

What:  Delivers composed payloads to the Expo push service.
How:   One POST of a JSON array per chunk of PUSH_BATCH_SIZE (Expo accepts at
       most 100 messages per request).
Who:   NotificationJob, exactly once per run, in its Dispatching state.

Delivery semantics (at-most-once):
    - Transport error or non-2xx on any chunk → DispatchError; chunks already
      accepted are not re-sent
    - 2xx with {"data": [ticket, ...]}: ticket.status == "ok" counts as sent,
      anything else is a per-item failure with the provider's reason
    - 2xx without a ticket list → the whole chunk counts as sent
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from notewise.config import settings
from notewise.exceptions import DispatchError
from notewise.schemas.notification import DispatchFailure, DispatchResult, NotificationPayload

logger = logging.getLogger(__name__)


def _ticket_reason(ticket: Any) -> str:
    if not isinstance(ticket, dict):
        return "invalid ticket"
    details = ticket.get("details") if isinstance(ticket.get("details"), dict) else {}
    return str(ticket.get("message") or details.get("error") or ticket.get("status") or "unknown")


class PushDispatcher:
    def __init__(
        self,
        push_url: Optional[str] = None,
        access_token: Optional[str] = None,
        batch_size: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.push_url = push_url or settings.expo_push_url
        self.access_token = access_token if access_token is not None else settings.expo_access_token
        self.batch_size = batch_size or settings.push_batch_size
        self.timeout = timeout or settings.push_timeout_seconds
        self._transport = transport

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def dispatch(self, payloads: Sequence[NotificationPayload]) -> DispatchResult:
        """
        Send every payload; report how many the provider accepted.

        Raises:
            DispatchError: a chunk could not be delivered at all.
        """
        result = DispatchResult()
        if not payloads:
            return result

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for start in range(0, len(payloads), self.batch_size):
                chunk = list(payloads[start:start + self.batch_size])
                sent, failures = await self._send_chunk(client, chunk)
                result.sent_count += sent
                result.failures.extend(failures)

        if result.failures:
            logger.warning(
                "Push provider rejected %d of %d notifications",
                len(result.failures),
                len(payloads),
            )
        logger.info("Dispatched %d of %d notifications", result.sent_count, len(payloads))
        return result

    async def _send_chunk(
        self,
        client: httpx.AsyncClient,
        chunk: List[NotificationPayload],
    ) -> Tuple[int, List[DispatchFailure]]:
        try:
            response = await client.post(
                self.push_url,
                json=[payload.to_wire() for payload in chunk],
                headers=self.headers,
            )
        except httpx.HTTPError as e:
            logger.error("Push provider unreachable: %s", str(e))
            raise DispatchError(
                "Failed to send notifications",
                context={"error_type": type(e).__name__, "chunk_size": len(chunk)},
            ) from e

        if not response.is_success:
            logger.error(
                "Push provider returned %d: %s",
                response.status_code,
                response.text[:500],
            )
            raise DispatchError(
                "Failed to send notifications",
                status_code=response.status_code,
                context={"chunk_size": len(chunk)},
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        tickets = body.get("data") if isinstance(body, dict) else None
        if not isinstance(tickets, list):
            return len(chunk), []

        sent = 0
        failures: List[DispatchFailure] = []
        for payload, ticket in zip(chunk, tickets):
            if isinstance(ticket, dict) and ticket.get("status") == "ok":
                sent += 1
            else:
                failures.append(DispatchFailure(payload=payload, reason=_ticket_reason(ticket)))
        for payload in chunk[len(tickets):]:
            failures.append(DispatchFailure(payload=payload, reason="missing ticket"))
        return sent, failures
