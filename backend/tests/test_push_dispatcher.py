"""
NoteWise Backend — Push Dispatcher Unit Tests
==============================================

What:  PushDispatcher against httpx.MockTransport standing in for Expo.

What we test:
    ✅ Per-ticket accounting ({data: [ok, error]} → sent 1, failed 1)
    ✅ Chunking at PUSH_BATCH_SIZE
    ✅ Non-2xx and transport errors are DispatchError
    ✅ Empty input makes no HTTP call
"""

import json
from datetime import datetime, timezone

import httpx
import pytest

from notewise.exceptions import DispatchError
from notewise.schemas.notification import NoteRecord, ProfileRecord
from notewise.services.notification_composer import compose
from notewise.services.push_dispatcher import PushDispatcher

PUSH_URL = "https://push.test/--/api/v2/push/send"
NOW = datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)


def payload(user_id: str):
    profile = ProfileRecord(id=user_id, push_token=f"ExponentPushToken[{user_id}]")
    note = NoteRecord(id=f"note-{user_id}", owner_id=user_id, title="Groceries", created_at=NOW)
    return compose(profile, [note], NOW)


class RecordingTransport(httpx.MockTransport):
    def __init__(self, responder):
        self.requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return responder(request)

        super().__init__(handler)


def ok_tickets(request: httpx.Request) -> httpx.Response:
    messages = json.loads(request.content)
    return httpx.Response(200, json={"data": [{"status": "ok", "id": str(i)} for i in range(len(messages))]})


class TestPushDispatcher:

    @pytest.mark.asyncio
    async def test_ticket_errors_reduce_sent_count(self):
        transport = RecordingTransport(lambda request: httpx.Response(200, json={
            "data": [
                {"status": "ok", "id": "t1"},
                {"status": "error", "message": "not registered", "details": {"error": "DeviceNotRegistered"}},
            ]
        }))
        dispatcher = PushDispatcher(push_url=PUSH_URL, transport=transport)

        result = await dispatcher.dispatch([payload("u1"), payload("u2")])

        assert result.sent_count == 1
        assert len(result.failures) == 1
        assert result.failures[0].reason == "not registered"
        assert result.failures[0].payload.destination_token == "ExponentPushToken[u2]"

    @pytest.mark.asyncio
    async def test_request_shape(self):
        transport = RecordingTransport(ok_tickets)
        dispatcher = PushDispatcher(push_url=PUSH_URL, access_token="expo-secret", transport=transport)

        await dispatcher.dispatch([payload("u1")])

        request = transport.requests[0]
        assert str(request.url) == PUSH_URL
        assert request.headers["content-type"] == "application/json"
        assert request.headers["accept"] == "application/json"
        assert request.headers["authorization"] == "Bearer expo-secret"
        body = json.loads(request.content)
        assert body[0]["to"] == "ExponentPushToken[u1]"
        assert body[0]["categoryId"] == "daily_summary"

    @pytest.mark.asyncio
    async def test_payloads_are_chunked(self):
        transport = RecordingTransport(ok_tickets)
        dispatcher = PushDispatcher(push_url=PUSH_URL, batch_size=2, transport=transport)

        result = await dispatcher.dispatch([payload(f"u{i}") for i in range(5)])

        assert [len(json.loads(r.content)) for r in transport.requests] == [2, 2, 1]
        assert result.sent_count == 5

    @pytest.mark.asyncio
    async def test_body_without_tickets_counts_chunk_as_sent(self):
        transport = RecordingTransport(lambda request: httpx.Response(200, text="accepted"))
        dispatcher = PushDispatcher(push_url=PUSH_URL, transport=transport)

        result = await dispatcher.dispatch([payload("u1"), payload("u2")])

        assert result.sent_count == 2
        assert result.failures == []

    @pytest.mark.asyncio
    async def test_non_2xx_is_dispatch_error(self):
        transport = RecordingTransport(lambda request: httpx.Response(503, text="unavailable"))
        dispatcher = PushDispatcher(push_url=PUSH_URL, transport=transport)

        with pytest.raises(DispatchError) as exc_info:
            await dispatcher.dispatch([payload("u1")])
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_transport_error_is_dispatch_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        dispatcher = PushDispatcher(push_url=PUSH_URL, transport=httpx.MockTransport(refuse))

        with pytest.raises(DispatchError):
            await dispatcher.dispatch([payload("u1")])

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_call(self):
        transport = RecordingTransport(ok_tickets)
        dispatcher = PushDispatcher(push_url=PUSH_URL, transport=transport)

        result = await dispatcher.dispatch([])

        assert result.sent_count == 0
        assert transport.requests == []
