"""
test_channels.py — Tests for the delivery channel backends.

Covers:
    • TransportChannel exception → ChannelOutcome mapping
    • HTTP upload channels (multipart body, headers, locator extraction,
      rejections, real upload progress)
    • CORS relay URL composition and Origin header
    • Notification relay (metadata only, never the file)
    • Local object channel and store

HTTP is faked with httpx.MockTransport; async code runs under asyncio.run.

Run with:
    pytest tests/test_channels.py -v
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from backend.app.submission.channels import (
    CorsProxyChannel,
    DirectServerChannel,
    FunctionProxyChannel,
    LocalObjectUrlChannel,
    LocalProxyChannel,
    NotificationOnlyChannel,
)
from backend.app.submission.channels.http_upload import extract_locator
from backend.app.submission.channels.notification import NOTICE_MAX_CHARS
from backend.app.submission.local_store import LocalObjectStore
from backend.app.submission.models import (
    BinaryBlobRef,
    ChannelErrorKind,
    DeliveryClass,
    build_payload,
)

UPLOAD_URL = "http://collector.test/upload"
FILE_BYTES = b"name,sex\nalice,female\nbob,male\n" * 50


def _make_payload(content: bytes = FILE_BYTES, username: str = "alice"):
    return build_payload(
        {"username": username, "email": "alice@example.com", "phoneCode": "+44", "phone": "7700900123"},
        BinaryBlobRef("people.csv", content, "text/csv"),
    )


def _json_handler(status: int, body, seen: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=body)
    return handler


def _attempt(channel_factory, handler, *, timeout: float = 5.0, on_progress=None):
    """Build a channel around a mock client and run one attempt."""
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            channel = channel_factory(client)
            return await channel.attempt(_make_payload(), timeout, on_progress=on_progress)
    return asyncio.run(scenario())


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Locator extraction
# ═══════════════════════════════════════════════════════════════════════════

class TestExtractLocator:

    @pytest.mark.parametrize("body,expected", [
        ({"submission": {"fileURL": "/uploads/a.csv", "id": "s1"}}, "/uploads/a.csv"),
        ({"submission": {"id": "s1"}}, "s1"),
        ({"fileURL": "/uploads/b.csv"}, "/uploads/b.csv"),
        ({"locator": "abc123"}, "abc123"),
        ({"url": "https://cdn.test/x"}, "https://cdn.test/x"),
        ({"id": 42}, "42"),
        ({"fileURL": "", "id": "fallback"}, "fallback"),
    ])
    def test_lookup_order(self, body, expected):
        assert extract_locator(body) == expected

    @pytest.mark.parametrize("body", [None, [], "text", {}, {"success": True}])
    def test_no_locator(self, body):
        assert extract_locator(body) is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: HTTP upload channels
# ═══════════════════════════════════════════════════════════════════════════

class TestHttpUploadChannel:

    def test_success_returns_server_locator(self):
        body = {"success": True, "submission": {"id": "1700000000", "fileURL": "/uploads/people.csv"}}
        outcome = _attempt(
            lambda c: DirectServerChannel(UPLOAD_URL, client=c),
            _json_handler(200, body),
        )
        assert outcome.ok
        assert outcome.locator == "/uploads/people.csv"
        assert outcome.status_code == 200

    def test_request_is_multipart_with_wire_fields(self):
        seen = []
        _attempt(
            lambda c: DirectServerChannel(UPLOAD_URL, client=c),
            _json_handler(200, {"locator": "abc123"}, seen),
        )
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == UPLOAD_URL
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert request.headers["x-requested-with"] == "XMLHttpRequest"
        body = request.content
        for name in (b'name="username"', b'name="email"', b'name="phoneCode"', b'name="phone"'):
            assert name in body
        assert b'name="file"; filename="people.csv"' in body
        assert FILE_BYTES in body

    def test_non_json_success_has_no_locator(self):
        outcome = _attempt(
            lambda c: DirectServerChannel(UPLOAD_URL, client=c),
            lambda request: httpx.Response(200, text="OK"),
        )
        assert outcome.ok
        assert outcome.locator is None

    def test_server_error_is_rejection(self):
        outcome = _attempt(
            lambda c: DirectServerChannel(UPLOAD_URL, client=c),
            _json_handler(500, {"error": "disk full"}),
        )
        assert not outcome.ok
        assert outcome.error_kind == ChannelErrorKind.SERVER_REJECTED
        assert outcome.status_code == 500
        assert "disk full" in outcome.message

    def test_client_error_is_rejection(self):
        outcome = _attempt(
            lambda c: DirectServerChannel(UPLOAD_URL, client=c),
            _json_handler(400, {"error": "No file uploaded"}),
        )
        assert outcome.error_kind == ChannelErrorKind.SERVER_REJECTED
        assert outcome.describe() == "server_rejected(400)"

    def test_connection_error_is_network_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        outcome = _attempt(lambda c: DirectServerChannel(UPLOAD_URL, client=c), handler)
        assert outcome.error_kind == ChannelErrorKind.NETWORK_UNREACHABLE
        assert "connection refused" in outcome.message

    def test_transport_timeout_is_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        outcome = _attempt(lambda c: DirectServerChannel(UPLOAD_URL, client=c), handler)
        assert outcome.error_kind == ChannelErrorKind.TIMEOUT

    def test_slow_server_bounded_by_attempt_timeout(self):
        async def handler(request):
            await asyncio.sleep(1.0)
            return httpx.Response(200, json={"locator": "late"})

        outcome = _attempt(
            lambda c: DirectServerChannel(UPLOAD_URL, client=c), handler, timeout=0.05,
        )
        assert outcome.error_kind == ChannelErrorKind.TIMEOUT

    def test_unexpected_error_is_unsupported(self):
        def handler(request):
            raise RuntimeError("transport exploded")

        outcome = _attempt(lambda c: DirectServerChannel(UPLOAD_URL, client=c), handler)
        assert outcome.error_kind == ChannelErrorKind.UNSUPPORTED
        assert "transport exploded" in outcome.message

    def test_upload_progress_reported(self):
        reported = []
        _attempt(
            lambda c: DirectServerChannel(UPLOAD_URL, client=c),
            _json_handler(200, {"locator": "abc123"}),
            on_progress=reported.append,
        )
        assert reported
        assert reported == sorted(reported)
        assert reported[-1] == pytest.approx(100.0)

    def test_proxy_variants_post_to_their_own_url(self):
        for cls, url in (
            (LocalProxyChannel, "http://gateway.test/api/v1/relay/upload"),
            (FunctionProxyChannel, "http://site.test/.netlify/functions/upload-proxy"),
        ):
            seen = []
            outcome = _attempt(lambda c: cls(url, client=c), _json_handler(200, {"locator": "x"}, seen))
            assert outcome.ok
            assert str(seen[0].url) == url

    def test_empty_url_rejected(self):
        with pytest.raises(ValueError):
            DirectServerChannel("")

    def test_remote_delivery_class(self):
        assert DirectServerChannel(UPLOAD_URL).delivery_class == DeliveryClass.REMOTE


class TestCorsProxyChannel:

    def test_target_appended_to_proxy_base(self):
        seen = []
        outcome = _attempt(
            lambda c: CorsProxyChannel(
                "https://relay.test/", UPLOAD_URL, origin="http://form.test", client=c,
            ),
            _json_handler(200, {"fileURL": "/uploads/people.csv"}, seen),
        )
        assert outcome.ok
        assert str(seen[0].url) == "https://relay.test/" + UPLOAD_URL
        assert seen[0].headers["origin"] == "http://form.test"
        assert seen[0].headers["x-requested-with"] == "XMLHttpRequest"

    def test_describe_names_relay_and_target(self):
        channel = CorsProxyChannel("https://relay.test/", UPLOAD_URL)
        assert "relay.test" in channel.describe()
        assert UPLOAD_URL in channel.describe()

    def test_missing_base_rejected(self):
        with pytest.raises(ValueError):
            CorsProxyChannel("", UPLOAD_URL)


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Notification relay
# ═══════════════════════════════════════════════════════════════════════════

class TestNotificationOnlyChannel:

    def test_sends_metadata_without_file(self):
        seen = []
        outcome = _attempt(
            lambda c: NotificationOnlyChannel("http://notify.test/send", chat_id="ops", client=c),
            _json_handler(200, {"ok": True}, seen),
        )
        assert outcome.ok
        assert outcome.locator is None

        request = seen[0]
        assert FILE_BYTES not in request.content
        message = json.loads(request.content)
        assert message["chat_id"] == "ops"
        assert message["fields"]["email"] == "alice@example.com"
        assert message["file"]["filename"] == "people.csv"
        assert message["file"]["size"] == len(FILE_BYTES)
        assert "alice" in message["text"]

    def test_chat_id_omitted_when_unset(self):
        channel = NotificationOnlyChannel("http://notify.test/send")
        assert "chat_id" not in channel.build_message(_make_payload())

    def test_notice_truncated(self):
        channel = NotificationOnlyChannel("http://notify.test/send")
        message = channel.build_message(_make_payload(username="x" * 5000))
        assert len(message["text"]) == NOTICE_MAX_CHARS
        assert message["text"].endswith("...")

    def test_relay_rejection(self):
        outcome = _attempt(
            lambda c: NotificationOnlyChannel("http://notify.test/send", client=c),
            _json_handler(503, {"ok": False}),
        )
        assert outcome.error_kind == ChannelErrorKind.SERVER_REJECTED
        assert outcome.status_code == 503

    def test_notification_delivery_class(self):
        channel = NotificationOnlyChannel("http://notify.test/send")
        assert channel.delivery_class == DeliveryClass.NOTIFICATION_ONLY


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Local object channel
# ═══════════════════════════════════════════════════════════════════════════

class TestLocalObjectUrlChannel:

    def test_always_succeeds_with_blob_url(self):
        store = LocalObjectStore("http://gateway.test")
        channel = LocalObjectUrlChannel(store)
        outcome = asyncio.run(channel.attempt(_make_payload(), 1.0))

        assert outcome.ok
        assert outcome.locator.startswith("blob:http://gateway.test/")
        assert store.resolve(outcome.locator).content == FILE_BYTES
        assert channel.delivery_class == DeliveryClass.LOCAL_ONLY

    def test_each_attempt_gets_a_new_handle(self):
        store = LocalObjectStore()
        channel = LocalObjectUrlChannel(store)
        first = asyncio.run(channel.attempt(_make_payload(), 1.0))
        second = asyncio.run(channel.attempt(_make_payload(), 1.0))
        assert first.locator != second.locator
        assert len(store) == 2


class TestLocalObjectStore:

    def test_resolve_by_url_or_id(self):
        store = LocalObjectStore("http://gateway.test/")
        blob = BinaryBlobRef("a.txt", b"hi", "text/plain")
        url = store.create_object_url(blob)
        object_id = LocalObjectStore.object_id_of(url)

        assert url == f"blob:http://gateway.test/{object_id}"
        assert store.resolve(url) is blob
        assert store.resolve(object_id) is blob

    def test_revoke(self):
        store = LocalObjectStore()
        url = store.create_object_url(BinaryBlobRef("a.txt", b"hi", "text/plain"))
        assert store.revoke(url)
        assert store.resolve(url) is None
        assert not store.revoke(url)

    def test_clear(self):
        store = LocalObjectStore()
        store.create_object_url(BinaryBlobRef("a.txt", b"hi", "text/plain"))
        store.clear()
        assert len(store) == 0
