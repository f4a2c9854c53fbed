"""
http_upload.py — Multipart upload channels (direct server and proxies).

Delivery mechanism:
    • HTTP POST, multipart/form-data
    • Fields: username, email, phoneCode, phone + binary part ``file``
    • Header X-Requested-With: XMLHttpRequest (the collection server's
      CORS config allows it; some relays require it)

═══════════════════════════════════════════════════════════════════════════
OUTCOME MAPPING
═══════════════════════════════════════════════════════════════════════════

    Transport result                    ChannelOutcome
    ────────────────                    ──────────────
    2xx                                 Success(locator from body)
    non-2xx                             Failure(SERVER_REJECTED, status)
    httpx.TimeoutException              Failure(TIMEOUT)
    other httpx.TransportError          Failure(NETWORK_UNREACHABLE)

Locator lookup order in a JSON body (first non-empty wins):

    submission.fileURL → fileURL → locator → url → submission.id → id

Variants differ only in the endpoint they post to:

    DirectServerChannel    the collection server's /upload
    LocalProxyChannel      same-origin relay (api/v1/relay.py)
    FunctionProxyChannel   serverless relay function
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from backend.app.submission.channels.base import ProgressCallback, TransportChannel
from backend.app.submission.models import (
    ChannelErrorKind,
    ChannelOutcome,
    DeliveryClass,
    SubmissionPayload,
)

logger = logging.getLogger(__name__)

_LOCATOR_PATHS = (
    ("submission", "fileURL"),
    ("fileURL",),
    ("locator",),
    ("url",),
    ("submission", "id"),
    ("id",),
)


def extract_locator(body: Any) -> Optional[str]:
    """Pull the server-assigned locator out of a decoded JSON body."""
    if not isinstance(body, dict):
        return None
    for path in _LOCATOR_PATHS:
        node: Any = body
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        if node not in (None, ""):
            return str(node)
    return None


def _error_detail(response: httpx.Response) -> str:
    """Best-effort one-line reason from a rejected response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                return str(body[key])[:200]
    return str(body)[:200]


class _ProgressStream(httpx.AsyncByteStream):
    """Wraps a request body stream and reports the share of bytes sent."""

    def __init__(self, inner: httpx.AsyncByteStream, total: int, on_progress: ProgressCallback):
        self._inner = inner
        self._total = total
        self._on_progress = on_progress

    async def __aiter__(self):
        sent = 0
        async for chunk in self._inner:
            sent += len(chunk)
            self._on_progress(sent * 100.0 / self._total)
            yield chunk

    async def aclose(self) -> None:
        await self._inner.aclose()


class HttpUploadChannel(TransportChannel):
    """
    Posts the full payload as multipart/form-data to ``url``.

    Parameters
    ----------
    url : str
        Endpoint receiving the upload.
    client : httpx.AsyncClient | None
        Shared client; when None a short-lived client is opened per attempt.
    extra_headers : dict | None
        Added to every request (e.g. Origin for CORS relays).
    """

    name = "http_upload"
    delivery_class = DeliveryClass.REMOTE

    def __init__(
        self,
        url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ):
        if not url:
            raise ValueError(f"{type(self).__name__} requires a non-empty url")
        self.url = url
        self._client = client
        self._headers = {
            "Accept": "application/json",
            "X-Requested-With": "XMLHttpRequest",
            **(extra_headers or {}),
        }

    def describe(self) -> str:
        return self.url

    async def _send(
        self,
        payload: SubmissionPayload,
        timeout_seconds: float,
        on_progress: Optional[ProgressCallback],
    ) -> ChannelOutcome:
        if self._client is not None:
            return await self._post(self._client, payload, timeout_seconds, on_progress)
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            return await self._post(client, payload, timeout_seconds, on_progress)

    async def _post(
        self,
        client: httpx.AsyncClient,
        payload: SubmissionPayload,
        timeout_seconds: float,
        on_progress: Optional[ProgressCallback],
    ) -> ChannelOutcome:
        blob = payload.file
        request = client.build_request(
            "POST",
            self.url,
            data=payload.form_fields(),
            files={"file": (blob.filename, blob.content, blob.content_type)},
            headers=self._headers,
            timeout=httpx.Timeout(timeout_seconds),
        )
        total = int(request.headers.get("Content-Length") or 0)
        if on_progress is not None and total > 0:
            request.stream = _ProgressStream(request.stream, total, on_progress)

        logger.info(
            "[%s] POST %s (%d bytes, file=%s)",
            self.name, self.url, total, blob.filename,
            extra={"channel": self.name},
        )
        response = await client.send(request)

        if not response.is_success:
            return ChannelOutcome.failure(
                ChannelErrorKind.SERVER_REJECTED,
                f"HTTP {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        return ChannelOutcome.success(
            extract_locator(body), status_code=response.status_code,
        )


class DirectServerChannel(HttpUploadChannel):
    """Upload straight to the collection server."""
    name = "direct"


class LocalProxyChannel(HttpUploadChannel):
    """Upload through a same-origin relay that forwards to the server."""
    name = "local_proxy"


class FunctionProxyChannel(HttpUploadChannel):
    """Upload through a serverless relay function."""
    name = "function_proxy"
