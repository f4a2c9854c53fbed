"""
notification.py — Metadata-only message relay channel.

Last remote channel in the default registry. It never transmits the
file: it posts a short JSON notice that someone tried to submit, so an
operator can follow up by hand.

    POST {relay_url}
    {
        "chat_id": "...",                  (only when configured)
        "text": "Submission attempt: alice <alice@example.com> ...",
        "fields": {"username": ..., "email": ..., "phoneCode": ..., "phone": ...},
        "file": {"filename": "report.xlsx", "content_type": "...", "size": 5120}
    }

A 2xx answer yields Success(locator=None). Because the file itself
never left the client, the orchestrator reports this as SOFT_SUCCESS.
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

NOTICE_MAX_CHARS = 1000


def _format_notice(payload: SubmissionPayload) -> str:
    """One-paragraph plain-text notice, truncated to NOTICE_MAX_CHARS."""
    phone = f"{payload.phone_country_code} {payload.phone_number}".strip()
    text = (
        f"Submission attempt: {payload.username or '(no name)'} "
        f"<{payload.email or 'no email'}>"
        + (f", phone {phone}" if phone else "")
        + f". File '{payload.file.filename}' ({payload.file.size} bytes) "
        "could not be uploaded; only this notice was delivered."
    )
    if len(text) > NOTICE_MAX_CHARS:
        text = text[: NOTICE_MAX_CHARS - 3] + "..."
    return text


class NotificationOnlyChannel(TransportChannel):
    """Posts submission metadata to a message relay; never sends the file."""

    name = "notification"
    delivery_class = DeliveryClass.NOTIFICATION_ONLY

    def __init__(
        self,
        relay_url: str,
        *,
        chat_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not relay_url:
            raise ValueError("NotificationOnlyChannel requires a relay_url")
        self.relay_url = relay_url
        self.chat_id = chat_id
        self._client = client

    def describe(self) -> str:
        return self.relay_url

    def build_message(self, payload: SubmissionPayload) -> Dict[str, Any]:
        message: Dict[str, Any] = {
            "text": _format_notice(payload),
            "fields": payload.form_fields(),
            "file": payload.file.to_dict(),
        }
        if self.chat_id:
            message["chat_id"] = self.chat_id
        return message

    async def _send(
        self,
        payload: SubmissionPayload,
        timeout_seconds: float,
        on_progress: Optional[ProgressCallback],
    ) -> ChannelOutcome:
        message = self.build_message(payload)
        logger.info(
            "[NOTIFY] Relaying metadata for %s to %s (file withheld)",
            payload.file.filename, self.relay_url,
            extra={"channel": self.name},
        )

        if self._client is not None:
            response = await self._client.post(
                self.relay_url, json=message, timeout=timeout_seconds,
            )
        else:
            async with httpx.AsyncClient(timeout=timeout_seconds) as client:
                response = await client.post(self.relay_url, json=message)

        if not response.is_success:
            return ChannelOutcome.failure(
                ChannelErrorKind.SERVER_REJECTED,
                f"Relay answered HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return ChannelOutcome.success(None, status_code=response.status_code)
