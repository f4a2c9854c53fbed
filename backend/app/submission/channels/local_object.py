"""
local_object.py — Last-resort channel that keeps the file locally.

No network call is made. The file bytes are registered in a
LocalObjectStore and the resulting ``blob:`` handle is returned as the
locator, so the user can at least retrieve their own file.

This channel always succeeds from the orchestrator's point of view,
but its delivery class is LOCAL_ONLY: the run is reported as
SOFT_SUCCESS wherever the channel sits in the registry.
"""

from __future__ import annotations

import logging
from typing import Optional

from backend.app.submission.channels.base import ProgressCallback, TransportChannel
from backend.app.submission.local_store import LocalObjectStore
from backend.app.submission.models import (
    ChannelOutcome,
    DeliveryClass,
    SubmissionPayload,
)

logger = logging.getLogger(__name__)


class LocalObjectUrlChannel(TransportChannel):
    name = "local_object"
    delivery_class = DeliveryClass.LOCAL_ONLY

    def __init__(self, store: LocalObjectStore):
        self.store = store

    def describe(self) -> str:
        return f"local objects @ {self.store.origin}"

    async def _send(
        self,
        payload: SubmissionPayload,
        timeout_seconds: float,
        on_progress: Optional[ProgressCallback],
    ) -> ChannelOutcome:
        url = self.store.create_object_url(payload.file)
        logger.warning(
            "[LOCAL] %s retained locally as %s (not delivered to any remote party)",
            payload.file.filename, url,
            extra={"channel": self.name, "locator": url},
        )
        return ChannelOutcome.success(url)
