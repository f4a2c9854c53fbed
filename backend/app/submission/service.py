"""
service.py — Process-wide owner of the submission machinery.

Holds what outlives a single run:
    • the shared httpx.AsyncClient used by every HTTP channel
    • the channel registry (built once from settings)
    • the local object store behind the local-only channel
    • in-flight progress controllers, keyed by submission id
    • completed results (in memory; production: a database)

Each submit gets a fresh FallbackOrchestrator and ProgressController,
so runs never share a ramp task. A second submit reusing an in-flight
submission id is rejected with SubmissionInProgressError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from backend.app.core.config import Settings
from backend.app.core.errors import SubmissionInProgressError
from backend.app.submission.local_store import LocalObjectStore
from backend.app.submission.models import (
    BinaryBlobRef,
    SubmissionResult,
    new_submission_id,
)
from backend.app.submission.orchestrator import FallbackOrchestrator
from backend.app.submission.progress import ProgressController
from backend.app.submission.registry import ChannelRegistry, build_default_registry

logger = logging.getLogger(__name__)


class SubmissionService:
    def __init__(
        self,
        settings: Settings,
        *,
        client: Optional[httpx.AsyncClient] = None,
        registry: Optional[ChannelRegistry] = None,
        local_store: Optional[LocalObjectStore] = None,
    ):
        self.settings = settings
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.CHANNEL_TIMEOUT_SECONDS),
                follow_redirects=True,
            )
        self.client = client
        # Empty stores and registries are falsy, so test against None
        if local_store is None:
            local_store = LocalObjectStore(settings.LOCAL_OBJECT_ORIGIN)
        self.local_store = local_store
        if registry is None:
            registry = build_default_registry(
                settings, client=self.client, local_store=self.local_store,
            )
        self.registry = registry
        self._in_flight: Dict[str, ProgressController] = {}
        self._results: Dict[str, SubmissionResult] = {}

    async def aclose(self) -> None:
        if self._owns_client and not self.client.is_closed:
            await self.client.aclose()

    def new_orchestrator(self) -> FallbackOrchestrator:
        progress = ProgressController(
            step=self.settings.PROGRESS_STEP,
            interval_seconds=self.settings.PROGRESS_INTERVAL_SECONDS,
            ceiling=self.settings.PROGRESS_CEILING,
        )
        return FallbackOrchestrator(
            self.registry,
            progress=progress,
            per_channel_timeout=self.settings.CHANNEL_TIMEOUT_SECONDS,
        )

    async def submit(
        self,
        fields: Mapping[str, Any],
        file: Optional[BinaryBlobRef],
        *,
        submission_id: Optional[str] = None,
    ) -> SubmissionResult:
        """Run one submission to completion and remember its result."""
        submission_id = submission_id or new_submission_id()
        if submission_id in self._in_flight:
            raise SubmissionInProgressError(submission_id)

        orchestrator = self.new_orchestrator()
        self._in_flight[submission_id] = orchestrator.progress
        try:
            result = await orchestrator.submit(fields, file, submission_id=submission_id)
        finally:
            self._in_flight.pop(submission_id, None)

        self._results[submission_id] = result
        return result

    def is_in_flight(self, submission_id: str) -> bool:
        return submission_id in self._in_flight

    def get_result(self, submission_id: str) -> Optional[SubmissionResult]:
        return self._results.get(submission_id)

    def get_progress(self, submission_id: str) -> Optional[Dict[str, Any]]:
        """Live percent while in flight; 100 / 0 once the result is stored."""
        progress = self._in_flight.get(submission_id)
        if progress is not None:
            return {
                "submission_id": submission_id,
                "in_flight": True,
                "percent": round(progress.percent, 1),
                "ramping": progress.ramping,
            }

        result = self._results.get(submission_id)
        if result is None:
            return None
        return {
            "submission_id": submission_id,
            "in_flight": False,
            "percent": 100.0 if result.succeeded else 0.0,
            "ramping": False,
            "kind": result.kind.value,
        }
