"""
orchestrator.py — Sequential fail-over delivery engine.

Takes one submission and walks the channel registry in order until a
channel accepts it:

═══════════════════════════════════════════════════════════════════════════
ORCHESTRATION FLOW
═══════════════════════════════════════════════════════════════════════════

    ┌─────────────────────┐
    │  IDLE               │
    └─────────┬───────────┘
              │ submit(fields, file)
              ▼
    ┌─────────────────────┐   missing file
    │  VALIDATING         │ ───────────────▶ TOTAL_FAILURE (validation_error)
    └─────────┬───────────┘                  no channel, no progress ramp
              │ progress.start()
              ▼
    ┌─────────────────────┐   Failure
    │  ATTEMPTING(i)      │ ───────────────▶ ATTEMPTING(i+1)
    └─────────┬───────────┘
              │ Success                      │ last channel failed
              ▼                              ▼
    ┌─────────────────────┐        ┌─────────────────────┐
    │  SUCCEEDED          │        │  EXHAUSTED          │
    │  progress → 100     │        │  progress → 0       │
    │  HARD / SOFT        │        │  TOTAL_FAILURE      │
    └─────────┬───────────┘        └─────────┬───────────┘
              └───────────────┬──────────────┘
                              ▼
                            IDLE

═══════════════════════════════════════════════════════════════════════════
RETRY POLICY
═══════════════════════════════════════════════════════════════════════════

The registry order is the only retry policy:
    • No backoff and no second attempt on any channel
    • No channel after the first success is ever invoked
    • No parallel racing; attempt i+1 starts after attempt i resolved
    • Each attempt is bounded by per_channel_timeout

Classification of the first success:
    REMOTE channel                    → HARD_SUCCESS
    NOTIFICATION_ONLY / LOCAL_ONLY    → SOFT_SUCCESS
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple

from backend.app.core.errors import ValidationError
from backend.app.core.logging_config import submission_context
from backend.app.submission.models import (
    BinaryBlobRef,
    ChannelAttempt,
    DeliveryClass,
    FailureReason,
    ResultKind,
    SubmissionPayload,
    SubmissionResult,
    build_payload,
    new_submission_id,
)
from backend.app.submission.progress import ProgressController
from backend.app.submission.registry import ChannelRegistry, RegistryEntry

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_TIMEOUT_SECONDS = 30.0


class OrchestratorState(str, Enum):
    IDLE       = "idle"
    VALIDATING = "validating"
    ATTEMPTING = "attempting"
    SUCCEEDED  = "succeeded"
    EXHAUSTED  = "exhausted"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _classify(entry: RegistryEntry) -> ResultKind:
    if entry.channel.delivery_class == DeliveryClass.REMOTE:
        return ResultKind.HARD_SUCCESS
    return ResultKind.SOFT_SUCCESS


def _success_message(entry: RegistryEntry, locator: Optional[str]) -> str:
    delivery_class = entry.channel.delivery_class
    if delivery_class == DeliveryClass.REMOTE:
        return f"Delivered via {entry.label}"
    if delivery_class == DeliveryClass.NOTIFICATION_ONLY:
        return (
            f"File was not delivered; only a notification was sent via {entry.label}"
        )
    return (
        "File was not delivered to any remote party; "
        f"it is retained locally at {locator}"
    )


def summarize_failures(attempts: Tuple[ChannelAttempt, ...]) -> str:
    """'All 2 channels failed: direct (timeout), proxy (server_rejected(502))'."""
    if not attempts:
        return "No delivery channels registered"
    parts = ", ".join(f"{a.label} ({a.outcome.describe()})" for a in attempts)
    noun = "channel" if len(attempts) == 1 else "channels"
    return f"All {len(attempts)} {noun} failed: {parts}"


class FallbackOrchestrator:
    """
    Drives a ChannelRegistry for one submission at a time.

    Parameters
    ----------
    registry : ChannelRegistry
        Channels in fallback order.
    progress : ProgressController | None
        Percent owner for the run; a default controller is created if None.
    per_channel_timeout : float
        Upper bound in seconds for each channel attempt.

    One run per instance at a time; callers serialise submissions.
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        *,
        progress: Optional[ProgressController] = None,
        per_channel_timeout: float = DEFAULT_CHANNEL_TIMEOUT_SECONDS,
    ):
        if per_channel_timeout <= 0:
            raise ValueError("per_channel_timeout must be positive")
        self.registry = registry
        self.progress = progress if progress is not None else ProgressController()
        self.per_channel_timeout = per_channel_timeout
        self._state = OrchestratorState.IDLE
        self._current_index: Optional[int] = None
        # (state, channel index) pairs of the latest run, for diagnostics
        self.transitions: List[Tuple[OrchestratorState, Optional[int]]] = []

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def current_index(self) -> Optional[int]:
        return self._current_index

    def _enter(self, state: OrchestratorState, index: Optional[int] = None) -> None:
        self._state = state
        self._current_index = index
        self.transitions.append((state, index))

    # ── Entry points ──

    async def submit(
        self,
        fields: Mapping[str, Any],
        file: Optional[BinaryBlobRef],
        *,
        submission_id: Optional[str] = None,
    ) -> SubmissionResult:
        """Build, validate and deliver one submission."""
        self._begin()
        submission_id = submission_id or new_submission_id()
        started = _now()

        self._enter(OrchestratorState.VALIDATING)
        try:
            payload = build_payload(fields, file)
        except ValidationError as exc:
            logger.warning(
                "Submission %s rejected before any channel: %s",
                submission_id, exc.message,
                extra={"submission_id": submission_id},
            )
            self._enter(OrchestratorState.IDLE)
            return SubmissionResult(
                kind=ResultKind.TOTAL_FAILURE,
                submission_id=submission_id,
                failure_reason=FailureReason.VALIDATION_ERROR,
                message=exc.message,
                started_at=started,
                completed_at=_now(),
            )

        with submission_context(submission_id):
            return await self._deliver(payload, submission_id, started)

    async def run(
        self,
        payload: SubmissionPayload,
        *,
        submission_id: Optional[str] = None,
    ) -> SubmissionResult:
        """Deliver an already-built payload."""
        self._begin()
        submission_id = submission_id or new_submission_id()
        with submission_context(submission_id):
            return await self._deliver(payload, submission_id, _now())

    # ── Core loop ──

    def _begin(self) -> None:
        if self._state != OrchestratorState.IDLE:
            raise RuntimeError(
                f"Orchestrator is busy ({self._state.value}); one submission at a time"
            )
        self.transitions = [(OrchestratorState.IDLE, None)]

    async def _deliver(
        self,
        payload: SubmissionPayload,
        submission_id: str,
        started: datetime,
    ) -> SubmissionResult:
        log_extra = {"submission_id": submission_id}
        logger.info(
            "Submission %s: %s (%d bytes) via %d channels [%s]",
            submission_id, payload.file.filename, payload.file.size,
            len(self.registry), ", ".join(self.registry.labels),
            extra={**log_extra, "attempt_count": len(self.registry)},
        )

        attempts: List[ChannelAttempt] = []
        try:
            self.progress.start()
            for index, entry in enumerate(self.registry):
                self._enter(OrchestratorState.ATTEMPTING, index)
                t0 = time.perf_counter()
                outcome = await entry.channel.attempt(
                    payload,
                    self.per_channel_timeout,
                    on_progress=self.progress.report_real,
                )
                duration_ms = (time.perf_counter() - t0) * 1000
                attempts.append(ChannelAttempt(entry.label, outcome, duration_ms))

                if outcome.ok:
                    kind = _classify(entry)
                    self.progress.finish(True)
                    self._enter(OrchestratorState.SUCCEEDED, index)
                    logger.info(
                        "Submission %s: %s via %s (%.0fms) locator=%s",
                        submission_id, kind.value, entry.label,
                        duration_ms, outcome.locator,
                        extra={
                            **log_extra,
                            "channel": entry.label,
                            "outcome": kind.value,
                            "locator": outcome.locator,
                            "duration_ms": duration_ms,
                        },
                    )
                    return SubmissionResult(
                        kind=kind,
                        submission_id=submission_id,
                        locator=outcome.locator,
                        attempts=tuple(attempts),
                        message=_success_message(entry, outcome.locator),
                        delivered_by=entry.label,
                        started_at=started,
                        completed_at=_now(),
                    )

                logger.warning(
                    "Submission %s: channel %d/%d %s failed — %s: %s",
                    submission_id, index + 1, len(self.registry), entry.label,
                    outcome.describe(), outcome.message,
                    extra={
                        **log_extra,
                        "channel": entry.label,
                        "outcome": outcome.describe(),
                        "attempt_index": index,
                        "status_code": outcome.status_code,
                        "duration_ms": duration_ms,
                    },
                )

            self.progress.finish(False)
            self._enter(OrchestratorState.EXHAUSTED)
            frozen = tuple(attempts)
            message = summarize_failures(frozen)
            logger.error(
                "Submission %s exhausted: %s", submission_id, message,
                extra={**log_extra, "attempt_count": len(frozen)},
            )
            return SubmissionResult(
                kind=ResultKind.TOTAL_FAILURE,
                submission_id=submission_id,
                attempts=frozen,
                failure_reason=FailureReason.EXHAUSTED,
                message=message,
                started_at=started,
                completed_at=_now(),
            )
        finally:
            # Run cancelled or a channel broke its no-raise contract.
            if self._state not in (OrchestratorState.SUCCEEDED, OrchestratorState.EXHAUSTED):
                self.progress.finish(False)
            self._enter(OrchestratorState.IDLE)
