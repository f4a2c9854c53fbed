"""
models.py — Shared data structures for the submission orchestrator.

Defines:
    • BinaryBlobRef     — the file being submitted (name, bytes, type)
    • SubmissionPayload — immutable form fields + file, built once per submit
    • ChannelErrorKind  — why a single channel attempt failed
    • ChannelOutcome    — Success / Failure result of one attempt
    • DeliveryClass     — what a channel's success actually proves
    • ResultKind        — HARD_SUCCESS / SOFT_SUCCESS / TOTAL_FAILURE
    • ChannelAttempt    — one {label, outcome} entry of the attempt log
    • SubmissionResult  — final output of one orchestration run

═══════════════════════════════════════════════════════════════════════════
OUTCOME CLASSIFICATION
═══════════════════════════════════════════════════════════════════════════

The first successful channel decides the result kind:

    Delivery class       Example channel            Result kind
    ──────────────       ───────────────            ────────────
    REMOTE               direct / proxies / CORS    HARD_SUCCESS
    NOTIFICATION_ONLY    message relay (no file)    SOFT_SUCCESS
    LOCAL_ONLY           local object handle        SOFT_SUCCESS
    (none succeeded)     —                          TOTAL_FAILURE

A soft success means the user still has their file but no remote
party received it. It is never reported as a hard success.

═══════════════════════════════════════════════════════════════════════════
WIRE FIELD NAMES
═══════════════════════════════════════════════════════════════════════════

The collection server expects the multipart fields
``username``, ``email``, ``phoneCode``, ``phone`` and ``file``.
``build_payload`` accepts either those keys or the snake_case names.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from backend.app.core.errors import ValidationError


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class ChannelErrorKind(str, Enum):
    """Per-channel failure taxonomy. Always recoverable by falling through."""
    NETWORK_UNREACHABLE = "network_unreachable"
    TIMEOUT             = "timeout"
    SERVER_REJECTED     = "server_rejected"   # carries the HTTP status code
    UNSUPPORTED         = "unsupported"


class DeliveryClass(str, Enum):
    """What a successful attempt on a channel proves."""
    REMOTE            = "remote"             # file reached a remote party
    NOTIFICATION_ONLY = "notification_only"  # only metadata was relayed
    LOCAL_ONLY        = "local_only"         # nothing left this process


class ResultKind(str, Enum):
    HARD_SUCCESS  = "hard_success"
    SOFT_SUCCESS  = "soft_success"
    TOTAL_FAILURE = "total_failure"


class FailureReason(str, Enum):
    """Why a run ended in TOTAL_FAILURE."""
    VALIDATION_ERROR = "validation_error"
    EXHAUSTED        = "exhausted"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_submission_id() -> str:
    return f"SUB-{uuid.uuid4().hex[:12].upper()}"


# ═══════════════════════════════════════════════════════════════════════════
# Payload
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BinaryBlobRef:
    """A file selected by the user. Content is held in memory."""
    filename: str
    content: bytes = field(repr=False)
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "size": self.size,
        }


@dataclass(frozen=True)
class SubmissionPayload:
    """
    Form fields plus one file, frozen for the lifetime of a run.

    Attributes
    ----------
    username, email, phone_country_code, phone_number : str
        Passed through opaquely; the core performs no semantic checks.
    file : BinaryBlobRef
        Required. Construction fails with ValidationError when missing.
    """
    username: str
    email: str
    phone_country_code: str
    phone_number: str
    file: BinaryBlobRef

    def __post_init__(self) -> None:
        if self.file is None:
            raise ValidationError("missing file", field="file")

    def form_fields(self) -> Dict[str, str]:
        """Text fields under the collection server's wire names."""
        return {
            "username": self.username,
            "email": self.email,
            "phoneCode": self.phone_country_code,
            "phone": self.phone_number,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {**self.form_fields(), "file": self.file.to_dict()}


_FIELD_ALIASES = {
    "username": ("username",),
    "email": ("email",),
    "phone_country_code": ("phone_country_code", "phoneCode"),
    "phone_number": ("phone_number", "phone"),
}


def build_payload(
    fields: Mapping[str, Any],
    file: Optional[BinaryBlobRef],
) -> SubmissionPayload:
    """
    Build a SubmissionPayload from raw form fields and a file.

    Raises
    ------
    ValidationError
        "missing file" when ``file`` is None. No other field is validated.
    """
    if file is None:
        raise ValidationError("missing file", field="file")

    values: Dict[str, str] = {}
    for name, aliases in _FIELD_ALIASES.items():
        raw = next((fields[a] for a in aliases if fields.get(a) is not None), "")
        values[name] = str(raw)

    return SubmissionPayload(file=file, **values)


# ═══════════════════════════════════════════════════════════════════════════
# Channel outcomes
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ChannelOutcome:
    """
    Tagged result of one channel attempt.

    Use ``ChannelOutcome.success(...)`` / ``ChannelOutcome.failure(...)``
    rather than the constructor. ``error_kind`` is None exactly when
    ``ok`` is True.
    """
    ok: bool
    locator: Optional[str] = None
    error_kind: Optional[ChannelErrorKind] = None
    message: str = ""
    status_code: Optional[int] = None

    @classmethod
    def success(cls, locator: Optional[str] = None, *, status_code: Optional[int] = None) -> "ChannelOutcome":
        return cls(ok=True, locator=locator, status_code=status_code)

    @classmethod
    def failure(
        cls,
        kind: ChannelErrorKind,
        message: str,
        *,
        status_code: Optional[int] = None,
    ) -> "ChannelOutcome":
        return cls(ok=False, error_kind=kind, message=message, status_code=status_code)

    def describe(self) -> str:
        """Short label for logs and failure summaries."""
        if self.ok:
            return "success"
        if self.error_kind == ChannelErrorKind.SERVER_REJECTED:
            return f"server_rejected({self.status_code})"
        return self.error_kind.value if self.error_kind else "failure"

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"ok": self.ok}
        if self.ok:
            d["locator"] = self.locator
        else:
            d["error_kind"] = self.error_kind.value if self.error_kind else None
            d["message"] = self.message
        if self.status_code is not None:
            d["status_code"] = self.status_code
        return d


@dataclass(frozen=True)
class ChannelAttempt:
    """One entry of the ordered attempt log."""
    label: str
    outcome: ChannelOutcome
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "outcome": self.outcome.describe(),
            "duration_ms": round(self.duration_ms, 1),
            **self.outcome.to_dict(),
        }


# ═══════════════════════════════════════════════════════════════════════════
# Submission result
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SubmissionResult:
    """Final output of one orchestration run. Never mutated after creation."""
    kind: ResultKind
    submission_id: str = field(default_factory=new_submission_id)
    locator: Optional[str] = None
    attempts: Tuple[ChannelAttempt, ...] = ()
    failure_reason: Optional[FailureReason] = None
    message: str = ""
    delivered_by: Optional[str] = None
    started_at: datetime = field(default_factory=_now)
    completed_at: datetime = field(default_factory=_now)

    @property
    def succeeded(self) -> bool:
        return self.kind != ResultKind.TOTAL_FAILURE

    @property
    def reached_remote(self) -> bool:
        return self.kind == ResultKind.HARD_SUCCESS

    @property
    def failed_attempts(self) -> Tuple[ChannelAttempt, ...]:
        return tuple(a for a in self.attempts if not a.outcome.ok)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "kind": self.kind.value,
            "failure_reason": (
                self.failure_reason.value if self.failure_reason else None
            ),
            "locator": self.locator,
            "delivered_by": self.delivered_by,
            "message": self.message,
            "attempt_count": len(self.attempts),
            "attempts": [a.to_dict() for a in self.attempts],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
        }
