"""
test_submission_models.py — Tests for submission value types.

Covers:
    • build_payload (missing file, wire-name aliases, opaque fields)
    • SubmissionPayload immutability and wire field names
    • ChannelOutcome success / failure tagging and descriptions
    • SubmissionResult properties and to_dict rendering

Run with:
    pytest tests/test_submission_models.py -v
"""

from __future__ import annotations

import dataclasses

import pytest

from backend.app.core.errors import ValidationError
from backend.app.submission.models import (
    BinaryBlobRef,
    ChannelAttempt,
    ChannelErrorKind,
    ChannelOutcome,
    FailureReason,
    ResultKind,
    SubmissionPayload,
    SubmissionResult,
    build_payload,
)


def _make_blob(content: bytes = b"name,sex\nalice,female\n") -> BinaryBlobRef:
    return BinaryBlobRef(filename="people.csv", content=content, content_type="text/csv")


def _make_fields(**overrides) -> dict:
    fields = {
        "username": "alice",
        "email": "alice@example.com",
        "phoneCode": "+44",
        "phone": "7700900123",
    }
    fields.update(overrides)
    return fields


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Payload construction
# ═══════════════════════════════════════════════════════════════════════════

class TestBuildPayload:
    """Test build_payload validation and field mapping."""

    def test_missing_file_raises_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            build_payload(_make_fields(), None)
        assert exc_info.value.message == "missing file"
        assert exc_info.value.field == "file"
        assert exc_info.value.status_code == 422

    def test_wire_names_mapped_to_snake_case(self):
        payload = build_payload(_make_fields(), _make_blob())
        assert payload.phone_country_code == "+44"
        assert payload.phone_number == "7700900123"

    def test_snake_case_names_accepted(self):
        payload = build_payload(
            {"phone_country_code": "+1", "phone_number": "5550100"},
            _make_blob(),
        )
        assert payload.phone_country_code == "+1"
        assert payload.phone_number == "5550100"

    def test_missing_text_fields_default_to_empty(self):
        payload = build_payload({}, _make_blob())
        assert payload.username == ""
        assert payload.email == ""

    def test_fields_passed_through_without_validation(self):
        payload = build_payload(_make_fields(email="not-an-email"), _make_blob())
        assert payload.email == "not-an-email"

    def test_direct_construction_without_file_rejected(self):
        with pytest.raises(ValidationError):
            SubmissionPayload("a", "b", "c", "d", None)


class TestSubmissionPayload:
    """Test payload immutability and rendering."""

    def test_payload_is_frozen(self):
        payload = build_payload(_make_fields(), _make_blob())
        with pytest.raises(dataclasses.FrozenInstanceError):
            payload.username = "mallory"

    def test_form_fields_use_wire_names(self):
        payload = build_payload(_make_fields(), _make_blob())
        assert payload.form_fields() == {
            "username": "alice",
            "email": "alice@example.com",
            "phoneCode": "+44",
            "phone": "7700900123",
        }

    def test_to_dict_describes_file_without_content(self):
        payload = build_payload(_make_fields(), _make_blob(b"12345"))
        d = payload.to_dict()
        assert d["file"] == {"filename": "people.csv", "content_type": "text/csv", "size": 5}

    def test_blob_size(self):
        assert _make_blob(b"").size == 0
        assert _make_blob(b"abc").size == 3


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Channel outcomes
# ═══════════════════════════════════════════════════════════════════════════

class TestChannelOutcome:
    """Test ChannelOutcome tagging."""

    def test_success_has_no_error_kind(self):
        outcome = ChannelOutcome.success("abc123")
        assert outcome.ok
        assert outcome.locator == "abc123"
        assert outcome.error_kind is None
        assert outcome.describe() == "success"

    def test_success_without_locator(self):
        assert ChannelOutcome.success().locator is None

    def test_failure_carries_kind_and_message(self):
        outcome = ChannelOutcome.failure(ChannelErrorKind.TIMEOUT, "too slow")
        assert not outcome.ok
        assert outcome.error_kind == ChannelErrorKind.TIMEOUT
        assert outcome.describe() == "timeout"

    def test_server_rejected_describes_status(self):
        outcome = ChannelOutcome.failure(
            ChannelErrorKind.SERVER_REJECTED, "boom", status_code=500,
        )
        assert outcome.describe() == "server_rejected(500)"
        assert outcome.to_dict()["status_code"] == 500

    def test_error_kind_values(self):
        assert {k.value for k in ChannelErrorKind} == {
            "network_unreachable", "timeout", "server_rejected", "unsupported",
        }


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Submission result
# ═══════════════════════════════════════════════════════════════════════════

class TestSubmissionResult:
    """Test SubmissionResult properties and serialisation."""

    def test_default_id_generated(self):
        result = SubmissionResult(kind=ResultKind.HARD_SUCCESS)
        assert result.submission_id.startswith("SUB-")

    def test_hard_success_reaches_remote(self):
        result = SubmissionResult(kind=ResultKind.HARD_SUCCESS)
        assert result.succeeded
        assert result.reached_remote

    def test_soft_success_does_not_reach_remote(self):
        result = SubmissionResult(kind=ResultKind.SOFT_SUCCESS)
        assert result.succeeded
        assert not result.reached_remote

    def test_total_failure(self):
        result = SubmissionResult(
            kind=ResultKind.TOTAL_FAILURE, failure_reason=FailureReason.EXHAUSTED,
        )
        assert not result.succeeded
        assert result.to_dict()["failure_reason"] == "exhausted"

    def test_result_is_frozen(self):
        result = SubmissionResult(kind=ResultKind.HARD_SUCCESS)
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.kind = ResultKind.TOTAL_FAILURE

    def test_to_dict_renders_attempts_in_order(self):
        attempts = (
            ChannelAttempt("direct", ChannelOutcome.failure(ChannelErrorKind.TIMEOUT, "t/o"), 12.34),
            ChannelAttempt("proxy", ChannelOutcome.success("abc123"), 5.0),
        )
        result = SubmissionResult(
            kind=ResultKind.HARD_SUCCESS, locator="abc123", attempts=attempts,
        )
        d = result.to_dict()
        assert d["attempt_count"] == 2
        assert [a["label"] for a in d["attempts"]] == ["direct", "proxy"]
        assert d["attempts"][0]["outcome"] == "timeout"
        assert d["attempts"][0]["duration_ms"] == 12.3
        assert d["attempts"][1]["locator"] == "abc123"
        assert [a.label for a in result.failed_attempts] == ["direct"]
