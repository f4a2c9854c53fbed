"""
FastAPI route: Form + file submission with channel fail-over.

Provides endpoints to:
    POST   /api/v1/submissions                  — submit form + file
    GET    /api/v1/submissions/channels         — list channels in fallback order
    GET    /api/v1/submissions/{id}             — stored result
    GET    /api/v1/submissions/{id}/progress    — live percent
    GET    /api/v1/local-objects/{object_id}    — download a locally retained file
    DELETE /api/v1/local-objects/{object_id}    — revoke a local handle

A missing file is a submission RESULT (total_failure / validation_error),
returned with 200 like every other outcome; the caller renders it.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.submission.models import BinaryBlobRef
from backend.app.submission.service import SubmissionService

router = APIRouter(prefix="/api/v1/submissions", tags=["submissions"])
local_object_router = APIRouter(prefix="/api/v1/local-objects", tags=["local-objects"])


def get_submission_service(request: Request) -> SubmissionService:
    return request.app.state.submission_service


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------

class AttemptResponse(BaseModel):
    label: str
    outcome: str
    ok: bool
    duration_ms: float
    locator: Optional[str] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    status_code: Optional[int] = None


class SubmissionResponse(BaseModel):
    submission_id: str
    kind: str
    failure_reason: Optional[str]
    locator: Optional[str]
    delivered_by: Optional[str]
    message: str
    attempt_count: int
    attempts: List[AttemptResponse]
    started_at: str
    completed_at: str


class ChannelInfo(BaseModel):
    position: int
    label: str
    channel: str
    delivery_class: str
    target: str


class ProgressResponse(BaseModel):
    submission_id: str
    in_flight: bool
    percent: float
    ramping: bool
    kind: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_READ_CHUNK_BYTES = 64 * 1024


async def _read_bounded(file: UploadFile, limit: int) -> bytes:
    """Read an upload, stopping as soon as it is known to exceed ``limit``."""
    if file.size is not None and file.size > limit:
        raise ValidationError(f"File exceeds {limit} bytes", field="file", size=file.size)

    chunks: List[bytes] = []
    total = 0
    while True:
        chunk = await file.read(_READ_CHUNK_BYTES)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise ValidationError(f"File exceeds {limit} bytes", field="file", size=total)
        chunks.append(chunk)
    return b"".join(chunks)


def _content_disposition(filename: str) -> str:
    """
    Attachment header safe for any filename.

    ``filename`` carries a printable-ASCII fallback with quotes, backslashes
    and control characters removed; ``filename*`` carries the exact name
    percent-encoded as UTF-8 (RFC 5987).
    """
    fallback = "".join(
        ch for ch in filename
        if 0x20 <= ord(ch) < 0x7F and ch not in '"\\'
    ).strip() or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


# ---------------------------------------------------------------------------
# Submission endpoints
# ---------------------------------------------------------------------------

@router.post("", response_model=SubmissionResponse)
async def create_submission(
    username: str = Form(""),
    email: str = Form(""),
    phoneCode: str = Form(""),
    phone: str = Form(""),
    submission_id: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    service: SubmissionService = Depends(get_submission_service),
) -> Dict[str, Any]:
    """Deliver the form through the first channel that accepts it."""
    blob: Optional[BinaryBlobRef] = None
    if file is not None and file.filename:
        content = await _read_bounded(file, service.settings.MAX_UPLOAD_BYTES)
        blob = BinaryBlobRef(
            filename=file.filename,
            content=content,
            content_type=file.content_type or "application/octet-stream",
        )

    fields = {"username": username, "email": email, "phoneCode": phoneCode, "phone": phone}
    result = await service.submit(fields, blob, submission_id=submission_id or None)
    return result.to_dict()


@router.get("/channels", response_model=List[ChannelInfo])
async def list_channels(
    service: SubmissionService = Depends(get_submission_service),
) -> List[Dict[str, Any]]:
    """Registered channels in the order they are tried."""
    return service.registry.to_list()


@router.get("/{submission_id}", response_model=SubmissionResponse)
async def get_submission(
    submission_id: str,
    service: SubmissionService = Depends(get_submission_service),
) -> Dict[str, Any]:
    result = service.get_result(submission_id)
    if result is None:
        raise NotFoundError("Submission", submission_id=submission_id)
    return result.to_dict()


@router.get("/{submission_id}/progress", response_model=ProgressResponse)
async def get_submission_progress(
    submission_id: str,
    service: SubmissionService = Depends(get_submission_service),
) -> Dict[str, Any]:
    progress = service.get_progress(submission_id)
    if progress is None:
        raise NotFoundError("Submission", submission_id=submission_id)
    return progress


# ---------------------------------------------------------------------------
# Local object handles
# ---------------------------------------------------------------------------

@local_object_router.get("/{object_id}")
async def download_local_object(
    object_id: str,
    service: SubmissionService = Depends(get_submission_service),
) -> Response:
    blob = service.local_store.resolve(object_id)
    if blob is None:
        raise NotFoundError("Local object", object_id=object_id)
    return Response(
        content=blob.content,
        media_type=blob.content_type,
        headers={"Content-Disposition": _content_disposition(blob.filename)},
    )


@local_object_router.delete("/{object_id}", status_code=204)
async def revoke_local_object(
    object_id: str,
    service: SubmissionService = Depends(get_submission_service),
) -> Response:
    if not service.local_store.revoke(object_id):
        raise NotFoundError("Local object", object_id=object_id)
    return Response(status_code=204)
