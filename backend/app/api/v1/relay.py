"""
FastAPI route: Same-origin upload relay.

    POST /api/v1/relay/upload

Browsers blocked by the collection server's CORS policy post here
instead (LocalProxyChannel). The body is forwarded untouched, so the
upstream server parses the multipart form itself:

    client ──multipart──▶ relay ──same bytes──▶ RELAY_UPSTREAM_URL
           ◀──status + JSON──── ◀──status + JSON──

Upstream status codes are passed through; an empty upstream body (or a
204 / 304) comes back empty rather than wrapped in JSON. A transport
failure to the upstream becomes 502 RELAY_UPSTREAM_ERROR.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from backend.app.api.v1.submissions import get_submission_service
from backend.app.core.errors import RelayUpstreamError
from backend.app.submission.service import SubmissionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/relay", tags=["relay"])

# Hop-by-hop and origin-specific headers are not forwarded
_FORWARDED_HEADERS = ("content-type", "accept", "x-requested-with")

# Passed through without a body
_BODILESS_STATUSES = (204, 304)


@router.post("/upload")
async def relay_upload(
    request: Request,
    service: SubmissionService = Depends(get_submission_service),
) -> Response:
    upstream = service.settings.RELAY_UPSTREAM_URL
    body = await request.body()
    headers = {
        name: request.headers[name]
        for name in _FORWARDED_HEADERS
        if name in request.headers
    }

    logger.info("Relaying %d bytes to %s", len(body), upstream)
    try:
        response = await service.client.post(
            upstream,
            content=body,
            headers=headers,
            timeout=service.settings.RELAY_TIMEOUT_SECONDS,
        )
    except httpx.HTTPError as exc:
        logger.error("Relay to %s failed: %s", upstream, exc)
        raise RelayUpstreamError(upstream, str(exc) or type(exc).__name__)

    logger.info(
        "Upstream answered %d", response.status_code,
        extra={"status_code": response.status_code, "endpoint": upstream},
    )
    if response.status_code in _BODILESS_STATUSES or not response.content:
        return Response(status_code=response.status_code)
    content: Any
    try:
        content = response.json()
    except ValueError:
        content = {"raw": response.text[:2000]}
    return JSONResponse(status_code=response.status_code, content=content)
