"""
local_store.py — In-memory handles to file bytes that never left the client.

Mirrors the browser's object-URL API:

    create_object_url(blob) → "blob:<origin>/<uuid>"
    resolve(url_or_id)      → BinaryBlobRef | None
    revoke(url_or_id)       → bool

Handles live until revoked or until the process exits. The HTTP
surface exposes them at GET /api/v1/local-objects/{object_id}.
"""

from __future__ import annotations

import logging
import uuid
from typing import Dict, Optional

from backend.app.submission.models import BinaryBlobRef

logger = logging.getLogger(__name__)

URL_SCHEME = "blob:"


class LocalObjectStore:
    def __init__(self, origin: str = "http://localhost"):
        self.origin = origin.rstrip("/")
        self._objects: Dict[str, BinaryBlobRef] = {}

    def __len__(self) -> int:
        return len(self._objects)

    def create_object_url(self, blob: BinaryBlobRef) -> str:
        object_id = uuid.uuid4().hex
        self._objects[object_id] = blob
        url = f"{URL_SCHEME}{self.origin}/{object_id}"
        logger.debug("Created local object %s for %s", object_id, blob.filename)
        return url

    @staticmethod
    def object_id_of(url_or_id: str) -> str:
        """Accepts either a full ``blob:`` URL or a bare object id."""
        if url_or_id.startswith(URL_SCHEME):
            return url_or_id.rsplit("/", 1)[-1]
        return url_or_id

    def resolve(self, url_or_id: str) -> Optional[BinaryBlobRef]:
        return self._objects.get(self.object_id_of(url_or_id))

    def revoke(self, url_or_id: str) -> bool:
        return self._objects.pop(self.object_id_of(url_or_id), None) is not None

    def clear(self) -> None:
        self._objects.clear()
