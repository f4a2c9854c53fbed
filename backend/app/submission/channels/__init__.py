"""
channels — Per-channel delivery backends.

Each channel exposes:
    async attempt(payload, timeout_seconds) → ChannelOutcome

Channels never raise past ``attempt``. Ordering and fall-through live
in orchestrator.py; channels know nothing about each other.
"""

from backend.app.submission.channels.base import TransportChannel
from backend.app.submission.channels.cors_proxy import CorsProxyChannel
from backend.app.submission.channels.http_upload import (
    DirectServerChannel,
    FunctionProxyChannel,
    HttpUploadChannel,
    LocalProxyChannel,
)
from backend.app.submission.channels.local_object import LocalObjectUrlChannel
from backend.app.submission.channels.notification import NotificationOnlyChannel

__all__ = [
    "TransportChannel",
    "HttpUploadChannel",
    "DirectServerChannel",
    "LocalProxyChannel",
    "FunctionProxyChannel",
    "CorsProxyChannel",
    "NotificationOnlyChannel",
    "LocalObjectUrlChannel",
]
