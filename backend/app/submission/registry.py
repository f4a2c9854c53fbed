"""
registry.py — Ordered list of delivery channels.

The order of entries IS the fallback policy. It is fixed when the
registry is built and never changes at runtime (no reordering based on
past successes).

Default order built from settings:

    1. direct              UPLOAD_SERVER_URL
    2. local_proxy         LOCAL_PROXY_URL          (if set)
    3. function_proxy      FUNCTION_PROXY_URL       (if set)
    4. cors_proxy[i]       one per CORS_PROXY_BASES entry
    5. notification        NOTIFICATION_RELAY_URL   (if set; last remote)
    6. local_object        ENABLE_LOCAL_FALLBACK    (always last)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import httpx

from backend.app.core.config import Settings
from backend.app.submission.channels import (
    CorsProxyChannel,
    DirectServerChannel,
    FunctionProxyChannel,
    LocalObjectUrlChannel,
    LocalProxyChannel,
    NotificationOnlyChannel,
    TransportChannel,
)
from backend.app.submission.local_store import LocalObjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryEntry:
    channel: TransportChannel
    label: str

    def to_dict(self, position: int) -> Dict[str, Any]:
        return {
            "position": position,
            "label": self.label,
            "channel": self.channel.name,
            "delivery_class": self.channel.delivery_class.value,
            "target": self.channel.describe(),
        }


class ChannelRegistry:
    """
    Immutable, ordered sequence of RegistryEntry.

    Accepts entries, bare channels (labelled with ``channel.name``), or
    ``(channel, label)`` tuples. Labels must be unique.
    """

    def __init__(
        self,
        entries: Iterable[Union[RegistryEntry, TransportChannel, Tuple[TransportChannel, str]]],
    ):
        built: List[RegistryEntry] = []
        for item in entries:
            if isinstance(item, RegistryEntry):
                built.append(item)
            elif isinstance(item, TransportChannel):
                built.append(RegistryEntry(item, item.name))
            else:
                channel, label = item
                built.append(RegistryEntry(channel, label))

        labels = [e.label for e in built]
        duplicates = sorted({label for label in labels if labels.count(label) > 1})
        if duplicates:
            raise ValueError(f"Duplicate channel labels: {duplicates}")

        self._entries: Tuple[RegistryEntry, ...] = tuple(built)

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> RegistryEntry:
        return self._entries[index]

    @property
    def labels(self) -> List[str]:
        return [e.label for e in self._entries]

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict(i) for i, e in enumerate(self._entries)]


def build_default_registry(
    settings: Settings,
    *,
    client: Optional[httpx.AsyncClient] = None,
    local_store: Optional[LocalObjectStore] = None,
) -> ChannelRegistry:
    """Build the production channel order from settings."""
    entries: List[RegistryEntry] = [
        RegistryEntry(DirectServerChannel(settings.UPLOAD_SERVER_URL, client=client), "direct"),
    ]

    if settings.LOCAL_PROXY_URL:
        entries.append(RegistryEntry(
            LocalProxyChannel(settings.LOCAL_PROXY_URL, client=client), "local_proxy",
        ))
    if settings.FUNCTION_PROXY_URL:
        entries.append(RegistryEntry(
            FunctionProxyChannel(settings.FUNCTION_PROXY_URL, client=client), "function_proxy",
        ))

    for i, base in enumerate(settings.CORS_PROXY_BASES, start=1):
        channel = CorsProxyChannel(
            base, settings.UPLOAD_SERVER_URL,
            origin=settings.CORS_PROXY_ORIGIN, client=client,
        )
        entries.append(RegistryEntry(channel, f"cors_proxy_{i}"))

    if settings.NOTIFICATION_RELAY_URL:
        entries.append(RegistryEntry(
            NotificationOnlyChannel(
                settings.NOTIFICATION_RELAY_URL,
                chat_id=settings.NOTIFICATION_CHAT_ID,
                client=client,
            ),
            "notification",
        ))

    if settings.ENABLE_LOCAL_FALLBACK:
        store = local_store if local_store is not None else LocalObjectStore(settings.LOCAL_OBJECT_ORIGIN)
        entries.append(RegistryEntry(LocalObjectUrlChannel(store), "local_object"))

    registry = ChannelRegistry(entries)
    logger.info("Channel registry: %s", " → ".join(registry.labels))
    return registry
