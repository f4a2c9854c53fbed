"""
cors_proxy.py — Upload through a third-party CORS relay.

A CORS relay takes the target URL appended to its own base:

    https://cors-anywhere.herokuapp.com/ + https://collector.example/upload

Several relays can be registered back to back, one channel per base.
Relays typically require an Origin header and X-Requested-With; both
are sent. Outcome mapping is identical to the direct channel.
"""

from __future__ import annotations

from typing import Optional

import httpx

from backend.app.submission.channels.http_upload import HttpUploadChannel


class CorsProxyChannel(HttpUploadChannel):
    """Wraps ``target_url`` behind the relay at ``proxy_base``."""

    name = "cors_proxy"

    def __init__(
        self,
        proxy_base: str,
        target_url: str,
        *,
        origin: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not proxy_base:
            raise ValueError("CorsProxyChannel requires a proxy_base")
        self.proxy_base = proxy_base
        self.target_url = target_url
        headers = {"Origin": origin} if origin else None
        super().__init__(proxy_base + target_url, client=client, extra_headers=headers)

    def describe(self) -> str:
        return f"{self.proxy_base} → {self.target_url}"
