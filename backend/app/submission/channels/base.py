"""
base.py — TransportChannel contract shared by every delivery channel.

A channel is one concrete way of getting the payload somewhere:

    attempt(payload, timeout_seconds) → ChannelOutcome

``attempt`` never raises. Subclasses implement ``_send`` and may raise
freely inside it; the base class converts everything into a Failure
outcome so the orchestrator never branches on exception types:

    asyncio.TimeoutError / httpx.TimeoutException → TIMEOUT
    httpx.TransportError                          → NETWORK_UNREACHABLE
    anything else                                 → UNSUPPORTED

The timeout is enforced here with ``asyncio.wait_for``, so even a
transport that ignores its own timeout cannot hold the run open: the
logical attempt resolves to TIMEOUT and the late response is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

import httpx

from backend.app.submission.models import (
    ChannelErrorKind,
    ChannelOutcome,
    DeliveryClass,
    SubmissionPayload,
)

logger = logging.getLogger(__name__)

# Receives real transfer progress as a 0–100 percentage
ProgressCallback = Callable[[float], None]


class TransportChannel(ABC):
    """Base class for all delivery channels."""

    #: Stable identifier used as the default registry label
    name: str = "channel"
    #: What a success on this channel proves (see models.DeliveryClass)
    delivery_class: DeliveryClass = DeliveryClass.REMOTE

    async def attempt(
        self,
        payload: SubmissionPayload,
        timeout_seconds: float,
        *,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ChannelOutcome:
        """
        Try to deliver ``payload`` once, bounded by ``timeout_seconds``.

        Returns
        -------
        ChannelOutcome
            Success or Failure; exceptions never escape.
        """
        try:
            return await asyncio.wait_for(
                self._send(payload, timeout_seconds, on_progress),
                timeout=timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            return ChannelOutcome.failure(
                ChannelErrorKind.TIMEOUT,
                f"No response within {timeout_seconds:.1f}s ({type(exc).__name__})",
            )
        except httpx.TransportError as exc:
            return ChannelOutcome.failure(
                ChannelErrorKind.NETWORK_UNREACHABLE,
                str(exc) or type(exc).__name__,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[%s] Unexpected channel error: %s", self.name, exc)
            return ChannelOutcome.failure(
                ChannelErrorKind.UNSUPPORTED,
                f"{type(exc).__name__}: {exc}",
            )

    @abstractmethod
    async def _send(
        self,
        payload: SubmissionPayload,
        timeout_seconds: float,
        on_progress: Optional[ProgressCallback],
    ) -> ChannelOutcome:
        """Perform the delivery. May raise; ``attempt`` maps the exception."""

    def describe(self) -> str:
        """Human-readable target, used by the channel listing endpoint."""
        return self.name

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()}>"
