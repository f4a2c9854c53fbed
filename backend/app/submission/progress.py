"""
progress.py — Progress ramp for one submission run.

The percentage shown to the user is driven by two sources:

    1. A simulated ramp: +step every interval, capped at the ceiling
       (defaults 10 % / 0.5 s / 90 %).
    2. Real transfer progress reported by an HTTP channel while it
       streams the request body. Real values are clamped to the same
       ceiling and never lower the current percentage.

Only ``finish(True)`` moves the bar to 100, after the orchestrator has
recorded a successful outcome. ``finish(False)`` resets it to 0.

At most one ramp task exists per controller: ``start()`` cancels the
previous task before creating a new one, and ``finish()`` tears it down.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

ProgressListener = Callable[[float], None]

DEFAULT_STEP = 10.0
DEFAULT_INTERVAL_SECONDS = 0.5
DEFAULT_CEILING = 90.0


class ProgressController:
    """
    Owns the percent value and the ramp task for a single run.

    Parameters
    ----------
    step : float
        Percentage added per ramp tick.
    interval_seconds : float
        Delay between ramp ticks.
    ceiling : float
        Pre-success cap; must be strictly below 100.
    """

    def __init__(
        self,
        *,
        step: float = DEFAULT_STEP,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        ceiling: float = DEFAULT_CEILING,
    ):
        if not 0 < ceiling < 100:
            raise ValueError(f"ceiling must be in (0, 100), got {ceiling}")
        if step <= 0 or interval_seconds <= 0:
            raise ValueError("step and interval_seconds must be positive")
        self.step = step
        self.interval_seconds = interval_seconds
        self.ceiling = ceiling
        self._percent = 0.0
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[ProgressListener] = []
        self._started = False

    # ── State ──

    @property
    def percent(self) -> float:
        return self._percent

    @property
    def ramping(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def started(self) -> bool:
        """True once ``start()`` has been called at least once."""
        return self._started

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a percent listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ── Operations ──

    def start(self) -> None:
        """Reset to 0 and begin the simulated ramp. Needs a running loop."""
        self._cancel_ramp()
        self._started = True
        self._set(0.0, force=True)
        self._task = asyncio.get_running_loop().create_task(self._ramp())

    def report_real(self, percent: float) -> None:
        """Merge genuine transfer progress (0–100) from the active channel."""
        if not self.ramping:
            return
        clamped = min(max(percent, 0.0), self.ceiling)
        if clamped > self._percent:
            self._set(clamped)

    def finish(self, success: bool) -> None:
        """Stop the ramp; 100 on success, 0 on failure."""
        self._cancel_ramp()
        self._set(100.0 if success else 0.0)

    # ── Internals ──

    async def _ramp(self) -> None:
        while self._percent < self.ceiling:
            await asyncio.sleep(self.interval_seconds)
            self._set(min(self._percent + self.step, self.ceiling))

    def _cancel_ramp(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _set(self, value: float, *, force: bool = False) -> None:
        if value == self._percent and self._started and not force:
            return
        self._percent = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as exc:
                logger.warning("Progress listener %r failed: %s", listener, exc)
