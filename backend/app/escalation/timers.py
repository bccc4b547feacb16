"""
timers.py — Cancellable escalation timers.

The orchestrator never sleeps directly; it asks a timer factory for an
``EscalationTimer`` covering N policy minutes and awaits ``wait()``.
Tests substitute a factory whose timers fire on demand.
"""

from __future__ import annotations

import asyncio
from typing import Callable


class EscalationTimer:
    """One-shot timer that either expires or is cancelled."""

    def __init__(self, seconds: float):
        self.seconds = max(0.0, seconds)
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def wait(self) -> bool:
        """Return True when the timer expired, False when it was cancelled."""
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.seconds)
        except asyncio.TimeoutError:
            return not self.cancelled
        return False

    def cancel(self) -> None:
        self._cancelled.set()


TimerFactory = Callable[[float], EscalationTimer]


def make_timer_factory(seconds_per_minute: float = 60.0) -> TimerFactory:
    """Factory mapping policy minutes onto wall-clock seconds."""

    def _factory(minutes: float) -> EscalationTimer:
        return EscalationTimer(minutes * seconds_per_minute)

    return _factory
