"""
Shared fixtures: a hand-driven escalation clock.

Escalation timers created through ``clock`` never expire on their own;
a test fires them explicitly, in creation order, with ``await
clock.fire(i)``.
"""

from __future__ import annotations

import asyncio
from typing import List

import pytest


class ManualTimer:
    def __init__(self, minutes: float):
        self.minutes = minutes
        self._done = asyncio.Event()
        self._expired = False

    @property
    def cancelled(self) -> bool:
        return self._done.is_set() and not self._expired

    async def wait(self) -> bool:
        await self._done.wait()
        return self._expired

    def fire(self) -> None:
        self._expired = True
        self._done.set()

    def cancel(self) -> None:
        self._done.set()


class ManualClock:
    def __init__(self) -> None:
        self.timers: List[ManualTimer] = []

    def __call__(self, minutes: float) -> ManualTimer:
        timer = ManualTimer(minutes)
        self.timers.append(timer)
        return timer

    async def timer(self, index: int, attempts: int = 300) -> ManualTimer:
        """Wait until the ``index``-th timer has been created."""
        for _ in range(attempts):
            if len(self.timers) > index:
                return self.timers[index]
            await asyncio.sleep(0.01)
        raise AssertionError(f"timer #{index} never created ({len(self.timers)} so far)")

    async def fire(self, index: int) -> ManualTimer:
        timer = await self.timer(index)
        timer.fire()
        return timer


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
