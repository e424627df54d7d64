# Filename: animation_clock.py

import asyncio
import time


class AnimationClock:
    """
    Single time source shared by the integrator, the drift phases and the zoom
    transitions. Times are seconds on a monotonic scale.
    """

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class ManualClock(AnimationClock):
    """Clock that only moves when told to. sleep() advances it and yields once."""

    def __init__(self, start: float = 0.0):
        self.t = start

    def now(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds

    async def sleep(self, seconds: float) -> None:
        self.t += seconds
        await asyncio.sleep(0)
