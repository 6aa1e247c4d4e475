"""Injectable timing so pacing and backoff can be simulated in tests."""

from __future__ import annotations

import asyncio
from typing import Protocol


class Clock(Protocol):
    """Anything able to suspend the current task for a number of seconds."""

    async def sleep(self, seconds: float) -> None:
        ...


class AsyncioClock:
    """Wall-clock implementation backed by ``asyncio.sleep``."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))
