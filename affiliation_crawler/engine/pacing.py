"""Randomised delays that keep the request cadence irregular."""

from __future__ import annotations

import asyncio
import random


def random_delay(bounds: tuple[float, float]) -> float:
    """Draw a delay uniformly from ``bounds`` (seconds)."""

    low, high = bounds
    if high <= 0:
        return 0.0
    return random.uniform(low, high)


async def pause_between(bounds: tuple[float, float]) -> float:
    delay = random_delay(bounds)
    await asyncio.sleep(delay)
    return delay


__all__ = ["pause_between", "random_delay"]
