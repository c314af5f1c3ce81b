"""Bounded polling primitive used by the page agent."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..config import PacingConfig
from ..errors import WaitTimeout

T = TypeVar("T")


async def wait_until(
    probe: Callable[[], Awaitable[Optional[T]]],
    *,
    period: float,
    timeout: float,
    description: str,
) -> T:
    """Poll ``probe`` every ``period`` seconds until it yields a value.

    The probe is always evaluated at least once. Raises :class:`WaitTimeout`
    once ``timeout`` seconds have elapsed without a result.
    """

    deadline = time.monotonic() + timeout
    while True:
        result = await probe()
        if result is not None:
            return result
        if time.monotonic() >= deadline:
            raise WaitTimeout(description, timeout)
        await asyncio.sleep(period)


async def wait_for_element(page: Any, selector: str, pacing: PacingConfig) -> Any:
    """Wait until ``selector`` matches at least one element; return its locator."""

    async def _probe() -> Any:
        locator = page.locator(selector)
        if await locator.count() > 0:
            return locator.first
        return None

    return await wait_until(
        _probe,
        period=pacing.poll_interval,
        timeout=pacing.wait_timeout,
        description=f"element {selector}",
    )


__all__ = ["wait_for_element", "wait_until"]
