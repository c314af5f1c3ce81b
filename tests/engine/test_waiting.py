from __future__ import annotations

import asyncio
import random

import pytest

from affiliation_crawler.engine.pacing import pause_between, random_delay
from affiliation_crawler.engine.waiting import wait_for_element, wait_until
from affiliation_crawler.errors import WaitTimeout


def test_wait_until_returns_first_value() -> None:
    attempts: list[int] = []

    async def probe():
        attempts.append(1)
        return "ready" if len(attempts) >= 3 else None

    result = asyncio.run(wait_until(probe, period=0.001, timeout=1.0, description="probe"))
    assert result == "ready"
    assert len(attempts) == 3


def test_wait_until_probes_at_least_once_with_zero_timeout() -> None:
    async def probe():
        return 0

    assert asyncio.run(wait_until(probe, period=0.01, timeout=0, description="zero")) == 0


def test_wait_until_raises_after_deadline() -> None:
    async def probe():
        return None

    with pytest.raises(WaitTimeout) as excinfo:
        asyncio.run(wait_until(probe, period=0.005, timeout=0.02, description="nothing"))
    assert excinfo.value.description == "nothing"
    assert "Timeout waiting for nothing" in str(excinfo.value)


def test_wait_for_element_returns_first_match(sample_global_config, fake_page, fake_element) -> None:
    marker = fake_element(text="profile")
    page = fake_page(elements={".gsc_prf_il": [marker, fake_element()]})
    found = asyncio.run(wait_for_element(page, ".gsc_prf_il", sample_global_config.pacing))
    assert found is marker


def test_random_delay_uses_uniform(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[float, float]] = []

    def fake_uniform(low: float, high: float) -> float:
        calls.append((low, high))
        return high

    monkeypatch.setattr(random, "uniform", fake_uniform)
    assert random_delay((15.0, 20.0)) == 20.0
    assert random_delay((0.0, 0.0)) == 0.0
    assert calls == [(15.0, 20.0)]


def test_pause_between_sleeps_for_drawn_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    slept: list[float] = []

    async def fake_sleep(delay: float) -> None:
        slept.append(delay)

    monkeypatch.setattr(random, "uniform", lambda low, high: low)
    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def scenario() -> float:
        return await pause_between((2.0, 3.0))

    assert asyncio.run(scenario()) == 2.0
    assert slept == [2.0]
