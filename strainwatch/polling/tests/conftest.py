"""Shared fakes for polling tests."""

from __future__ import annotations

import asyncio
from typing import Callable
from unittest.mock import MagicMock

import pytest

from strainwatch.polling.models import Sample
from strainwatch.services.sink import AnalyticsSink
from strainwatch.streaming.hub import BroadcastHub


class FakeCollector:
    """Returns a fixed sample per call; ``gate`` holds calls until released."""

    def __init__(self, strain: float = 7.5, error: Exception | None = None) -> None:
        self.strain = strain
        self.error = error
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def collect(self, user_id: str) -> Sample:
        self.calls.append(user_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return Sample(user_id=user_id, strain=self.strain, auxiliary={"cycle_id": 93845})


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate`` holds or ``timeout`` passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def collector() -> FakeCollector:
    return FakeCollector()


@pytest.fixture
def sink() -> MagicMock:
    return MagicMock(spec=AnalyticsSink)


@pytest.fixture
def hub() -> BroadcastHub:
    return BroadcastHub()
