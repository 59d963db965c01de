"""Shared test fixtures for roomlift-queue tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable

import pytest

import log
from config import QueueConfig
from scheduling.queue import ProcessingQueue

if TYPE_CHECKING:
    from collections.abc import Awaitable, Generator


class FakeClock:
    """Manually advanced millisecond clock for deterministic ranks."""

    def __init__(self, start_ms: float = 1_000_000.0):
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_queue(clock: FakeClock) -> Callable[..., ProcessingQueue]:
    """Build a ProcessingQueue on the fake clock.

    Keyword arguments are QueueConfig fields.
    """

    def _make(**kwargs: Any) -> ProcessingQueue:
        return ProcessingQueue(QueueConfig(**kwargs), clock=clock)

    return _make


@pytest.fixture
def settle() -> Callable[[], Awaitable[None]]:
    """Let pending tasks run up to their next suspension point."""

    async def _settle(rounds: int = 5) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture(autouse=True)
def reset_log() -> Generator[None, None, None]:
    yield
    log.close_file()
    log.set_level(log.LogLevel.INFO)
